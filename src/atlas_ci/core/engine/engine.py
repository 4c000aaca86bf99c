# src/atlas_ci/core/engine/engine.py
"""
Orchestrator do pipeline de build do Atlas CI.

Fluxo de `run_pipeline(task_history, is_rollback)`:

1. resolve o fecho transitivo de dependências e os comandos customizados
2. planeja as arestas (dependências antes do primário)
3. builda as dependências, em sequência (padrão) ou em pool limitado de
   threads (`engine.parallel_dependencies`); a semântica do mutex por
   projeto é a mesma nos dois modos
4. builda o primário com o mesmo coordinator
5. invoca o hook pós-build exatamente uma vez

Política de falha (fail-fast):
- qualquer exceção aborta a run imediatamente; dependências ainda não
  iniciadas são canceladas e o primário não é buildado
- a falha é registrada (evento no contexto, `run_failed` no Manifest com o
  AtlasErrorPayload serializado) e a exceção propaga SEM alteração
- nenhum retry é feito aqui
"""

from __future__ import annotations

from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from atlas_ci.core.config.settings import BuildSettings
from atlas_ci.core.errors import exception_to_error
from atlas_ci.core.pipeline.collaborators import (
    BuildCommandOverrideStore,
    DependencyResolver,
    PostBuildHook,
)
from atlas_ci.core.pipeline.context import PipelineContext
from atlas_ci.core.pipeline.types import BuildEdge, EdgeResult, EdgeStatus, TaskHistory
from atlas_ci.core.traceability.manifest import AtlasManifest, create_manifest, run_finished, save_manifest

from .coordinator import DependencyBuildCoordinator
from .planner import plan_build_edges


RELEASE_ARTIFACT = "release_descriptor"
RUN_EDGE_ID = "run"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PipelineResult:
    """Resultado agregado de uma run bem-sucedida."""

    task_id: int
    is_rollback: bool
    edges: List[EdgeResult] = field(default_factory=list)
    release: Optional[Any] = None

    @property
    def succeeded(self) -> bool:
        return all(e.status != EdgeStatus.FAILED for e in self.edges)

    def edge(self, edge_id: str) -> EdgeResult:
        for e in self.edges:
            if e.edge_id == edge_id:
                return e
        raise KeyError(edge_id)

    def to_dict(self) -> Dict[str, Any]:
        release = self.release.to_dict() if hasattr(self.release, "to_dict") else self.release
        return {
            "task_id": self.task_id,
            "is_rollback": self.is_rollback,
            "succeeded": self.succeeded,
            "edges": [e.to_dict() for e in self.edges],
            "release": release,
        }


class PipelineOrchestrator:
    """Orchestrator canônico (planner + coordinator + hook pós-build)."""

    def __init__(
        self,
        *,
        coordinator: DependencyBuildCoordinator,
        dependency_resolver: DependencyResolver,
        overrides: BuildCommandOverrideStore,
        config: Dict[str, Any],
        config_hash: str = "",
        post_build_hook: Optional[PostBuildHook] = None,
        atlas_version: str = "",
        persist_manifest: bool = True,
    ):
        self.coordinator = coordinator
        self.dependency_resolver = dependency_resolver
        self.overrides = overrides
        self.config = config
        self.config_hash = config_hash
        self.settings = BuildSettings.from_config(config)
        self.post_build_hook = post_build_hook
        self.atlas_version = atlas_version or _package_version()
        self.persist_manifest = persist_manifest
        self.last_context: Optional[PipelineContext] = None

    # ------------------------------------------------------------------
    # Entrada
    # ------------------------------------------------------------------
    def new_context(self, task_history: TaskHistory, *, is_rollback: bool = False) -> PipelineContext:
        manifest = create_manifest(
            task_id=task_history.id,
            project_id=task_history.project_id,
            branch=task_history.branch_name,
            is_rollback=is_rollback,
            started_at=_now(),
            atlas_version=self.atlas_version,
            config_hash=self.config_hash,
            ref_id=task_history.ref_id,
        )
        return PipelineContext.for_task(
            task_history,
            config=self.config,
            settings=self.settings,
            is_rollback=is_rollback,
            config_hash=self.config_hash,
            manifest=manifest,
        )

    def run_pipeline(self, task_history: TaskHistory, is_rollback: bool = False) -> PipelineResult:
        ctx = self.new_context(task_history, is_rollback=is_rollback)
        self.last_context = ctx
        ctx.log(
            edge_id=RUN_EDGE_ID,
            level="INFO",
            message="run started",
            project_id=task_history.project_id,
            branch=task_history.branch_name,
            rollback=is_rollback,
        )

        try:
            edges = self._plan(task_history)
            dependencies = [e for e in edges if e.is_dependency]
            primary = edges[-1]

            if self.settings.parallel_dependencies and len(dependencies) > 1:
                self._build_parallel(ctx, dependencies)
            else:
                for edge in dependencies:
                    self.coordinator.build_one(ctx, edge, is_rollback)

            self.coordinator.build_one(ctx, primary, is_rollback)

            if self.post_build_hook is not None:
                self.post_build_hook(ctx)
        except Exception as exc:
            self._record_failure(ctx, exc)
            raise

        result = PipelineResult(
            task_id=task_history.id,
            is_rollback=is_rollback,
            edges=[ctx.results[e.edge_id] for e in edges],
            release=ctx.get_artifact(RELEASE_ARTIFACT) if ctx.has_artifact(RELEASE_ARTIFACT) else None,
        )
        ctx.trace(run_finished, ts=_now(), status="success", payload={"edges": len(result.edges)})
        ctx.log(edge_id=RUN_EDGE_ID, level="INFO", message="run finished", edges=len(result.edges))
        self._save_manifest(ctx)
        return result

    # ------------------------------------------------------------------
    # Internos
    # ------------------------------------------------------------------
    def _plan(self, task_history: TaskHistory) -> List[BuildEdge]:
        dependencies = list(self.dependency_resolver.hierarchy_of(task_history.project_id, task_history.branch_name))
        overrides = self.overrides.find_by_task(task_history.id)
        return plan_build_edges(task_history, dependencies, overrides)

    def _build_parallel(self, ctx: PipelineContext, edges: Sequence[BuildEdge]) -> None:
        with ThreadPoolExecutor(max_workers=self.settings.max_workers, thread_name_prefix="atlas-ci-dep") as pool:
            futures = [pool.submit(self.coordinator.build_one, ctx, edge, ctx.is_rollback) for edge in edges]
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for f in pending:
                f.cancel()
            # primeira falha na ordem do plano; arestas já iniciadas terminam no shutdown
            for f in futures:
                if f in done and f.exception() is not None:
                    raise f.exception()

    def _record_failure(self, ctx: PipelineContext, exc: Exception) -> None:
        error = exception_to_error(exc).to_dict()
        ctx.log(
            edge_id=RUN_EDGE_ID,
            level="ERROR",
            message=error["message"],
            error_type=error["type"],
        )
        ctx.trace(run_finished, ts=_now(), status="failed", payload={"error": error})
        self._save_manifest(ctx)

    def _save_manifest(self, ctx: PipelineContext) -> None:
        if not self.persist_manifest or not isinstance(ctx.manifest, AtlasManifest):
            return
        save_manifest(ctx.manifest, ctx.settings.manifest_path(ctx.task_history.id))


def _package_version() -> str:
    from atlas_ci import __version__

    return __version__
