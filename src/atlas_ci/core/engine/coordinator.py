# src/atlas_ci/core/engine/coordinator.py
"""
Coordenação do build de uma aresta (dependência ou primário).

Máquina de estados por aresta:

    LOCK_WAIT → SOURCE_SYNC → {SIGNED?} → BUILDING → DONE
    (qualquer estado) → FAILED

1. LOCK_WAIT: sondagem rápida do mutex do projeto. Se outro holder está
   buildando o mesmo projeto, escreve a linha de espera no log da task e
   aguarda até `shared_dependency_wait_timeout_ms`. Conseguir o lock após a
   espera significa que o build concorrente terminou: a aresta é SKIPPED,
   a não ser que o quadro de status diga que aquele build falhou (ou não
   publicou status e `verify_concurrent_build` está ligado); nesse caso a
   aresta é buildada aqui, ainda sob o lock. Rollback nunca é satisfeito por
   build concorrente (o commit alvo é exato), e um build de rollback nunca
   satisfaz uma aresta forward (o commit dele não é a ponta da branch).
   Timeout da espera ⇒ LockTimeoutError.
2. SOURCE_SYNC: rollback sincroniza para o commit registrado (TaskSign da
   run original para dependências, `sha_git` da task para o primário);
   forward faz checkout+pull (ou clone) da branch.
3. SIGNED: apenas dependências em run forward; registra o commit resultante.
4. BUILDING: comando customizado resolvido ou padrão do tipo de build.

O status (success/failed) é publicado no quadro antes de liberar o lock, e
o lock é liberado em todo caminho de saída após uma aquisição. Uma falha ao
publicar o status failed vira warning: a exceção original do build propaga.
Se o mutex informa que o lease já não era deste holder, a perda é
registrada como warning e evento `lock_lease_lost` no Manifest.

Limites explícitos:
    - Sem retry: toda falha é fatal e propaga sem alteração
    - Não decide a ordem das arestas (ver planner/orchestrator)
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional

from atlas_ci.build.command import BuildCommandResolver, DefaultCommandTable, build_placeholders
from atlas_ci.build.runner import ProcessRunner
from atlas_ci.core.config.settings import BuildSettings
from atlas_ci.core.errors import exception_to_error, lock_timeout, missing_provenance, project_not_found
from atlas_ci.core.pipeline.collaborators import ProjectRepository, SourceSynchronizer, TaskSignStore
from atlas_ci.core.pipeline.context import PipelineContext
from atlas_ci.core.pipeline.types import BuildEdge, EdgeResult, EdgeStage, EdgeStatus, Project, TaskSign
from atlas_ci.core.traceability.manifest import add_event, edge_failed, edge_finished, edge_stage, edge_started
from atlas_ci.locking.mutex import BuildMutex, lock_key
from atlas_ci.locking.status import STATUS_FAILED, STATUS_SUCCESS, BuildStatusBoard


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class DependencyBuildCoordinator:
    """Executa `build_one` para uma aresta, sob o mutex do projeto."""

    def __init__(
        self,
        *,
        mutex: BuildMutex,
        synchronizer: SourceSynchronizer,
        projects: ProjectRepository,
        task_signs: TaskSignStore,
        resolver: Optional[BuildCommandResolver] = None,
        runner: Optional[ProcessRunner] = None,
        status_board: Optional[BuildStatusBoard] = None,
    ):
        self.mutex = mutex
        self.synchronizer = synchronizer
        self.projects = projects
        self.task_signs = task_signs
        self.resolver = resolver or BuildCommandResolver()
        self.runner = runner or ProcessRunner()
        self.status_board = status_board

    @classmethod
    def from_settings(
        cls,
        settings: BuildSettings,
        *,
        mutex: BuildMutex,
        synchronizer: SourceSynchronizer,
        projects: ProjectRepository,
        task_signs: TaskSignStore,
        status_board: Optional[BuildStatusBoard] = None,
    ) -> "DependencyBuildCoordinator":
        """Coordinator com resolver e runner configurados por `BuildSettings`."""
        return cls(
            mutex=mutex,
            synchronizer=synchronizer,
            projects=projects,
            task_signs=task_signs,
            resolver=BuildCommandResolver(DefaultCommandTable(settings.default_commands)),
            runner=ProcessRunner(shell=settings.shell, kill_grace_ms=settings.kill_grace_ms),
            status_board=status_board,
        )

    # ------------------------------------------------------------------
    # Entrada
    # ------------------------------------------------------------------
    def build_one(self, ctx: PipelineContext, edge: BuildEdge, is_rollback: Optional[bool] = None) -> EdgeResult:
        rollback = ctx.is_rollback if is_rollback is None else bool(is_rollback)
        key = lock_key(ctx.settings.lock_namespace, edge.project_id)

        ctx.trace(
            edge_started,
            edge_id=edge.edge_id,
            project_id=edge.project_id,
            is_dependency=edge.is_dependency,
            ts=_now(),
        )
        ctx.log(
            edge_id=edge.edge_id,
            level="INFO",
            message="edge started",
            stage=EdgeStage.LOCK_WAIT.value,
            lock_key=key,
            branch=edge.branch,
            rollback=rollback,
        )

        try:
            if self.mutex.try_lock(key, ctx.settings.shared_dependency_try_timeout_ms):
                try:
                    result = self._build_locked(ctx, edge, key, rollback, lock_wait_ms=0)
                finally:
                    self._unlock(ctx, edge, key)
            else:
                result = self._wait_for_concurrent_build(ctx, edge, key, rollback)
        except Exception as exc:
            error = exception_to_error(exc).to_dict()
            ctx.trace(edge_failed, edge_id=edge.edge_id, ts=_now(), error=error)
            ctx.log(
                edge_id=edge.edge_id,
                level="ERROR",
                message=error["message"],
                stage=EdgeStage.FAILED.value,
                error_type=error["type"],
            )
            ctx.record_result(
                EdgeResult(
                    edge_id=edge.edge_id,
                    project_id=edge.project_id,
                    is_dependency=edge.is_dependency,
                    status=EdgeStatus.FAILED,
                    summary=error["message"],
                    payload={"error": error},
                )
            )
            raise

        ctx.trace(edge_finished, edge_id=edge.edge_id, ts=_now(), result=result.to_dict())
        ctx.write_job_log("Aresta %s concluída (%s), commit %s", edge.edge_id, result.status.value, result.commit)
        ctx.log(
            edge_id=edge.edge_id,
            level="INFO",
            message=result.summary,
            stage=EdgeStage.DONE.value,
            status=result.status.value,
            commit=result.commit,
        )
        ctx.record_result(result)
        return result

    # ------------------------------------------------------------------
    # LOCK_WAIT
    # ------------------------------------------------------------------
    def _wait_for_concurrent_build(
        self, ctx: PipelineContext, edge: BuildEdge, key: str, rollback: bool
    ) -> EdgeResult:
        wait_timeout = ctx.settings.shared_dependency_wait_timeout_ms
        message = ctx.write_job_log(
            "Aguardando build em andamento do projeto %s (dependencyId: %s, timeout: %sms)",
            edge.project_id,
            edge.dependency_id,
            wait_timeout,
        )
        ctx.log(edge_id=edge.edge_id, level="INFO", message=message, stage=EdgeStage.LOCK_WAIT.value, lock_key=key)
        ctx.trace(
            edge_stage,
            edge_id=edge.edge_id,
            stage=EdgeStage.LOCK_WAIT.value,
            ts=_now(),
            payload={"waiting": True, "timeout_ms": wait_timeout},
        )

        started = time.monotonic()
        if not self.mutex.try_lock(key, wait_timeout):
            raise lock_timeout(lock_key=key, project_id=edge.project_id, waited_ms=_elapsed_ms(started))
        waited_ms = _elapsed_ms(started)

        try:
            ctx.write_job_log("Build concorrente do projeto %s concluído após %sms", edge.project_id, waited_ms)
            if self._satisfied_by_concurrent_build(ctx, edge, key, rollback):
                return self._skip(ctx, edge, key, waited_ms)
            ctx.log(
                edge_id=edge.edge_id,
                level="WARNING",
                message="build concorrente não confirmado; buildando sob o lock",
                stage=EdgeStage.LOCK_WAIT.value,
            )
            return self._build_locked(ctx, edge, key, rollback, lock_wait_ms=waited_ms)
        finally:
            self._unlock(ctx, edge, key)

    def _satisfied_by_concurrent_build(
        self, ctx: PipelineContext, edge: BuildEdge, key: str, rollback: bool
    ) -> bool:
        if rollback:
            return False
        status = self.status_board.latest(key) if self.status_board is not None else None
        if status is None:
            return not ctx.settings.verify_concurrent_build
        # um rollback publica um commit antigo, não a ponta da branch
        return status.succeeded and not status.rollback and status.branch == edge.branch

    def _skip(self, ctx: PipelineContext, edge: BuildEdge, key: str, waited_ms: int) -> EdgeResult:
        status = self.status_board.latest(key) if self.status_board is not None else None
        commit = status.commit if status is not None else None

        if edge.is_dependency:
            if commit is None:
                project = self._project(edge)
                path = str(ctx.settings.project_source_dir(project.name))
                if self.synchronizer.has_local_copy(path):
                    commit = self.synchronizer.latest_commit(path)
            if commit:
                self._sign(ctx, edge, commit)
            else:
                ctx.add_warning(
                    edge_id=edge.edge_id,
                    message="commit do build concorrente desconhecido; TaskSign não registrado",
                )

        return EdgeResult(
            edge_id=edge.edge_id,
            project_id=edge.project_id,
            is_dependency=edge.is_dependency,
            status=EdgeStatus.SKIPPED,
            summary="satisfeita por build concorrente",
            commit=commit,
            lock_wait_ms=waited_ms,
            metrics={"lock_wait_ms": waited_ms},
        )

    # ------------------------------------------------------------------
    # Build sob o lock
    # ------------------------------------------------------------------
    def _build_locked(
        self, ctx: PipelineContext, edge: BuildEdge, key: str, rollback: bool, *, lock_wait_ms: int
    ) -> EdgeResult:
        try:
            result = self._sync_sign_and_build(ctx, edge, rollback, lock_wait_ms=lock_wait_ms)
        except Exception:
            try:
                self._publish(ctx, edge, key, STATUS_FAILED, commit=None, rollback=rollback)
            except Exception as publish_exc:
                message = f"falha ao publicar status failed: {publish_exc.__class__.__name__}: {publish_exc}"
                ctx.add_warning(edge_id=edge.edge_id, message=message)
                ctx.log(edge_id=edge.edge_id, level="WARNING", message=message, lock_key=key)
            raise
        self._publish(ctx, edge, key, STATUS_SUCCESS, commit=result.commit, rollback=rollback)
        return result

    def _publish(
        self,
        ctx: PipelineContext,
        edge: BuildEdge,
        key: str,
        status: str,
        *,
        commit: Optional[str],
        rollback: bool,
    ) -> None:
        if self.status_board is None:
            return
        self.status_board.publish(
            key,
            status=status,
            task_id=ctx.task_history.id,
            branch=edge.branch,
            commit=commit,
            rollback=rollback,
        )

    def _sync_sign_and_build(
        self, ctx: PipelineContext, edge: BuildEdge, rollback: bool, *, lock_wait_ms: int
    ) -> EdgeResult:
        settings = ctx.settings
        task = ctx.task_history
        project = self._project(edge)
        project_dir = str(settings.project_source_dir(project.name))

        # SOURCE_SYNC
        self._stage(ctx, edge, EdgeStage.SOURCE_SYNC, path=project_dir, rollback=rollback)
        if rollback:
            commit = self._rollback_target(ctx, edge)
            self._rollback(project, project_dir, edge.branch, commit)
        else:
            self._forward(project, project_dir, edge.branch)
            commit = self.synchronizer.latest_commit(project_dir)

        # SIGNED
        if edge.is_dependency and not rollback:
            self._sign(ctx, edge, commit)
            self._stage(ctx, edge, EdgeStage.SIGNED, commit=commit)

        # BUILDING
        job_log = settings.job_log(task.id)
        placeholders = build_placeholders(
            project=project,
            project_dir=project_dir,
            branch=edge.branch,
            task_id=task.id,
            job_log=str(job_log),
            commit=commit,
        )
        resolved = self.resolver.resolve_effective(edge.override_command, project, placeholders)
        self._stage(ctx, edge, EdgeStage.BUILDING, command_source=resolved.source)
        ctx.write_job_log(
            "Build do projeto %s (%s) com comando %s, commit %s",
            project.id,
            project.name,
            resolved.source,
            commit,
        )
        outcome = self.runner.run_or_raise(
            project_id=project.id,
            command=resolved.command,
            working_dir=project_dir,
            log_path=job_log,
            timeout_ms=settings.job_timeout_ms,
            command_file=settings.tmp_command_file(task.id, project.id),
            run_key=f"{task.id}:{project.id}",
        )

        return EdgeResult(
            edge_id=edge.edge_id,
            project_id=edge.project_id,
            is_dependency=edge.is_dependency,
            status=EdgeStatus.SUCCESS,
            summary=f"projeto {project.name} buildado",
            commit=commit,
            command_source=resolved.source,
            lock_wait_ms=lock_wait_ms,
            metrics={"duration_ms": outcome.duration_ms, "exit_code": outcome.exit_code},
            payload={"process": outcome.to_dict()},
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _project(self, edge: BuildEdge) -> Project:
        project = self.projects.get(edge.project_id)
        if project is None:
            raise project_not_found(project_id=edge.project_id)
        return project

    def _unlock(self, ctx: PipelineContext, edge: BuildEdge, key: str) -> None:
        if self.mutex.unlock(key) is not False:
            return
        message = f"lease do lock {key} expirou antes da liberação; outro holder pode ter buildado em paralelo"
        ctx.add_warning(edge_id=edge.edge_id, message=message)
        ctx.log(edge_id=edge.edge_id, level="WARNING", message=message, lock_key=key)
        ctx.trace(add_event, event_type="lock_lease_lost", ts=_now(), edge_id=edge.edge_id, payload={"lock_key": key})

    def _stage(self, ctx: PipelineContext, edge: BuildEdge, stage: EdgeStage, **payload) -> None:
        ctx.log(edge_id=edge.edge_id, level="DEBUG", message=f"stage {stage.value}", stage=stage.value, **payload)
        ctx.trace(edge_stage, edge_id=edge.edge_id, stage=stage.value, ts=_now(), payload=payload)

    def _rollback_target(self, ctx: PipelineContext, edge: BuildEdge) -> str:
        task = ctx.task_history
        if edge.is_dependency:
            sign = self.task_signs.find(edge.dependency_id, task.ref_id) if task.ref_id is not None else None
            if sign is None or not sign.sha_git:
                raise missing_provenance(
                    project_id=edge.project_id, dependency_id=edge.dependency_id, ref_id=task.ref_id
                )
            return sign.sha_git
        if not task.sha_git:
            raise missing_provenance(project_id=edge.project_id, dependency_id=None, ref_id=task.ref_id)
        return task.sha_git

    def _rollback(self, project: Project, path: str, branch: str, commit: str) -> None:
        if not self.synchronizer.has_local_copy(path):
            self.synchronizer.clone(project.vcs_kind, project.http_url, path, branch)
        self.synchronizer.rollback(project.vcs_kind, path, commit)

    def _forward(self, project: Project, path: str, branch: str) -> None:
        if self.synchronizer.has_local_copy(path):
            self.synchronizer.checkout_and_pull(project.vcs_kind, path, branch)
        else:
            self.synchronizer.clone(project.vcs_kind, project.http_url, path, branch)

    def _sign(self, ctx: PipelineContext, edge: BuildEdge, commit: str) -> None:
        self.task_signs.insert(
            TaskSign(task_id=ctx.task_history.id, dependency_id=edge.dependency_id, sha_git=commit)
        )
