"""Hook pós-build que monta e entrega o release descriptor da run."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional, Protocol, runtime_checkable

from atlas_ci.core.engine.engine import RELEASE_ARTIFACT
from atlas_ci.core.pipeline.context import PipelineContext
from atlas_ci.core.traceability.manifest import add_event

from .descriptor import ReleaseDescriptor, ReleaseInstance, ReleaseMeta


RELEASE_EDGE_ID = "release"


@runtime_checkable
class ReleaseNotifier(Protocol):
    def notify(self, descriptor: ReleaseDescriptor) -> None:
        """Entrega o descriptor ao consumidor (empacotamento, deploy, publicação...)."""
        ...


def _config_version(ctx: PipelineContext) -> str:
    if ctx.config_hash:
        return ctx.config_hash[:12]
    return f"task-{ctx.task_history.id}"


class ReleasingPostBuildHook:
    """
    Monta o `ReleaseDescriptor` da run e o entrega ao `ReleaseNotifier`.

    - `history_id` = id da TaskHistory
    - `version_id` = `version_factory(ctx)` ou prefixo do hash da config
    - o descriptor fica disponível como artefato `release_descriptor` do contexto
    """

    def __init__(
        self,
        *,
        notifier: ReleaseNotifier,
        cluster: str,
        namespaces: Iterable[str] = (),
        instances: Iterable[ReleaseInstance] = (),
        version_factory: Optional[Callable[[PipelineContext], str]] = None,
    ):
        self.notifier = notifier
        self.cluster = cluster
        self.namespaces = tuple(namespaces)
        self.instances = tuple(instances)
        self.version_factory = version_factory or _config_version

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        *,
        notifier: ReleaseNotifier,
        version_factory: Optional[Callable[[PipelineContext], str]] = None,
    ) -> "ReleasingPostBuildHook":
        """Lê a seção `release` (cluster, namespaces, instances: [{host, port}])."""
        section = (config or {}).get("release", {}) or {}
        instances = [
            ReleaseInstance(host=str(item.get("host", "")), port=int(item.get("port", 0)))
            for item in section.get("instances", []) or []
        ]
        return cls(
            notifier=notifier,
            cluster=str(section.get("cluster", "")),
            namespaces=section.get("namespaces", []) or [],
            instances=instances,
            version_factory=version_factory,
        )

    def build_descriptor(self, ctx: PipelineContext) -> ReleaseDescriptor:
        descriptor = ReleaseDescriptor(
            cluster=self.cluster,
            namespaces=self.namespaces,
            meta=ReleaseMeta(history_id=ctx.task_history.id, version_id=self.version_factory(ctx)),
            instances=self.instances,
        )
        descriptor.validate()
        return descriptor

    def __call__(self, ctx: PipelineContext) -> None:
        descriptor = self.build_descriptor(ctx)
        fingerprint = descriptor.fingerprint()
        ctx.set_artifact(RELEASE_ARTIFACT, descriptor)
        ctx.log(
            edge_id=RELEASE_EDGE_ID,
            level="INFO",
            message="release descriptor prepared",
            cluster=descriptor.cluster,
            fingerprint=fingerprint,
        )
        ctx.trace(
            add_event,
            event_type="release_prepared",
            ts=datetime.now(timezone.utc),
            payload={"fingerprint": fingerprint, "descriptor": descriptor.to_dict()},
        )
        self.notifier.notify(descriptor)
