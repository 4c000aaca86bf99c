"""Release descriptor entregue ao consumidor pós-build.

Forma: cluster, namespaces, meta (history_id, version_id) e instâncias
(host, port). A representação é canônica: namespaces ordenados e sem
repetição, instâncias ordenadas e sem repetição. Dois descriptors com o
mesmo conteúdo têm o mesmo `fingerprint()`, independentemente da ordem em
que os dados foram informados.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Tuple

from atlas_ci.core.config.hashing import sha256_hex


@dataclass(frozen=True, order=True)
class ReleaseInstance:
    host: str
    port: int

    def validate(self) -> None:
        if not isinstance(self.host, str) or not self.host.strip():
            raise ValueError("ReleaseInstance.host deve ser string não vazia")
        if isinstance(self.port, bool) or not isinstance(self.port, int) or not 0 < self.port < 65536:
            raise ValueError(f"ReleaseInstance.port inválida: {self.port!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {"host": self.host, "port": self.port}


@dataclass(frozen=True)
class ReleaseMeta:
    history_id: int
    version_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"history_id": self.history_id, "version_id": self.version_id}


@dataclass(frozen=True)
class ReleaseDescriptor:
    cluster: str
    meta: ReleaseMeta
    namespaces: Tuple[str, ...] = field(default_factory=tuple)
    instances: Tuple[ReleaseInstance, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "namespaces", _canonical_namespaces(self.namespaces))
        object.__setattr__(self, "instances", tuple(sorted(set(self.instances))))

    def validate(self) -> None:
        """Falha com ValueError se o descriptor não pode ser publicado."""
        if not isinstance(self.cluster, str) or not self.cluster.strip():
            raise ValueError("ReleaseDescriptor.cluster deve ser string não vazia")
        if not self.meta.version_id:
            raise ValueError("ReleaseMeta.version_id deve ser informado")
        for instance in self.instances:
            instance.validate()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cluster": self.cluster,
            "namespaces": list(self.namespaces),
            "meta": self.meta.to_dict(),
            "instances": [i.to_dict() for i in self.instances],
        }

    def fingerprint(self) -> str:
        return sha256_hex(self.to_dict())


def _canonical_namespaces(namespaces: Iterable[str]) -> Tuple[str, ...]:
    return tuple(sorted({ns.strip() for ns in namespaces if ns and ns.strip()}))
