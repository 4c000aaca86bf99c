"""Quadro de status de conclusão de builds por projeto.

Quem segura o mutex de um projeto publica aqui o resultado do seu build
(success/failed, branch, commit e se foi um rollback) ANTES de liberar o lock. Uma run que esperou
o lock consulta o quadro para decidir se o build concorrente realmente
satisfaz a sua aresta, em vez de assumir sucesso. Um build de rollback
nunca satisfaz uma aresta forward: o commit dele não é a ponta da branch.

O quadro é um objeto de estado com ciclo de vida explícito (`start`/`close`,
ou uso como context manager), nunca um dict global: entradas expiram após
`ttl_ms` e são removidas na leitura ou por `sweep()`.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol, runtime_checkable


STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class BuildStatus:
    key: str
    status: str
    task_id: int
    branch: Optional[str] = None
    commit: Optional[str] = None
    rollback: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCESS


@runtime_checkable
class BuildStatusBoard(Protocol):
    def publish(
        self,
        key: str,
        *,
        status: str,
        task_id: int,
        branch: Optional[str] = None,
        commit: Optional[str] = None,
        rollback: bool = False,
    ) -> None:
        ...

    def latest(self, key: str) -> Optional[BuildStatus]:
        ...


class LocalBuildStatusBoard:
    """Implementação em processo, com TTL e relógio injetável."""

    def __init__(self, *, ttl_ms: int, clock: Callable[[], float] = time.monotonic):
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._entries: Dict[str, tuple] = {}
        self._lock = threading.Lock()
        self._open = False

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------
    def start(self) -> "LocalBuildStatusBoard":
        with self._lock:
            self._open = True
        return self

    def close(self) -> None:
        with self._lock:
            self._open = False
            self._entries.clear()

    @property
    def is_open(self) -> bool:
        return self._open

    def __enter__(self) -> "LocalBuildStatusBoard":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _require_open(self) -> None:
        if not self._open:
            raise RuntimeError("BuildStatusBoard não iniciado (chame start())")

    # ------------------------------------------------------------------
    # Operações
    # ------------------------------------------------------------------
    def publish(
        self,
        key: str,
        *,
        status: str,
        task_id: int,
        branch: Optional[str] = None,
        commit: Optional[str] = None,
        rollback: bool = False,
    ) -> None:
        expires_at = self._clock() + self.ttl_ms / 1000.0
        entry = BuildStatus(
            key=key, status=status, task_id=task_id, branch=branch, commit=commit, rollback=bool(rollback)
        )
        with self._lock:
            self._require_open()
            self._entries[key] = (entry, expires_at)

    def latest(self, key: str) -> Optional[BuildStatus]:
        with self._lock:
            self._require_open()
            item = self._entries.get(key)
            if item is None:
                return None
            entry, expires_at = item
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return entry

    def sweep(self) -> int:
        """Remove entradas expiradas; devolve quantas foram removidas."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, exp) in self._entries.items() if exp <= now]
            for k in expired:
                del self._entries[k]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
