"""Mutex de build por projeto (contrato + implementação em processo).

Contrato (`BuildMutex`):
- `try_lock(key, timeout_ms) -> bool`: tenta adquirir por até `timeout_ms`
  (0 = sondagem não bloqueante)
- `unlock(key) -> bool`: libera um lock adquirido por este holder; False
  quando o lease já não era dele (implementações com expiração)

A chave é derivada apenas do id do projeto (`lock_key`), então o mesmo
projeto é sempre protegido pelo mesmo lock, seja ele alcançado como
dependência de qualquer run ou como primário. O lock protege tanto o
trabalho lógico (não duplicar builds) quanto a working copy em disco.

`LocalBuildMutex` serve um único processo (testes, deploy de nó único).
Para o cluster, ver `atlas_ci.locking.sql.SqlBuildMutex`.
"""

from __future__ import annotations

import threading
import time
from collections import Counter
from typing import Dict, Optional, Protocol, runtime_checkable

from atlas_ci.core.config.settings import DEFAULT_LOCK_NAMESPACE


def lock_key(namespace: Optional[str], project_id: int) -> str:
    return f"{namespace or DEFAULT_LOCK_NAMESPACE}{project_id}"


@runtime_checkable
class BuildMutex(Protocol):
    def try_lock(self, key: str, timeout_ms: int) -> bool:
        ...

    def unlock(self, key: str) -> bool:
        """Libera o lock; False se o holder já não era dono dele (lease perdido)."""
        ...


class LocalBuildMutex:
    """Mutex nomeado em memória, compartilhável entre threads/coordinators."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._held: Dict[str, bool] = {}
        self._acquisitions: Counter = Counter()
        self._releases: Counter = Counter()

    def try_lock(self, key: str, timeout_ms: int) -> bool:
        deadline = time.monotonic() + max(0, timeout_ms) / 1000.0
        with self._cond:
            while self._held.get(key):
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._cond.wait(remaining)
            self._held[key] = True
            self._acquisitions[key] += 1
            return True

    def unlock(self, key: str) -> bool:
        with self._cond:
            if not self._held.get(key):
                raise RuntimeError(f"unlock de lock não adquirido: {key}")
            del self._held[key]
            self._releases[key] += 1
            self._cond.notify_all()
            return True

    # ------------------------------------------------------------------
    # Inspeção
    # ------------------------------------------------------------------
    def held_count(self, key: Optional[str] = None) -> int:
        with self._cond:
            if key is None:
                return len(self._held)
            return 1 if self._held.get(key) else 0

    def acquisitions(self, key: str) -> int:
        with self._cond:
            return self._acquisitions[key]

    def releases(self, key: str) -> int:
        with self._cond:
            return self._releases[key]
