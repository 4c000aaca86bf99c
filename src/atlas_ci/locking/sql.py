"""Mutex de build e quadro de status compartilhados via banco (SQLAlchemy).

`SqlBuildMutex`
- aquisição = INSERT de uma linha de lease em `ci_build_lock` (PK = chave)
- chave duplicada (`IntegrityError`) = lock em posse de outro holder
- leases vencidos (`expires_at` no passado) são removidos antes de cada tentativa,
  então um nó que morreu segurando o lock não trava o projeto para sempre
- enquanto o lock está em posse, uma thread de renovação estende `expires_at`
  a cada `renew_interval_ms` (padrão: um terço do lease); um build mais longo
  que `lease_ttl_ms` não perde o lock
- a renovação que não encontra mais a linha do owner marca o lease como perdido
- tentativas a cada `poll_interval_ms` até o timeout
- `unlock` para a renovação e remove apenas a linha cujo `owner` é o token deste
  holder; retorna False quando essa linha já não existia

`SqlBuildStatusBoard`
- upsert em `ci_build_status`; leitura respeita `expires_at`
"""

from __future__ import annotations

import os
import socket
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from atlas_ci.core.config.settings import BuildSettings
from atlas_ci.locking.status import BuildStatus
from atlas_ci.persistence.schema import BuildLockRow, BuildStatusRow, utcnow


def _default_owner_prefix() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


@dataclass
class _HeldLease:
    owner: str
    stop: threading.Event = field(default_factory=threading.Event)
    thread: Optional[threading.Thread] = None
    renewals: int = 0
    lost: bool = False
    last_error: Optional[str] = None


class SqlBuildMutex:
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        lease_ttl_ms: int,
        poll_interval_ms: int = 200,
        renew_interval_ms: Optional[int] = None,
        owner_prefix: Optional[str] = None,
    ):
        if lease_ttl_ms <= 0:
            raise ValueError("lease_ttl_ms deve ser > 0")
        if poll_interval_ms <= 0:
            raise ValueError("poll_interval_ms deve ser > 0")
        if renew_interval_ms is None:
            renew_interval_ms = max(1, lease_ttl_ms // 3)
        if renew_interval_ms <= 0 or renew_interval_ms >= lease_ttl_ms:
            raise ValueError("renew_interval_ms deve estar entre 0 e lease_ttl_ms (exclusivo)")
        self._sessions = session_factory
        self.lease_ttl_ms = lease_ttl_ms
        self.poll_interval_ms = poll_interval_ms
        self.renew_interval_ms = renew_interval_ms
        self.owner_prefix = owner_prefix or _default_owner_prefix()
        self._held: Dict[str, _HeldLease] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        session_factory: sessionmaker,
        settings: BuildSettings,
        *,
        owner_prefix: Optional[str] = None,
    ) -> "SqlBuildMutex":
        """Mutex com lease e polling vindos de `lock.*` da config efetiva."""
        return cls(
            session_factory,
            lease_ttl_ms=settings.lock_lease_ttl_ms,
            poll_interval_ms=settings.lock_poll_interval_ms,
            owner_prefix=owner_prefix,
        )

    def try_lock(self, key: str, timeout_ms: int) -> bool:
        deadline = time.monotonic() + max(0, timeout_ms) / 1000.0
        while True:
            owner = self._try_acquire_once(key)
            if owner is not None:
                self._start_renewal(key, owner)
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            time.sleep(min(self.poll_interval_ms / 1000.0, remaining))

    def unlock(self, key: str) -> bool:
        with self._lock:
            held = self._held.pop(key, None)
        if held is None:
            raise RuntimeError(f"unlock de lock não adquirido: {key}")
        held.stop.set()
        if held.thread is not None:
            held.thread.join()
        with self._sessions() as session:
            result = session.execute(
                delete(BuildLockRow).where(BuildLockRow.lock_key == key, BuildLockRow.owner == held.owner)
            )
            session.commit()
        return result.rowcount > 0

    def holder_of(self, key: str) -> Optional[str]:
        """Owner do lease vigente (ou None)."""
        with self._sessions() as session:
            row = session.get(BuildLockRow, key)
            if row is None or row.expires_at <= utcnow():
                return None
            return row.owner

    def is_lease_lost(self, key: str) -> bool:
        """True se a renovação já detectou que o lease em posse foi perdido."""
        with self._lock:
            held = self._held.get(key)
        return held is not None and held.lost

    def _try_acquire_once(self, key: str) -> Optional[str]:
        now = utcnow()
        owner = f"{self.owner_prefix}:{uuid.uuid4().hex}"
        with self._sessions() as session:
            try:
                session.execute(
                    delete(BuildLockRow).where(BuildLockRow.lock_key == key, BuildLockRow.expires_at <= now)
                )
                session.add(
                    BuildLockRow(
                        lock_key=key,
                        owner=owner,
                        acquired_at=now,
                        expires_at=now + timedelta(milliseconds=self.lease_ttl_ms),
                    )
                )
                session.commit()
            except IntegrityError:
                session.rollback()
                return None
        return owner

    def _start_renewal(self, key: str, owner: str) -> None:
        held = _HeldLease(owner=owner)
        held.thread = threading.Thread(
            target=self._renew_loop,
            args=(key, held),
            name=f"atlas-ci-lease:{key}",
            daemon=True,
        )
        with self._lock:
            self._held[key] = held
        held.thread.start()

    def _renew_loop(self, key: str, held: _HeldLease) -> None:
        interval_s = self.renew_interval_ms / 1000.0
        while not held.stop.wait(interval_s):
            try:
                renewed = self._renew_once(key, held.owner)
            except SQLAlchemyError as e:
                # nova tentativa no próximo ciclo; o lease ainda cobre a falha
                held.last_error = f"{e.__class__.__name__}: {e}"
                continue
            if not renewed:
                held.lost = True
                return
            held.renewals += 1

    def _renew_once(self, key: str, owner: str) -> bool:
        with self._sessions() as session:
            result = session.execute(
                update(BuildLockRow)
                .where(BuildLockRow.lock_key == key, BuildLockRow.owner == owner)
                .values(expires_at=utcnow() + timedelta(milliseconds=self.lease_ttl_ms))
            )
            session.commit()
        return result.rowcount > 0


class SqlBuildStatusBoard:
    def __init__(self, session_factory: sessionmaker, *, ttl_ms: int):
        self._sessions = session_factory
        self.ttl_ms = ttl_ms
        self._open = False

    @classmethod
    def from_settings(cls, session_factory: sessionmaker, settings: BuildSettings) -> "SqlBuildStatusBoard":
        return cls(session_factory, ttl_ms=settings.status_ttl_ms)

    def start(self) -> "SqlBuildStatusBoard":
        self._open = True
        return self

    def close(self) -> None:
        self._open = False

    def __enter__(self) -> "SqlBuildStatusBoard":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _require_open(self) -> None:
        if not self._open:
            raise RuntimeError("BuildStatusBoard não iniciado (chame start())")

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
        self._require_open()
        now = utcnow()
        with self._sessions() as session:
            session.merge(
                BuildStatusRow(
                    status_key=key,
                    status=status,
                    task_id=task_id,
                    branch=branch,
                    commit=commit,
                    rollback=bool(rollback),
                    published_at=now,
                    expires_at=now + timedelta(milliseconds=self.ttl_ms),
                )
            )
            session.commit()

    def latest(self, key: str) -> Optional[BuildStatus]:
        self._require_open()
        with self._sessions() as session:
            row = session.get(BuildStatusRow, key)
            if row is None:
                return None
            if row.expires_at <= utcnow():
                session.delete(row)
                session.commit()
                return None
            return BuildStatus(
                key=row.status_key,
                status=row.status,
                task_id=row.task_id,
                branch=row.branch,
                commit=row.commit,
                rollback=bool(row.rollback),
            )

    def sweep(self) -> int:
        with self._sessions() as session:
            expired = session.execute(
                select(BuildStatusRow.status_key).where(BuildStatusRow.expires_at <= utcnow())
            ).scalars().all()
            if expired:
                session.execute(delete(BuildStatusRow).where(BuildStatusRow.status_key.in_(expired)))
                session.commit()
            return len(expired)
