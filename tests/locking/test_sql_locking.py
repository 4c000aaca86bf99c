# tests/locking/test_sql_locking.py
"""
Testes do mutex e do quadro de status compartilhados via SQLAlchemy.

Dois `SqlBuildMutex` sobre o mesmo banco simulam dois nós do cluster.

Os testes asseguram que:
- o lease é exclusivo entre nós
- o lease é renovado enquanto o lock está em posse (seção crítica > lease_ttl_ms)
- um lease vencido de um nó morto é reclamado por outro nó
- `unlock` remove apenas o lease do próprio holder e reporta lease perdido
- o status publicado (incluindo a marca de rollback) é visível para outro nó até expirar
- `from_settings` usa os tempos de `lock.*` e `status.*`
"""

import time
from datetime import timedelta

import pytest
from sqlalchemy import delete

from atlas_ci.core.config.settings import BuildSettings
from atlas_ci.locking.sql import SqlBuildMutex, SqlBuildStatusBoard
from atlas_ci.locking.status import STATUS_SUCCESS
from atlas_ci.persistence.schema import (
    BuildLockRow,
    create_database_engine,
    create_schema,
    create_session_factory,
    utcnow,
)


@pytest.fixture
def session_factory(tmp_path):
    engine = create_database_engine(f"sqlite:///{tmp_path / 'ci.db'}")
    create_schema(engine)
    yield create_session_factory(engine)
    engine.dispose()


def _wait_until(predicate, timeout_s: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_lease_is_exclusive_between_nodes(session_factory):
    node_a = SqlBuildMutex(session_factory, lease_ttl_ms=60_000, poll_interval_ms=10, owner_prefix="node-a")
    node_b = SqlBuildMutex(session_factory, lease_ttl_ms=60_000, poll_interval_ms=10, owner_prefix="node-b")

    assert node_a.try_lock("ci.build.dependency.10", 0)
    assert not node_b.try_lock("ci.build.dependency.10", 50)
    assert node_b.try_lock("ci.build.dependency.20", 0)
    assert node_a.holder_of("ci.build.dependency.10").startswith("node-a:")

    assert node_a.unlock("ci.build.dependency.10") is True
    assert node_a.holder_of("ci.build.dependency.10") is None
    assert node_b.try_lock("ci.build.dependency.10", 0)
    assert node_b.unlock("ci.build.dependency.10") is True
    assert node_b.unlock("ci.build.dependency.20") is True


def test_lease_is_renewed_while_held_longer_than_ttl(session_factory):
    node_a = SqlBuildMutex(session_factory, lease_ttl_ms=150, poll_interval_ms=10, owner_prefix="node-a")
    node_b = SqlBuildMutex(session_factory, lease_ttl_ms=150, poll_interval_ms=10, owner_prefix="node-b")

    assert node_a.try_lock("k", 0)
    owner = node_a.holder_of("k")

    # seção crítica bem maior que o lease
    time.sleep(0.5)

    assert node_a.holder_of("k") == owner
    assert not node_b.try_lock("k", 0)
    assert not node_a.is_lease_lost("k")
    assert node_a.unlock("k") is True
    assert node_b.try_lock("k", 0)
    assert node_b.unlock("k") is True


def test_dead_node_lease_is_reclaimed(session_factory):
    now = utcnow()
    with session_factory() as session:
        session.add(
            BuildLockRow(
                lock_key="k",
                owner="dead-node:1",
                acquired_at=now - timedelta(seconds=10),
                expires_at=now - timedelta(seconds=5),
            )
        )
        session.commit()

    node_b = SqlBuildMutex(session_factory, lease_ttl_ms=60_000, poll_interval_ms=10, owner_prefix="node-b")
    assert node_b.holder_of("k") is None
    assert node_b.try_lock("k", 0)
    assert node_b.holder_of("k").startswith("node-b:")
    assert node_b.unlock("k") is True

def test_lost_lease_is_reported_and_does_not_release_new_holder(session_factory):
    node_a = SqlBuildMutex(session_factory, lease_ttl_ms=300, poll_interval_ms=10, owner_prefix="node-a")
    node_b = SqlBuildMutex(session_factory, lease_ttl_ms=60_000, poll_interval_ms=10, owner_prefix="node-b")

    assert node_a.try_lock("k", 0)

    # o lease de node-a some (ex.: reclamado após uma pausa longa do processo)
    with session_factory() as session:
        session.execute(delete(BuildLockRow).where(BuildLockRow.lock_key == "k"))
        session.commit()
    assert node_b.try_lock("k", 0)

    assert _wait_until(lambda: node_a.is_lease_lost("k"))
    assert node_a.unlock("k") is False
    assert node_b.holder_of("k").startswith("node-b:")
    assert node_b.unlock("k") is True


def test_unlock_without_lease_fails(session_factory):
    with pytest.raises(RuntimeError):
        SqlBuildMutex(session_factory, lease_ttl_ms=1_000).unlock("k")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"lease_ttl_ms": 0},
        {"lease_ttl_ms": 10, "poll_interval_ms": 0},
        {"lease_ttl_ms": 100, "renew_interval_ms": 100},
        {"lease_ttl_ms": 100, "renew_interval_ms": 0},
    ],
)
def test_invalid_timings_are_rejected(session_factory, kwargs):
    with pytest.raises(ValueError):
        SqlBuildMutex(session_factory, **kwargs)


def test_from_settings_uses_lock_and_status_timings(session_factory):
    settings = BuildSettings.from_config(
        {
            "build": {"job_timeout_ms": 60_000},
            "lock": {"poll_interval_ms": 25, "lease_ttl_ms": 90_000},
            "status": {"ttl_ms": 5_000},
        }
    )

    mutex = SqlBuildMutex.from_settings(session_factory, settings, owner_prefix="node-a")
    assert mutex.lease_ttl_ms == 90_000
    assert mutex.poll_interval_ms == 25
    assert mutex.renew_interval_ms == 30_000
    assert mutex.owner_prefix == "node-a"

    board = SqlBuildStatusBoard.from_settings(session_factory, settings)
    assert board.ttl_ms == 5_000


def test_status_board_is_shared_and_expires(session_factory):
    publisher = SqlBuildStatusBoard(session_factory, ttl_ms=100).start()
    with SqlBuildStatusBoard(session_factory, ttl_ms=100) as reader:
        publisher.publish("k", status=STATUS_SUCCESS, task_id=7, branch="main", commit="abc")
        publisher.publish("k", status=STATUS_SUCCESS, task_id=8, branch="main", commit="def")

        status = reader.latest("k")
        assert status.succeeded
        assert (status.task_id, status.branch, status.commit) == (8, "main", "def")
        assert status.rollback is False

        time.sleep(0.15)
        assert reader.latest("k") is None

        publisher.publish("x", status=STATUS_SUCCESS, task_id=9)
        time.sleep(0.15)
        assert reader.sweep() == 1

    with pytest.raises(RuntimeError):
        reader.latest("k")


def test_status_board_keeps_rollback_flag(session_factory):
    with SqlBuildStatusBoard(session_factory, ttl_ms=60_000) as board:
        board.publish("k", status=STATUS_SUCCESS, task_id=50, branch="main", commit="old-abc123", rollback=True)
        status = board.latest("k")

    assert status.succeeded
    assert status.rollback is True
    assert status.commit == "old-abc123"
