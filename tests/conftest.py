# tests/conftest.py
"""
Fixtures compartilhados para testes do Atlas CI.

Fornecem:
- configuração de build mínima apontando para diretórios sob `tmp_path`
- projetos, stores e resolver de referência (em memória)
- um coordinator montado com colaboradores falsos
- fábrica de PipelineContext com Manifest anexado

Invariantes:
    - Nenhuma fixture toca diretórios fora de `tmp_path`
    - Timeouts são curtos para manter os testes rápidos
"""

import pytest
from datetime import datetime, timezone


# =====================================================
# Configuração
# =====================================================

@pytest.fixture
def config_defaults_yaml() -> str:
    """YAML de defaults semelhante a `config/config.defaults.yaml`."""
    return """\
build:
  job_timeout_ms: 300000
  shared_dependency_try_timeout_ms: 0
  shell: /bin/bash
lock:
  namespace: ci.build.dependency.
  poll_interval_ms: 200
engine:
  parallel_dependencies: false
  max_workers: 4
"""


@pytest.fixture
def config_local_yaml() -> str:
    """Overrides locais de um nó do cluster."""
    return """\
build:
  job_timeout_ms: 60000
engine:
  parallel_dependencies: true
"""


@pytest.fixture
def build_config(tmp_path) -> dict:
    """Configuração efetiva mínima, com workspace isolado em `tmp_path`."""
    return {
        "build": {
            "workspace_dir": str(tmp_path / "sources"),
            "job_log_dir": str(tmp_path / "logs"),
            "tmp_command_dir": str(tmp_path / "tmp"),
            "job_timeout_ms": 10_000,
            "shared_dependency_try_timeout_ms": 0,
            "shared_dependency_wait_timeout_ms": 2_000,
            "kill_grace_ms": 500,
        },
        "lock": {"poll_interval_ms": 20},
        "engine": {"parallel_dependencies": False, "max_workers": 4},
        "status": {"ttl_ms": 60_000},
    }


@pytest.fixture
def settings(build_config):
    from atlas_ci.core.config.settings import BuildSettings

    return BuildSettings.from_config(build_config)


# =====================================================
# Domínio: projetos P → {A@main, B@release}
# =====================================================

@pytest.fixture
def projects():
    from atlas_ci.core.pipeline.types import Project
    from atlas_ci.persistence.memory import InMemoryProjectRepository

    return InMemoryProjectRepository(
        [
            Project(id=1, name="portal", vcs_kind="git", http_url="https://git.local/portal.git", build_type="maven"),
            Project(id=10, name="lib-a", vcs_kind="git", http_url="https://git.local/lib-a.git", build_type="maven"),
            Project(id=20, name="lib-b", vcs_kind="git", http_url="https://git.local/lib-b.git", build_type="npm"),
        ]
    )


@pytest.fixture
def dependency_resolver():
    from atlas_ci.core.pipeline.types import Dependency
    from atlas_ci.persistence.memory import StaticDependencyResolver

    return StaticDependencyResolver({1: [Dependency(10, "main"), Dependency(20, "release")]})


@pytest.fixture
def task_signs():
    from atlas_ci.persistence.memory import InMemoryTaskSignStore

    return InMemoryTaskSignStore()


@pytest.fixture
def synchronizer():
    from tests.fixtures.collaborators import FakeSourceSynchronizer

    return FakeSourceSynchronizer()


@pytest.fixture
def runner():
    from tests.fixtures.collaborators import RecordingRunner

    return RecordingRunner()


@pytest.fixture
def mutex():
    from atlas_ci.locking.mutex import LocalBuildMutex

    return LocalBuildMutex()


@pytest.fixture
def status_board():
    from atlas_ci.locking.status import LocalBuildStatusBoard

    board = LocalBuildStatusBoard(ttl_ms=60_000).start()
    yield board
    board.close()


@pytest.fixture
def coordinator(mutex, synchronizer, projects, task_signs, runner, status_board):
    from atlas_ci.core.engine.coordinator import DependencyBuildCoordinator

    return DependencyBuildCoordinator(
        mutex=mutex,
        synchronizer=synchronizer,
        projects=projects,
        task_signs=task_signs,
        runner=runner,
        status_board=status_board,
    )


@pytest.fixture
def make_ctx(build_config, settings):
    """Fábrica de PipelineContext (com Manifest) para uma TaskHistory."""
    from atlas_ci.core.pipeline.context import PipelineContext
    from atlas_ci.core.traceability.manifest import create_manifest

    def _make(task_history, *, is_rollback: bool = False, with_manifest: bool = True):
        manifest = None
        if with_manifest:
            manifest = create_manifest(
                task_id=task_history.id,
                project_id=task_history.project_id,
                branch=task_history.branch_name,
                is_rollback=is_rollback,
                started_at=datetime.now(timezone.utc),
                atlas_version="test",
                config_hash="deadbeef",
                ref_id=task_history.ref_id,
            )
        return PipelineContext.for_task(
            task_history,
            config=build_config,
            settings=settings,
            is_rollback=is_rollback,
            config_hash="deadbeef",
            manifest=manifest,
        )

    return _make
