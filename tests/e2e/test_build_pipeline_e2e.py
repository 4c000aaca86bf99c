# tests/e2e/test_build_pipeline_e2e.py
"""
E2E do pipeline de build: configuração real (YAML), ProcessRunner real
(bash), mutex/status/proveniência em SQLite e VCS falso.

Cenário: portal (1) depende de lib-a (10@main) e lib-b (20@release).
Comandos padrão vêm de `build.default_commands` (echo), lib-a usa comando
customizado da task.

Garantias verificadas:
- a saída de todos os builds da run vai para o MESMO log da task
- TaskSign persistido para as dependências e usado no rollback
- falha de build do primário propaga BuildExecutionError e fecha o Manifest
"""

import shutil
from pathlib import Path

import pytest
import yaml

from atlas_ci.core.config.loader import load_config_with_hash
from atlas_ci.core.config.settings import BuildSettings
from atlas_ci.core.engine import DependencyBuildCoordinator, PipelineOrchestrator
from atlas_ci.core.exceptions import BuildExecutionError
from atlas_ci.core.pipeline.types import TaskBuildCommand, TaskHistory
from atlas_ci.core.traceability.manifest import load_manifest
from atlas_ci.locking.sql import SqlBuildMutex, SqlBuildStatusBoard
from atlas_ci.persistence.memory import InMemoryBuildCommandOverrideStore
from atlas_ci.persistence.schema import create_database_engine, create_schema, create_session_factory
from atlas_ci.persistence.sql import SqlTaskSignStore
from tests.fixtures.collaborators import FakeSourceSynchronizer

DEFAULTS = Path(__file__).resolve().parents[2] / "config" / "config.defaults.yaml"

pytestmark = pytest.mark.skipif(shutil.which("bash") is None, reason="bash indisponível")


@pytest.fixture
def local_config(tmp_path):
    path = tmp_path / "config.local.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "build": {
                    "workspace_dir": str(tmp_path / "sources"),
                    "job_log_dir": str(tmp_path / "logs"),
                    "tmp_command_dir": str(tmp_path / "tmp"),
                    "job_timeout_ms": 10_000,
                    "kill_grace_ms": 500,
                    "shell": shutil.which("bash"),
                    "default_commands": {
                        "maven": ["echo maven ${projectName} ${commit}"],
                        "npm": ["echo npm ${projectName} ${branch}", "echo $(pwd)"],
                    },
                },
                "lock": {"poll_interval_ms": 20},
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def pipeline(tmp_path, local_config, projects, dependency_resolver):
    config, config_hash = load_config_with_hash(defaults_path=str(DEFAULTS), local_path=str(local_config))
    settings = BuildSettings.from_config(config)

    engine = create_database_engine(f"sqlite:///{tmp_path / 'ci.db'}")
    create_schema(engine)
    sessions = create_session_factory(engine)
    task_signs = SqlTaskSignStore(sessions)
    synchronizer = FakeSourceSynchronizer()

    with SqlBuildStatusBoard.from_settings(sessions, settings) as board:
        coordinator = DependencyBuildCoordinator.from_settings(
            settings,
            mutex=SqlBuildMutex.from_settings(sessions, settings),
            synchronizer=synchronizer,
            projects=projects,
            task_signs=task_signs,
            status_board=board,
        )
        overrides = InMemoryBuildCommandOverrideStore(
            [TaskBuildCommand(task_id=100, project_id=10, command="printf 'override %s\\n' ${projectId}")]
        )
        orchestrator = PipelineOrchestrator(
            coordinator=coordinator,
            dependency_resolver=dependency_resolver,
            overrides=overrides,
            config=config,
            config_hash=config_hash,
        )
        yield orchestrator, settings, task_signs, synchronizer
    engine.dispose()


def test_forward_run_then_rollback(pipeline):
    orchestrator, settings, task_signs, synchronizer = pipeline

    result = orchestrator.run_pipeline(TaskHistory(id=100, project_id=1, branch_name="main"))

    assert result.succeeded
    log = settings.job_log(100).read_text(encoding="utf-8")
    assert "override 10" in log
    assert "npm lib-b release" in log
    assert str(settings.project_source_dir("lib-b")) in log
    assert "maven portal portal-main-tip" in log
    assert [s.sha_git for s in task_signs.for_task(100)] == ["lib-a-main-tip", "lib-b-release-tip"]

    manifest = load_manifest(settings.manifest_path(100))
    assert manifest.run["status"] == "success"
    assert manifest.inputs["config_hash"] == orchestrator.config_hash

    synchronizer.tips[("https://git.local/lib-b.git", "release")] = "lib-b-hotfix"
    rollback = orchestrator.run_pipeline(
        TaskHistory(id=101, project_id=1, branch_name="main", sha_git="portal-main-tip", ref_id=100),
        is_rollback=True,
    )

    assert rollback.edge("dependency.20").commit == "lib-b-release-tip"
    assert task_signs.for_task(101) == []
    assert "maven portal portal-main-tip" in settings.job_log(101).read_text(encoding="utf-8")


def test_primary_build_failure_closes_manifest(pipeline):
    orchestrator, settings, task_signs, _ = pipeline
    task = TaskHistory(id=200, project_id=1, branch_name="main", build_command="echo quebrando; exit 7")

    with pytest.raises(BuildExecutionError) as exc:
        orchestrator.run_pipeline(task)

    assert exc.value.details["exit_code"] == 7
    assert "quebrando" in settings.job_log(200).read_text(encoding="utf-8")
    # dependências concluídas antes da falha continuam assinadas
    assert len(task_signs.for_task(200)) == 2

    manifest = load_manifest(settings.manifest_path(200))
    assert manifest.run["status"] == "failed"
    assert manifest.edges["primary.1"]["status"] == "failed"
    assert manifest.edges["primary.1"]["error"]["details"]["exit_code"] == 7
