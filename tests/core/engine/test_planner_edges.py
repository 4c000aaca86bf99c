# tests/core/engine/test_planner_edges.py
"""
Testes do planejamento de arestas de build.

Os testes asseguram que:
- todas as dependências precedem o primário, que é sempre a última aresta
- o plano é determinístico e mantém a ordem do resolver (primeira ocorrência)
- comandos customizados são atribuídos ao projeto certo
- conflitos estruturais (ciclo no primário, branches divergentes) são fatais

Limites explícitos:
    - Não valida execução de arestas
    - Não valida integração com PipelineContext ou Manifest
"""

import pytest

try:
    from atlas_ci.core.engine.planner import extract_override_command, plan_build_edges
    from atlas_ci.core.exceptions import ConflictingDependencyError, CycleDetectedError
    from atlas_ci.core.pipeline.types import Dependency, TaskBuildCommand, TaskHistory
except Exception as e:  # noqa: BLE001
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing planner API. Implement:\n"
            "- src/atlas_ci/core/engine/planner.py (plan_build_edges, extract_override_command)\n"
            f"Import error: {_IMPORT_ERR}"
        )


def test_dependencies_precede_primary_in_resolver_order():
    _require_imports()
    task = TaskHistory(id=1, project_id=1, branch_name="main", build_command="make all")
    deps = [Dependency(30, "main"), Dependency(10, "develop"), Dependency(20, "main")]

    edges = plan_build_edges(task, deps)

    assert [e.project_id for e in edges] == [30, 10, 20, 1]
    assert [e.is_dependency for e in edges] == [True, True, True, False]
    assert edges[1].branch == "develop"
    assert edges[1].dependency_id == 10
    primary = edges[-1]
    assert primary.dependency_id is None
    assert primary.branch == "main"
    assert primary.override_command == "make all"

    assert plan_build_edges(task, list(deps)) == edges


def test_deepest_first_resolver_order_is_kept():
    _require_imports()
    from atlas_ci.persistence.memory import StaticDependencyResolver

    resolver = StaticDependencyResolver({1: [Dependency(10, "main")], 10: [Dependency(20, "main")]})
    task = TaskHistory(id=1, project_id=1, branch_name="main")

    edges = plan_build_edges(task, resolver.hierarchy_of(1))

    assert [e.edge_id for e in edges] == ["dependency.20", "dependency.10", "primary.1"]


def test_overrides_are_scoped_to_their_project():
    _require_imports()
    task = TaskHistory(id=5, project_id=1, branch_name="main")
    overrides = [TaskBuildCommand(task_id=5, project_id=20, command="npm ci && npm run build")]

    edges = plan_build_edges(task, [Dependency(10, "main"), Dependency(20, "main")], overrides)

    assert edges[0].override_command is None
    assert edges[1].override_command == "npm ci && npm run build"
    assert edges[2].override_command is None


def test_extract_override_command_absent_is_none():
    _require_imports()
    overrides = [TaskBuildCommand(task_id=1, project_id=10, command="echo a")]
    assert extract_override_command(overrides, 10) == "echo a"
    assert extract_override_command(overrides, 99) is None
    assert extract_override_command([], 10) is None


def test_no_dependencies_yields_only_primary():
    _require_imports()
    edges = plan_build_edges(TaskHistory(id=1, project_id=7, branch_name="main"), [])
    assert len(edges) == 1
    assert edges[0].edge_id == "primary.7"


def test_repeated_dependency_with_same_branch_is_planned_once():
    _require_imports()
    task = TaskHistory(id=1, project_id=1, branch_name="main")
    edges = plan_build_edges(task, [Dependency(10, "main"), Dependency(10, "main")])
    assert [e.edge_id for e in edges] == ["dependency.10", "primary.1"]


def test_primary_in_own_dependencies_is_a_cycle():
    _require_imports()
    task = TaskHistory(id=1, project_id=1, branch_name="main")
    with pytest.raises(CycleDetectedError) as exc:
        plan_build_edges(task, [Dependency(10, "main"), Dependency(1, "main")])
    assert exc.value.details["cycle"] == [1, 1]


def test_same_dependency_with_different_branches_conflicts():
    _require_imports()
    task = TaskHistory(id=1, project_id=1, branch_name="main")
    with pytest.raises(ConflictingDependencyError) as exc:
        plan_build_edges(task, [Dependency(10, "main"), Dependency(10, "release")])
    assert exc.value.details == {"dependent_id": 10, "branches": ["main", "release"]}
