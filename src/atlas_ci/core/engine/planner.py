# src/atlas_ci/core/engine/planner.py
"""
Planejador das arestas de build de uma run.

Este módulo valida o conjunto de dependências resolvido para o projeto
primário e produz a sequência de `BuildEdge` que o orchestrator executa.

Princípios fundamentais:
    - Todas as dependências vêm antes do primário (único requisito de ordem)
    - Entre dependências não há ordem semântica; a ordem do resolver
      (primeira ocorrência de cada projeto) é mantida, então um resolver
      que entrega o fecho do mais profundo para o mais raso é respeitado
    - Nenhuma decisão silenciosa: conflitos são erros estruturais fatais

Invariantes:
    - Cada projeto aparece no máximo uma vez
    - O primário é sempre a última aresta
    - A mesma entrada produz sempre o mesmo plano

Limites explícitos:
    - Não executa builds
    - Não interage com PipelineContext nem com o Manifest
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from atlas_ci.core.errors import conflicting_dependency, dependency_cycle
from atlas_ci.core.pipeline.types import BuildEdge, Dependency, TaskBuildCommand, TaskHistory


def extract_override_command(overrides: Iterable[TaskBuildCommand], project_id: int) -> Optional[str]:
    """Comando customizado do projeto na lista da task (ausente ⇒ None)."""
    for override in overrides:
        if override.project_id == project_id:
            return override.command
    return None


def plan_build_edges(
    task_history: TaskHistory,
    dependencies: Iterable[Dependency],
    overrides: Iterable[TaskBuildCommand] = (),
) -> List[BuildEdge]:
    """
    Produz o plano de arestas: dependências (na ordem do resolver) e o primário.

    Args:
        task_history: run corrente (projeto primário, branch e comando).
        dependencies: fecho transitivo das dependências do primário.
        overrides: comandos customizados da task (por projeto).

    Returns:
        List[BuildEdge]: arestas em ordem de execução.

    Raises:
        CycleDetectedError: o primário aparece entre as próprias dependências.
        ConflictingDependencyError: o mesmo projeto com branches diferentes.
    """
    override_list = list(overrides)

    branches: Dict[int, str] = {}
    for dep in dependencies:
        if dep.dependent_id == task_history.project_id:
            raise dependency_cycle(cycle=[task_history.project_id, task_history.project_id])
        known = branches.get(dep.dependent_id)
        if known is None:
            branches[dep.dependent_id] = dep.branch
        elif known != dep.branch:
            raise conflicting_dependency(dependent_id=dep.dependent_id, branches=[known, dep.branch])

    edges: List[BuildEdge] = [
        BuildEdge(
            project_id=dependent_id,
            dependency_id=dependent_id,
            branch=branches[dependent_id],
            is_dependency=True,
            override_command=extract_override_command(override_list, dependent_id),
        )
        for dependent_id in branches
    ]
    edges.append(
        BuildEdge(
            project_id=task_history.project_id,
            dependency_id=None,
            branch=task_history.branch_name,
            is_dependency=False,
            override_command=task_history.build_command,
        )
    )
    return edges
