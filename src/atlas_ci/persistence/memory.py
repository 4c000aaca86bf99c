"""Implementações em memória dos colaboradores de registro.

Servem para testes, execuções locais e como referência de comportamento
para implementações reais (os mesmos invariantes se aplicam).
"""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from atlas_ci.core.errors import dependency_cycle, duplicate_provenance
from atlas_ci.core.pipeline.types import Dependency, Project, TaskBuildCommand, TaskSign


class InMemoryTaskSignStore:
    """TaskSignStore append-only; um único registro por (task_id, dependency_id)."""

    def __init__(self, signs: Iterable[TaskSign] = ()):
        self._signs: Dict[Tuple[int, int], TaskSign] = {}
        self._lock = threading.Lock()
        for sign in signs:
            self.insert(sign)

    def find(self, dependency_id: int, ref_id: int) -> Optional[TaskSign]:
        with self._lock:
            return self._signs.get((ref_id, dependency_id))

    def insert(self, sign: TaskSign) -> None:
        key = (sign.task_id, sign.dependency_id)
        with self._lock:
            if key in self._signs:
                raise duplicate_provenance(task_id=sign.task_id, dependency_id=sign.dependency_id)
            self._signs[key] = sign

    def all(self) -> List[TaskSign]:
        with self._lock:
            return sorted(self._signs.values(), key=lambda s: (s.task_id, s.dependency_id))

    def for_task(self, task_id: int) -> List[TaskSign]:
        return [s for s in self.all() if s.task_id == task_id]


class InMemoryBuildCommandOverrideStore:
    def __init__(self, commands: Iterable[TaskBuildCommand] = ()):
        self._commands: List[TaskBuildCommand] = list(commands)

    def add(self, command: TaskBuildCommand) -> None:
        self._commands.append(command)

    def find_by_task(self, task_id: int) -> List[TaskBuildCommand]:
        return [c for c in self._commands if c.task_id == task_id]


class InMemoryProjectRepository:
    def __init__(self, projects: Iterable[Project] = ()):
        self._projects: Dict[int, Project] = {p.id: p for p in projects}

    def add(self, project: Project) -> None:
        self._projects[project.id] = project

    def get(self, project_id: int) -> Optional[Project]:
        return self._projects.get(project_id)


class StaticDependencyResolver:
    """
    Resolver a partir de um grafo declarado: projeto → dependências diretas.

    `hierarchy_of` devolve o fecho transitivo, dependências mais profundas
    primeiro, sem repetir projetos (a primeira branch declarada vence; o
    planner detecta conflitos de branch). Um ciclo no grafo levanta
    CycleDetectedError.
    """

    def __init__(self, graph: Mapping[int, Iterable[Dependency]]):
        self._graph: Dict[int, Tuple[Dependency, ...]] = {k: tuple(v) for k, v in graph.items()}

    def hierarchy_of(self, project_id: int, ref: Optional[str] = None) -> List[Dependency]:
        ordered: List[Dependency] = []
        seen: Dict[int, Dependency] = {}
        visiting: List[int] = []

        def visit(node: int) -> None:
            if node in visiting:
                raise dependency_cycle(cycle=visiting[visiting.index(node):] + [node])
            visiting.append(node)
            for dep in self._graph.get(node, ()):
                if dep.dependent_id in seen:
                    continue
                visit(dep.dependent_id)
                seen[dep.dependent_id] = dep
                ordered.append(dep)
            visiting.pop()

        visit(project_id)
        return ordered
