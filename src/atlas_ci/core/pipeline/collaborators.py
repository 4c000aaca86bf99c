# src/atlas_ci/core/pipeline/collaborators.py
"""
Contratos dos colaboradores externos do orchestrator de build.

O core do Atlas CI não implementa VCS, persistência de registros nem o
passo pós-build; ele os consome através dos protocolos abaixo, validados
por duck typing em runtime (`@runtime_checkable`).

Contratos:
    - DependencyResolver        → hierarquia (transitiva) de dependências
    - SourceSynchronizer        → clone/checkout/pull/rollback/latest commit
    - ProjectRepository         → metadados de projeto
    - TaskSignStore             → proveniência (append-only)
    - BuildCommandOverrideStore → comandos customizados por task
    - PostBuildHook             → passo pós-build (empacotamento, release...)

Invariantes esperados das implementações:
    - `TaskSignStore.insert` rejeita um segundo registro para o mesmo
      (task_id, dependency_id) com `DuplicateProvenanceError`
    - falhas de VCS são levantadas pelo próprio colaborador (de preferência
      `SourceSyncError`) e propagadas pelo core sem alteração
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List, Optional, Protocol, runtime_checkable

from .types import Dependency, Project, TaskBuildCommand, TaskSign

if TYPE_CHECKING:  # pragma: no cover
    from .context import PipelineContext


@runtime_checkable
class DependencyResolver(Protocol):
    def hierarchy_of(self, project_id: int, ref: Optional[str] = None) -> Iterable[Dependency]:
        """Conjunto (sem ordem) de dependências transitivas do projeto."""
        ...


@runtime_checkable
class SourceSynchronizer(Protocol):
    def has_local_copy(self, path: str) -> bool:
        ...

    def clone(self, vcs_kind: str, url: str, path: str, branch: str) -> None:
        ...

    def checkout_and_pull(self, vcs_kind: str, path: str, branch: str) -> None:
        ...

    def rollback(self, vcs_kind: str, path: str, commit: str) -> None:
        ...

    def latest_commit(self, path: str) -> str:
        ...


@runtime_checkable
class ProjectRepository(Protocol):
    def get(self, project_id: int) -> Optional[Project]:
        ...


@runtime_checkable
class TaskSignStore(Protocol):
    def find(self, dependency_id: int, ref_id: int) -> Optional[TaskSign]:
        """TaskSign da dependência registrado pela task `ref_id`."""
        ...

    def insert(self, sign: TaskSign) -> None:
        ...


@runtime_checkable
class BuildCommandOverrideStore(Protocol):
    def find_by_task(self, task_id: int) -> List[TaskBuildCommand]:
        ...


@runtime_checkable
class PostBuildHook(Protocol):
    def __call__(self, ctx: "PipelineContext") -> None:
        """Executado uma única vez, após o build bem-sucedido de todas as arestas."""
        ...
