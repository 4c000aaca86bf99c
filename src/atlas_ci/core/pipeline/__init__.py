# src/atlas_ci/core/pipeline/__init__.py
"""
# Pipeline Core (Atlas CI)

Este pacote define os **contratos canônicos** e as **estruturas fundamentais**
de uma run de build com dependências.

## Componentes

- **types**
  - registros de domínio: `TaskHistory`, `Dependency`, `TaskBuildCommand`,
    `TaskSign`, `Project`
  - execução: `BuildEdge`, `EdgeStage`, `EdgeStatus`, `EdgeResult`

- **collaborators**
  - protocolos dos colaboradores externos (VCS, stores, resolver, hook)

- **context**
  - `PipelineContext`: eventos estruturados, log da task, resultados e Manifest

## Invariantes

- Dependências não possuem ordem entre si; apenas "todas antes do primário"
- TaskSign é append-only e único por (task_id, dependency_id)
- Toda observabilidade da run passa pelo `PipelineContext`
"""

from .collaborators import (
    BuildCommandOverrideStore,
    DependencyResolver,
    PostBuildHook,
    ProjectRepository,
    SourceSynchronizer,
    TaskSignStore,
)
from .context import PipelineContext
from .types import (
    BuildEdge,
    Dependency,
    EdgeResult,
    EdgeStage,
    EdgeStatus,
    Project,
    TaskBuildCommand,
    TaskHistory,
    TaskSign,
)

__all__ = [
    "BuildCommandOverrideStore",
    "BuildEdge",
    "Dependency",
    "DependencyResolver",
    "EdgeResult",
    "EdgeStage",
    "EdgeStatus",
    "PipelineContext",
    "PostBuildHook",
    "Project",
    "ProjectRepository",
    "SourceSynchronizer",
    "TaskBuildCommand",
    "TaskHistory",
    "TaskSign",
    "TaskSignStore",
]
