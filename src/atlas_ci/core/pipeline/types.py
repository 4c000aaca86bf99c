# src/atlas_ci/core/pipeline/types.py
"""
Tipos canônicos do pipeline de build do Atlas CI.

Este módulo define os registros de domínio consumidos pelo orchestrator e
as estruturas que padronizam o resultado de cada aresta de build.

Registros de domínio (fornecidos por colaboradores externos):
    - TaskHistory      → uma execução do pipeline (run)
    - Dependency       → aresta (dependent_id, branch)
    - TaskBuildCommand → comando customizado por (task, projeto)
    - TaskSign         → commit exato em que uma dependência foi buildada
    - Project          → metadados estáticos do projeto

Estruturas de execução:
    - BuildEdge   → unidade planejada (dependência ou primário)
    - EdgeStage   → estados da máquina de estados de uma aresta
    - EdgeStatus  → estado final (SUCCESS, SKIPPED, FAILED)
    - EdgeResult  → resultado imutável de uma aresta

Princípios fundamentais:
    - Tipos são estáveis, imutáveis e serializáveis
    - Valores de enum são strings canônicas (persistidas no Manifest)
    - Nenhuma lógica de execução vive neste módulo
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


# ---------------------------------------------------------------------------
# Registros de domínio
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TaskHistory:
    """
    Uma execução do pipeline de build para um projeto primário.

    Campos:
        - id: identificador da run (também nomeia o log da task)
        - project_id: projeto primário
        - branch_name: branch do primário
        - build_command: comando customizado do primário (pode ser vazio)
        - sha_git: commit alvo do primário em rollback
        - ref_id: run original (forward) que um rollback desfaz

    Imutável a partir do início do build; o status terminal pertence ao
    dono do ciclo de vida da TaskHistory, não ao orchestrator.
    """
    id: int
    project_id: int
    branch_name: str
    build_command: Optional[str] = None
    sha_git: Optional[str] = None
    ref_id: Optional[int] = None


@dataclass(frozen=True)
class Dependency:
    """Aresta "o projeto depende de `dependent_id`, buildado a partir de `branch`"."""
    dependent_id: int
    branch: str


@dataclass(frozen=True)
class TaskBuildCommand:
    """Comando customizado de um projeto, escopado a uma TaskHistory."""
    task_id: int
    project_id: int
    command: str


@dataclass(frozen=True)
class TaskSign:
    """Proveniência: commit exato em que `dependency_id` foi buildado na task `task_id`."""
    task_id: int
    dependency_id: int
    sha_git: str


@dataclass(frozen=True)
class Project:
    """
    Metadados estáticos de um projeto.

    `build_type` indexa a tabela de comandos padrão (maven, npm, golang...);
    o diretório local é derivado de `name` pelo `BuildSettings`.
    """
    id: int
    name: str
    vcs_kind: str
    http_url: str
    build_type: Optional[str] = None


# ---------------------------------------------------------------------------
# Execução
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BuildEdge:
    """
    Unidade planejada de build.

    Para dependências `project_id == dependency_id`; para o primário
    `dependency_id is None` e `is_dependency` é falso.
    """
    project_id: int
    dependency_id: Optional[int]
    branch: str
    is_dependency: bool
    override_command: Optional[str] = None

    @property
    def edge_id(self) -> str:
        prefix = "dependency" if self.is_dependency else "primary"
        return f"{prefix}.{self.project_id}"


class EdgeStage(str, Enum):
    """
    Estados da máquina de estados de uma aresta.

    LOCK_WAIT → SOURCE_SYNC → {SIGNED?} → BUILDING → DONE, ou FAILED
    (terminal) a partir de qualquer estado. SIGNED só ocorre em dependências.
    """
    LOCK_WAIT = "lock_wait"
    SOURCE_SYNC = "source_sync"
    SIGNED = "signed"
    BUILDING = "building"
    DONE = "done"
    FAILED = "failed"


class EdgeStatus(str, Enum):
    """
    Estados finais de uma aresta.

        - SUCCESS: sincronizada e buildada por esta run
        - SKIPPED: satisfeita por um build concorrente do mesmo projeto
        - FAILED: interrompida por erro (aborta a run)
    """
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class EdgeResult:
    """Resultado imutável do build de uma aresta."""
    edge_id: str
    project_id: int
    is_dependency: bool
    status: EdgeStatus
    summary: str
    commit: Optional[str] = None
    command_source: Optional[str] = None
    lock_wait_ms: int = 0
    metrics: Dict[str, Any] = field(default_factory=dict)
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "edge_id": self.edge_id,
            "project_id": self.project_id,
            "is_dependency": self.is_dependency,
            "status": self.status.value,
            "summary": self.summary,
            "commit": self.commit,
            "command_source": self.command_source,
            "lock_wait_ms": self.lock_wait_ms,
            "metrics": dict(self.metrics),
            "payload": dict(self.payload),
        }
