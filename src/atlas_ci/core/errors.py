"""
Atlas CI: Canonical Error Structures (v1)

Este módulo define o padrão canônico de erros do Atlas CI.
Erros são artefatos de domínio e fazem parte do contrato operacional
entre o orchestrator e o dono do ciclo de vida da TaskHistory, devendo ser:

- explícitos
- serializáveis
- rastreáveis
- acionáveis

Nenhuma decisão implícita é permitida: o payload descreve a falha, mas quem
marca a run como falha (e decide por uma nova run) é o chamador.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from atlas_ci.core.exceptions import (
    AtlasException,
    BuildExecutionError,
    ConflictingDependencyError,
    CycleDetectedError,
    DuplicateProvenanceError,
    EngineConfigurationError,
    LockTimeoutError,
    MissingProvenanceError,
    ProjectNotFoundError,
    SourceSyncError,
)


# ---------------------------------------------------------------------------
# Payload canônico
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AtlasErrorPayload:
    """
    Payload canônico de erro do Atlas CI.

    Campos:
    - type: código estável do erro (não é texto livre)
    - message: mensagem curta, humana e objetiva
    - details: dados estruturados relevantes para diagnóstico
    - hint: ação sugerida ao operador (onde corrigir)
    - decision_required: indica que a run está bloqueada aguardando decisão humana
      (ex.: proveniência ausente exige correção de dados antes de nova run).
    """

    type: str
    message: str
    details: Dict[str, Any]
    hint: Optional[str] = None
    decision_required: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Retorna representação serializável do erro."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Catálogo canônico de tipos de erro (v1)
# ---------------------------------------------------------------------------

# Exclusão mútua
LOCK_TIMEOUT = "LOCK_TIMEOUT"

# Proveniência
MISSING_PROVENANCE = "MISSING_PROVENANCE"
DUPLICATE_PROVENANCE = "DUPLICATE_PROVENANCE"

# Fonte / build
SOURCE_SYNC_FAILED = "SOURCE_SYNC_FAILED"
BUILD_EXECUTION_FAILED = "BUILD_EXECUTION_FAILED"
PROJECT_NOT_FOUND = "PROJECT_NOT_FOUND"
NO_DEFAULT_BUILD_COMMAND = "NO_DEFAULT_BUILD_COMMAND"

# Engine / planejamento
DEPENDENCY_CYCLE = "DEPENDENCY_CYCLE"
CONFLICTING_DEPENDENCY = "CONFLICTING_DEPENDENCY"
ENGINE_EXECUTION_ERROR = "ENGINE_EXECUTION_ERROR"
ENGINE_CONFIGURATION_ERROR = "ENGINE_CONFIGURATION_ERROR"


_CODES_BY_EXCEPTION = (
    (LockTimeoutError, LOCK_TIMEOUT),
    (MissingProvenanceError, MISSING_PROVENANCE),
    (DuplicateProvenanceError, DUPLICATE_PROVENANCE),
    (SourceSyncError, SOURCE_SYNC_FAILED),
    (BuildExecutionError, BUILD_EXECUTION_FAILED),
    (ProjectNotFoundError, PROJECT_NOT_FOUND),
    (CycleDetectedError, DEPENDENCY_CYCLE),
    (ConflictingDependencyError, CONFLICTING_DEPENDENCY),
    (EngineConfigurationError, ENGINE_CONFIGURATION_ERROR),
)


def exception_to_error(exc: BaseException) -> AtlasErrorPayload:
    """Converte exceções em AtlasErrorPayload (serializável, acionável).

    Regras:
    - AtlasException: já vem com message/details/hint/decision_required;
      o código vem do catálogo (fallback: nome da classe).
    - Outras exceções (ex.: falhas cruas do colaborador de VCS): encapsular
      como ENGINE_EXECUTION_ERROR sem expor stack trace.
    """
    if isinstance(exc, AtlasException):
        code = exc.__class__.__name__
        for klass, catalog_code in _CODES_BY_EXCEPTION:
            if isinstance(exc, klass):
                code = catalog_code
                break
        return AtlasErrorPayload(
            type=code,
            message=exc.message or "Erro de execução",
            details=dict(exc.details or {}),
            hint=exc.hint,
            decision_required=bool(exc.decision_required),
        )

    return engine_execution_error(
        exc_type=exc.__class__.__name__,
        exc_message=str(exc) or None,
    )


# ---------------------------------------------------------------------------
# Helpers de fábrica
# ---------------------------------------------------------------------------

def lock_timeout(
    *,
    lock_key: str,
    project_id: int,
    waited_ms: int,
    hint: str = "Outra run mantém o build deste projeto. Aguarde a conclusão e dispare uma nova run.",
) -> LockTimeoutError:
    return LockTimeoutError(
        message=f"Timeout aguardando build da dependência em andamento (projectId: {project_id})",
        details={"lock_key": lock_key, "project_id": project_id, "waited_ms": waited_ms},
        hint=hint,
    )


def missing_provenance(
    *,
    project_id: int,
    dependency_id: Optional[int],
    ref_id: Optional[int],
    hint: str = "A run original não registrou o commit desta dependência; corrija os dados antes de reexecutar o rollback.",
) -> MissingProvenanceError:
    if dependency_id is None:
        message = f"TaskHistory sem sha_git para rollback do projeto primário {project_id}"
    else:
        message = f"TaskSign não encontrado para dependencyId:{dependency_id}, taskHistoryRefId:{ref_id}"
    return MissingProvenanceError(
        message=message,
        details={"project_id": project_id, "dependency_id": dependency_id, "ref_id": ref_id},
        hint=hint,
        decision_required=True,
    )


def duplicate_provenance(*, task_id: int, dependency_id: int) -> DuplicateProvenanceError:
    return DuplicateProvenanceError(
        message="TaskSign já registrado para esta task e dependência",
        details={"task_id": task_id, "dependency_id": dependency_id},
        hint="Cada dependência é assinada uma única vez por run; dispare uma nova run para rebuildar.",
    )


def build_execution_failed(
    *,
    project_id: int,
    exit_code: Optional[int],
    timed_out: bool,
    destroyed: bool,
    log_path: str,
) -> BuildExecutionError:
    if timed_out:
        message = f"Build do projeto {project_id} excedeu o timeout e foi encerrado"
    elif destroyed:
        message = f"Build do projeto {project_id} foi destruído manualmente"
    else:
        message = f"Build do projeto {project_id} terminou com código {exit_code}"
    return BuildExecutionError(
        message=message,
        details={
            "project_id": project_id,
            "exit_code": exit_code,
            "timed_out": timed_out,
            "destroyed": destroyed,
            "log_path": log_path,
        },
        hint="Consulte o log da task para a saída completa do comando.",
    )


def project_not_found(*, project_id: int) -> ProjectNotFoundError:
    return ProjectNotFoundError(
        message=f"Projeto não encontrado: {project_id}",
        details={"project_id": project_id},
        hint="Verifique o cadastro do projeto e a hierarquia de dependências.",
    )


def no_default_build_command(*, project_id: int, build_type: Optional[str]) -> EngineConfigurationError:
    return EngineConfigurationError(
        message=f"Sem comando de build padrão para o tipo '{build_type}'",
        details={"project_id": project_id, "build_type": build_type, "code": NO_DEFAULT_BUILD_COMMAND},
        hint="Declare build.default_commands.<tipo> na configuração ou informe um comando customizado.",
    )


def dependency_cycle(*, cycle: List[int]) -> CycleDetectedError:
    return CycleDetectedError(
        message="Ciclo detectado na hierarquia de dependências",
        details={"cycle": list(cycle)},
        hint="Remova a dependência circular do cadastro do projeto.",
    )


def conflicting_dependency(*, dependent_id: int, branches: List[str]) -> ConflictingDependencyError:
    return ConflictingDependencyError(
        message=f"Dependência {dependent_id} declarada com branches diferentes",
        details={"dependent_id": dependent_id, "branches": sorted(branches)},
        hint="Uma run builda cada projeto uma única vez; unifique a branch da dependência.",
    )


def engine_execution_error(
    *,
    edge: Optional[str] = None,
    exc_type: Optional[str] = None,
    exc_message: Optional[str] = None,
    hint: str = "Verifique o log da task e os eventos do manifest. Nenhum fallback é aplicado automaticamente.",
) -> AtlasErrorPayload:
    return AtlasErrorPayload(
        type=ENGINE_EXECUTION_ERROR,
        message="Falha inesperada durante a execução do pipeline",
        details={"edge": edge, "exc_type": exc_type, "exc_message": exc_message},
        hint=hint,
        decision_required=False,
    )
