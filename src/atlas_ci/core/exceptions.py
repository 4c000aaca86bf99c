"""
Atlas CI: Canonical Exceptions (v1)

Este módulo define as exceções tipadas internas do Atlas CI.

Objetivo:
- Permitir que coordinator/orchestrator levantem exceções semânticas tipadas
- Facilitar o mapeamento determinístico para AtlasErrorPayload
- Evitar ValueError/RuntimeError genéricos nos pontos críticos do pipeline

Regras:
- Toda falha descrita aqui é fatal para a run corrente (sem retry automático)
- Exceções carregam apenas dados estruturados (serializáveis) em `details`
- A mensagem é curta e humana; diagnóstico vai em `details`/`hint`
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class AtlasException(Exception):
    """Base class para exceções internas do Atlas CI.

    Importante:
    - Sempre carregar dados estruturados em `details`
    - Não embedar stack trace em payloads de erro
    - Mensagem deve ser curta e humana
    """

    message: str
    details: Dict[str, Any]
    hint: Optional[str] = None
    decision_required: bool = False

    def __str__(self) -> str:  # pragma: no cover
        return self.message


# ---------------------------------------------------------------------------
# Exclusão mútua
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LockTimeoutError(AtlasException):
    """Nem a sondagem rápida nem a espera longa obtiveram o mutex do projeto.

    Corresponde à condição "dependência atualmente em build" em outro nó.
    """


# ---------------------------------------------------------------------------
# Proveniência / rollback
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MissingProvenanceError(AtlasException):
    """Rollback solicitado sem TaskSign (ou sha) registrado para a run original."""


@dataclass(frozen=True)
class DuplicateProvenanceError(AtlasException):
    """Segundo TaskSign para o mesmo par (task_id, dependency_id)."""


# ---------------------------------------------------------------------------
# Fonte / build
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SourceSyncError(AtlasException):
    """Falha de clone/checkout/pull/rollback reportada pelo colaborador de VCS."""


@dataclass(frozen=True)
class BuildExecutionError(AtlasException):
    """Comando de build terminou com código != 0, por timeout ou foi destruído."""


@dataclass(frozen=True)
class ProjectNotFoundError(AtlasException):
    """Projeto referenciado por uma aresta não existe no repositório de projetos."""


# ---------------------------------------------------------------------------
# Engine / planejamento
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EngineConfigurationError(AtlasException):
    """Configuração inválida ou inconsistente para execução."""


@dataclass(frozen=True)
class CycleDetectedError(AtlasException):
    """O projeto primário aparece no seu próprio conjunto de dependências."""


@dataclass(frozen=True)
class ConflictingDependencyError(AtlasException):
    """O mesmo projeto dependente foi declarado com branches diferentes."""
