"""
Exclusão mútua de builds por projeto.

- mutex  → contrato `BuildMutex`, `lock_key`, `LocalBuildMutex`
- status → quadro de status de conclusão (`LocalBuildStatusBoard`)
- sql    → implementações compartilhadas pelo cluster (SQLAlchemy)
"""

from .mutex import BuildMutex, LocalBuildMutex, lock_key
from .sql import SqlBuildMutex, SqlBuildStatusBoard
from .status import (
    STATUS_FAILED,
    STATUS_SUCCESS,
    BuildStatus,
    BuildStatusBoard,
    LocalBuildStatusBoard,
)

__all__ = [
    "BuildMutex",
    "BuildStatus",
    "BuildStatusBoard",
    "LocalBuildMutex",
    "LocalBuildStatusBoard",
    "STATUS_FAILED",
    "STATUS_SUCCESS",
    "SqlBuildMutex",
    "SqlBuildStatusBoard",
    "lock_key",
]
