"""
Colaboradores de registro de referência.

- memory → stores em memória e resolver de hierarquia estático
- schema → tabelas SQLAlchemy compartilhadas (proveniência, lock, status)
- sql    → TaskSignStore persistido
"""

from .memory import (
    InMemoryBuildCommandOverrideStore,
    InMemoryProjectRepository,
    InMemoryTaskSignStore,
    StaticDependencyResolver,
)
from .schema import Base, create_database_engine, create_schema, create_session_factory
from .sql import SqlTaskSignStore

__all__ = [
    "Base",
    "InMemoryBuildCommandOverrideStore",
    "InMemoryProjectRepository",
    "InMemoryTaskSignStore",
    "SqlTaskSignStore",
    "StaticDependencyResolver",
    "create_database_engine",
    "create_schema",
    "create_session_factory",
]
