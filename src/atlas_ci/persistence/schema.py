"""
Esquema SQLAlchemy compartilhado pelo cluster.

Tabelas:
- ci_task_sign    → proveniência de builds de dependência (append-only)
- ci_build_lock   → lease do mutex de build por projeto
- ci_build_status → último status publicado por projeto

Nada aqui é global: engine e session factory são criados explicitamente
pelo chamador (`create_database_engine`, `create_session_factory`).
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String, UniqueConstraint, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker


Base = declarative_base()


def utcnow() -> datetime:
    # SQLite não preserva tzinfo: tudo é gravado como UTC ingênuo
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TaskSignRow(Base):
    __tablename__ = "ci_task_sign"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(BigInteger, nullable=False, index=True)
    dependency_id = Column(BigInteger, nullable=False)
    sha_git = Column(String(64), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("task_id", "dependency_id", name="uq_ci_task_sign_task_dependency"),
    )


class BuildLockRow(Base):
    __tablename__ = "ci_build_lock"

    lock_key = Column(String(255), primary_key=True)
    owner = Column(String(255), nullable=False)
    acquired_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)


class BuildStatusRow(Base):
    __tablename__ = "ci_build_status"

    status_key = Column(String(255), primary_key=True)
    status = Column(String(16), nullable=False)
    task_id = Column(BigInteger, nullable=False)
    branch = Column(String(255), nullable=True)
    commit = Column(String(64), nullable=True)
    rollback = Column(Boolean, nullable=False, default=False)
    published_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)


def create_database_engine(url: str, *, echo: bool = False) -> Engine:
    """Engine para `url`; SQLite recebe `check_same_thread=False` (sessões por thread)."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(url, echo=echo, connect_args=connect_args)


def create_schema(engine: Engine) -> None:
    Base.metadata.create_all(engine)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)
