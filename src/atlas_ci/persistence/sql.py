"""TaskSignStore persistido via SQLAlchemy (tabela `ci_task_sign`)."""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from atlas_ci.core.errors import duplicate_provenance
from atlas_ci.core.pipeline.types import TaskSign
from atlas_ci.persistence.schema import TaskSignRow


def _to_sign(row: TaskSignRow) -> TaskSign:
    return TaskSign(task_id=row.task_id, dependency_id=row.dependency_id, sha_git=row.sha_git)


class SqlTaskSignStore:
    """
    Proveniência append-only.

    A unicidade de (task_id, dependency_id) é garantida pela constraint do
    banco; a violação vira DuplicateProvenanceError.
    """

    def __init__(self, session_factory: sessionmaker):
        self._sessions = session_factory

    def find(self, dependency_id: int, ref_id: int) -> Optional[TaskSign]:
        with self._sessions() as session:
            row = session.execute(
                select(TaskSignRow).where(
                    TaskSignRow.dependency_id == dependency_id,
                    TaskSignRow.task_id == ref_id,
                )
            ).scalar_one_or_none()
            return _to_sign(row) if row is not None else None

    def insert(self, sign: TaskSign) -> None:
        with self._sessions() as session:
            session.add(
                TaskSignRow(task_id=sign.task_id, dependency_id=sign.dependency_id, sha_git=sign.sha_git)
            )
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise duplicate_provenance(task_id=sign.task_id, dependency_id=sign.dependency_id) from exc

    def for_task(self, task_id: int) -> List[TaskSign]:
        with self._sessions() as session:
            rows = session.execute(
                select(TaskSignRow).where(TaskSignRow.task_id == task_id).order_by(TaskSignRow.dependency_id)
            ).scalars().all()
            return [_to_sign(r) for r in rows]
