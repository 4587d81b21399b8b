"""Persistence layer: keyed access and atomic upserts for exams and results.

Upserts are a single ``INSERT ... ON CONFLICT DO UPDATE`` statement, so a
concurrent reader sees either the previous row or the new one, never a
mix. Any storage error surfaces as ``PersistenceFailure``.
"""

import logging
from typing import List, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from examsync.errors import PersistenceFailure
from examsync.models import ExamRecord, ResultRecord

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def _upsert(session: Session, model, values: dict, keys: List[str]) -> None:
    dialect = session.get_bind().dialect.name
    insert = _DIALECT_INSERTS.get(dialect)
    if insert is None:
        raise PersistenceFailure(details=f"Upsert is not supported on {dialect}")

    stmt = insert(model).values(**values)
    updates = {name: stmt.excluded[name] for name in values if name not in keys}
    stmt = stmt.on_conflict_do_update(index_elements=keys, set_=updates)
    try:
        session.execute(stmt)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Upsert into %s failed: %s", model.__tablename__, exc)
        raise PersistenceFailure(details=str(exc)) from exc


def _fetch(session: Session, statement):
    try:
        return session.exec(statement)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Query failed: %s", exc)
        raise PersistenceFailure(details=str(exc)) from exc


def save(session: Session, record: SQLModel) -> SQLModel:
    """Commit changes made to an already loaded record."""
    try:
        session.add(record)
        session.commit()
        session.refresh(record)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Saving %s failed: %s", type(record).__name__, exc)
        raise PersistenceFailure(details=str(exc)) from exc
    return record


# --- Exams ---


def get_exam(session: Session, code: str, for_update: bool = False) -> Optional[ExamRecord]:
    stmt = select(ExamRecord).where(ExamRecord.code == code)
    if for_update:
        stmt = stmt.with_for_update()
    return _fetch(session, stmt).first()


def list_exams(session: Session) -> List[ExamRecord]:
    stmt = select(ExamRecord).order_by(ExamRecord.created_at.desc())
    return list(_fetch(session, stmt).all())


def upsert_exam(session: Session, values: dict) -> ExamRecord:
    _upsert(session, ExamRecord, values, ["code"])
    return get_exam(session, values["code"])


# --- Results ---


def get_result(
    session: Session, exam_code: str, student_id: str, for_update: bool = False
) -> Optional[ResultRecord]:
    stmt = select(ResultRecord).where(
        (ResultRecord.exam_code == exam_code) & (ResultRecord.student_id == student_id)
    )
    if for_update:
        stmt = stmt.with_for_update()
    return _fetch(session, stmt).first()


def list_results(
    session: Session, exam_code: Optional[str] = None, class_name: Optional[str] = None
) -> List[ResultRecord]:
    stmt = select(ResultRecord)
    if exam_code:
        stmt = stmt.where(ResultRecord.exam_code == exam_code)
    if class_name:
        stmt = stmt.where(ResultRecord.student_class == class_name)
    stmt = stmt.order_by(ResultRecord.timestamp.desc())
    return list(_fetch(session, stmt).all())


def upsert_result(session: Session, values: dict) -> ResultRecord:
    _upsert(session, ResultRecord, values, ["exam_code", "student_id"])
    return get_result(session, values["exam_code"], values["student_id"])
