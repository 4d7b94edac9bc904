"""Table-oriented client for the relational store.

The exam session core only ever talks to the store through this facade:
``select``/``insert``/``update``/``delete`` against a logical table name plus
``current_user``. Each call runs in its own short-lived ORM session.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy import delete, inspect, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from exam_api.database import Base, SessionLocal
from exam_api.errors import BackendError, DuplicateRowError
from exam_api.models.db import (
    ExamResult,
    ExamSchedule,
    Question,
    StudentAnswer,
    StudentProgress,
    TestFolder,
)

logger = logging.getLogger(__name__)

TABLES: dict[str, type[Base]] = {
    "exam_schedule": ExamSchedule,
    "tests": TestFolder,
    "questions": Question,
    "student_answers": StudentAnswer,
    "student_progress": StudentProgress,
    "exam_results": ExamResult,
}


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated user as reported by the token issuer."""

    id: str
    email: str | None = None


def row_to_dict(obj: Base, columns: Iterable[str] | None = None) -> dict[str, Any]:
    """Convert an ORM instance into a plain dict of column values."""
    names = list(columns) if columns else [c.key for c in inspect(obj).mapper.column_attrs]
    return {name: getattr(obj, name) for name in names}


class DataBackend:
    """Generic table access used by the exam session services."""

    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        user: CurrentUser | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._user = user

    def for_user(self, user: CurrentUser | None) -> "DataBackend":
        """Return a backend bound to the given user."""
        return DataBackend(self._session_factory, user)

    def current_user(self) -> CurrentUser | None:
        return self._user

    # ------------------------------------------------------------------
    # Table operations
    # ------------------------------------------------------------------

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        columns: Iterable[str] | None = None,
        order_by: Iterable[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Return rows matching all equality filters as dicts."""
        model = self._model(table)
        wanted = list(columns) if columns else None
        if wanted:
            self._check_columns(model, wanted)

        query = select(model).where(*self._conditions(model, filters))
        for name in order_by or ():
            descending = name.startswith("-")
            column = self._column(model, name.lstrip("-"))
            query = query.order_by(column.desc() if descending else column.asc())

        with self._session_factory() as db:
            try:
                rows = db.execute(query).scalars().all()
                return [row_to_dict(row, wanted) for row in rows]
            except SQLAlchemyError as e:
                raise self._wrap(table, "select", e) from e

    def select_one(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        columns: Iterable[str] | None = None,
    ) -> dict[str, Any] | None:
        """Return the first matching row or None."""
        rows = self.select(table, filters, columns, order_by=["-id"])
        return rows[0] if rows else None

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert a row and return it with generated values filled in."""
        model = self._model(table)
        self._check_columns(model, row.keys())

        with self._session_factory() as db:
            try:
                obj = model(**row)
                db.add(obj)
                db.commit()
                db.refresh(obj)
                return row_to_dict(obj)
            except SQLAlchemyError as e:
                db.rollback()
                raise self._wrap(table, "insert", e) from e

    def update(
        self, table: str, filters: dict[str, Any], patch: dict[str, Any]
    ) -> int:
        """Apply a patch to all rows matching the filters."""
        model = self._model(table)
        self._check_columns(model, patch.keys())
        if not filters:
            raise ValueError("update requires at least one filter")

        with self._session_factory() as db:
            try:
                result = db.execute(
                    update(model).where(*self._conditions(model, filters)).values(**patch)
                )
                db.commit()
                return result.rowcount
            except SQLAlchemyError as e:
                db.rollback()
                raise self._wrap(table, "update", e) from e

    def delete(self, table: str, filters: dict[str, Any]) -> int:
        """Delete all rows matching the filters."""
        model = self._model(table)
        if not filters:
            raise ValueError("delete requires at least one filter")

        with self._session_factory() as db:
            try:
                result = db.execute(
                    delete(model).where(*self._conditions(model, filters))
                )
                db.commit()
                return result.rowcount
            except SQLAlchemyError as e:
                db.rollback()
                raise self._wrap(table, "delete", e) from e

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _model(table: str) -> type[Base]:
        try:
            return TABLES[table]
        except KeyError:
            raise ValueError(f"Unknown table: {table}") from None

    @staticmethod
    def _column(model: type[Base], name: str):
        column = model.__table__.columns.get(name)
        if column is None:
            raise ValueError(f"Unknown column {model.__tablename__}.{name}")
        return column

    def _check_columns(self, model: type[Base], names: Iterable[str]) -> None:
        for name in names:
            self._column(model, name)

    def _conditions(self, model: type[Base], filters: dict[str, Any] | None) -> list:
        conditions = []
        for name, value in (filters or {}).items():
            column = self._column(model, name)
            if isinstance(value, (list, tuple, set)):
                conditions.append(column.in_(list(value)))
            elif value is None:
                conditions.append(column.is_(None))
            else:
                conditions.append(column == value)
        return conditions

    @staticmethod
    def _wrap(table: str, op: str, error: SQLAlchemyError) -> BackendError:
        logger.debug("Backend %s on %s failed: %s", op, table, error)
        if isinstance(error, IntegrityError):
            return DuplicateRowError(f"{op} on {table} violated a constraint")
        return BackendError(f"{op} on {table} failed")
