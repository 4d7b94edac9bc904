"""
Exam content database models: test folders, TOEFL sections, schedule entries
and question definitions.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from exam_api.database import Base


def _new_id() -> str:
    return uuid.uuid4().hex


class ExamKind(str, enum.Enum):
    """Kind of assessment a test folder holds."""

    UNIT = "Unit"
    TOEFL = "TOEFL"


class ScheduleStatus(str, enum.Enum):
    """Status of a schedule entry."""

    SCHEDULED = "scheduled"
    COMPLETED = "completed"


class TestFolder(Base):
    """
    Test folder. A Unit test holds its questions directly; a TOEFL test is a
    parent whose child tests are the listening/structure/reading sections.
    """

    __tablename__ = "tests"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(
        String(20), default=ExamKind.UNIT.value, nullable=False
    )

    # Section rows (TOEFL children only)
    section: Mapped[str | None] = mapped_column(String(20), nullable=True)
    parent_test_id: Mapped[str | None] = mapped_column(
        ForeignKey("tests.id", ondelete="CASCADE"), nullable=True, index=True
    )
    audio_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    section_duration: Mapped[int | None] = mapped_column(nullable=True)

    # Target cohort
    level: Mapped[str | None] = mapped_column(String(50), nullable=True)
    carrera: Mapped[str | None] = mapped_column(String(100), nullable=True)
    semestre: Mapped[str | None] = mapped_column(String(20), nullable=True)
    grupo: Mapped[str | None] = mapped_column(String(20), nullable=True)
    salons: Mapped[list[str] | None] = mapped_column(sa.JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


class ExamSchedule(Base):
    """A scheduled, takeable instance of a test."""

    __tablename__ = "exam_schedule"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    test_id: Mapped[str | None] = mapped_column(
        ForeignKey("tests.id", ondelete="SET NULL"), nullable=True, index=True
    )
    date: Mapped[str | None] = mapped_column(String(10), nullable=True)  # YYYY-MM-DD
    time: Mapped[str | None] = mapped_column(String(8), nullable=True)  # HH:MM[:SS]
    duration: Mapped[int | None] = mapped_column(nullable=True)  # minutes
    status: Mapped[str] = mapped_column(
        String(20), default=ScheduleStatus.SCHEDULED.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


class Question(Base):
    """
    Question definition as authored.
    Type-specific columns are loosely typed; rows written by older authoring
    screens use other shapes, which the exam loader normalizes.
    """

    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    test_id: Mapped[str] = mapped_column(
        ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    text: Mapped[str | None] = mapped_column(Text, nullable=True)
    sequence: Mapped[int | None] = mapped_column(nullable=True)

    # Type-specific payload
    choices: Mapped[Any] = mapped_column(sa.JSON, nullable=True)
    correct_answer: Mapped[Any] = mapped_column(sa.JSON, nullable=True)
    correct_pairs: Mapped[Any] = mapped_column(sa.JSON, nullable=True)
    left_items: Mapped[Any] = mapped_column(sa.JSON, nullable=True)
    right_items: Mapped[Any] = mapped_column(sa.JSON, nullable=True)
    is_true: Mapped[bool | None] = mapped_column(nullable=True)
    underlined_words: Mapped[Any] = mapped_column(sa.JSON, nullable=True)

    # Passage / media linkage
    passage_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    passage_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    audio_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
