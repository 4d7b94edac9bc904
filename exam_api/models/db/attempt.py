"""
Per-student attempt state: answers, section progress and exam results.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy import String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from exam_api.database import Base


class ResultStatus(str, enum.Enum):
    """Status of an exam result row."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    COMPLETED = "completed"


class StudentAnswer(Base):
    """
    Current answer of one student to one question of one exam.
    The value is stored serialized (index, boolean or pairing map as text).
    """

    __tablename__ = "student_answers"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    student_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    exam_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    question_id: Mapped[str] = mapped_column(String(64), nullable=False)
    answer: Mapped[str] = mapped_column(Text, default="", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint(
            "student_id", "exam_id", "question_id", name="uq_student_exam_question"
        ),
    )


class StudentProgress(Base):
    """Sections a student has completed within an exam attempt."""

    __tablename__ = "student_progress"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    student_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    exam_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    sections_completed: Mapped[list[str]] = mapped_column(
        sa.JSON, default=list, nullable=False
    )
    last_activity: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("student_id", "exam_id", name="uq_progress_student_exam"),
    )


class ExamResult(Base):
    """
    Scoring artifact of one student's attempt at one exam.
    Doubles as the activity marker for the live view while the attempt runs.
    """

    __tablename__ = "exam_results"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    student_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    exam_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    exam_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ResultStatus.ACTIVE.value, nullable=False
    )

    # Scores
    section_scores: Mapped[dict[str, Any] | None] = mapped_column(sa.JSON, nullable=True)
    total_points: Mapped[int] = mapped_column(default=0, nullable=False)
    question_count: Mapped[int] = mapped_column(default=0, nullable=False)
    total_score: Mapped[int] = mapped_column(default=0, nullable=False)
    scaled_score: Mapped[int | None] = mapped_column(nullable=True)
    answers: Mapped[dict[str, Any] | None] = mapped_column(sa.JSON, nullable=True)

    # Timing
    taken_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    completion_time: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("student_id", "exam_id", name="uq_result_student_exam"),
    )
