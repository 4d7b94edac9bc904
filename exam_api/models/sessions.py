"""Session-related Pydantic models."""
from typing import Any

from pydantic import BaseModel, Field


DEFAULT_BLOCKED_SHORTCUTS = [
    "PrintScreen",
    "Ctrl+P",
    "Ctrl+S",
    "Ctrl+C",
    "Ctrl+Shift+I",
    "Ctrl+Shift+J",
    "Ctrl+Shift+C",
]


class SecurityPolicy(BaseModel):
    """Anti-cheat hooks the host UI may install while an exam is open."""

    blockContextMenu: bool = True
    blockClipboard: bool = True
    blockSelection: bool = True
    blockedShortcuts: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BLOCKED_SHORTCUTS)
    )


class AnswerRequest(BaseModel):
    """Model for answering a question."""

    value: Any = None


class SectionSummary(BaseModel):
    id: str
    title: str
    questionCount: int
    durationMinutes: int
    completed: bool


class SessionEvent(BaseModel):
    type: str
    at: str
    data: dict[str, Any] = Field(default_factory=dict)


class SessionView(BaseModel):
    """Snapshot of an exam session for the student UI."""

    examId: str
    title: str
    kind: str
    state: str
    sectionId: str | None = None
    questionIndex: int = 0
    questionCount: int = 0
    isLastQuestion: bool = False
    question: dict[str, Any] | None = None
    answers: dict[str, str] = Field(default_factory=dict)
    sections: list[SectionSummary] = Field(default_factory=list)
    completedSections: list[str] = Field(default_factory=list)
    timerState: str
    remainingSeconds: int = 0
    remainingTime: str = "0:00:00"
    timeWarning: bool = False
    pendingWrites: list[str] = Field(default_factory=list)
    failedWrites: list[str] = Field(default_factory=list)
    submissionError: str | None = None
    result: dict[str, Any] | None = None
    events: list[SessionEvent] = Field(default_factory=list)
    securityPolicy: SecurityPolicy | None = None


class ResultResponse(BaseModel):
    """Model for a stored exam result."""

    examId: str
    studentId: str
    examType: str | None = None
    status: str
    sectionScores: dict[str, Any] | None = None
    totalPoints: int | None = None
    questionCount: int | None = None
    totalScore: int | None = None
    scaledScore: int | None = None
    takenAt: str | None = None
    completionTime: str | None = None
    report: str | None = None
