"""Pydantic models and exam content types."""
from exam_api.models.sessions import (
    AnswerRequest,
    ResultResponse,
    SecurityPolicy,
    SectionSummary,
    SessionEvent,
    SessionView,
)

__all__ = [
    "AnswerRequest",
    "ResultResponse",
    "SecurityPolicy",
    "SectionSummary",
    "SessionEvent",
    "SessionView",
]
