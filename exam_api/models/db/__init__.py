"""Database models."""
from exam_api.models.db.exam import ExamKind, ExamSchedule, Question, ScheduleStatus, TestFolder
from exam_api.models.db.attempt import ExamResult, ResultStatus, StudentAnswer, StudentProgress

__all__ = [
    "ExamKind",
    "ExamSchedule",
    "Question",
    "ScheduleStatus",
    "TestFolder",
    "ExamResult",
    "ResultStatus",
    "StudentAnswer",
    "StudentProgress",
]
