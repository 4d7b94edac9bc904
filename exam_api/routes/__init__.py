"""API route modules."""
from exam_api.routes import exams, sessions

__all__ = ["exams", "sessions"]
