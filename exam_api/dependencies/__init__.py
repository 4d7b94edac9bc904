"""FastAPI dependencies."""
from exam_api.dependencies.auth import get_backend, get_current_student

__all__ = ["get_backend", "get_current_student"]
