"""Main FastAPI application with modularized routes."""
import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from exam_api.backend import DataBackend
from exam_api.config import LOG_LEVEL
from exam_api.database import init_db
from exam_api.errors import (
    ContentError,
    ContentLoadError,
    ExamAlreadyCompletedError,
    ExamNotFoundError,
    ExamServiceError,
    InvalidTransitionError,
    NoQuestionsConfiguredError,
    NotAuthenticatedError,
    SectionNotFoundError,
    SubmissionError,
)
from exam_api.logging_setup import setup_console_logging
from exam_api.routes import exams, sessions
from exam_api.services.cleanup_service import schedule_activity_cleanup
from exam_api.services.session_service import SessionRegistry

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[ExamServiceError], int] = {
    ExamNotFoundError: status.HTTP_404_NOT_FOUND,
    SectionNotFoundError: status.HTTP_404_NOT_FOUND,
    NoQuestionsConfiguredError: status.HTTP_409_CONFLICT,
    ExamAlreadyCompletedError: status.HTTP_409_CONFLICT,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    ContentLoadError: status.HTTP_502_BAD_GATEWAY,
    SubmissionError: status.HTTP_503_SERVICE_UNAVAILABLE,
    NotAuthenticatedError: status.HTTP_401_UNAUTHORIZED,
}


def error_status(error: ExamServiceError) -> int:
    for error_type in type(error).__mro__:
        if error_type in ERROR_STATUS:
            return ERROR_STATUS[error_type]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def exam_error_handler(request: Request, exc: ExamServiceError) -> JSONResponse:
    """Render service errors with their user-facing message."""
    body: dict[str, object] = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, ContentError):
        body["action"] = "return_to_dashboard"
    if isinstance(exc, SubmissionError):
        body["retry"] = True
    code = error_status(exc)
    if code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=code, content=body)


def create_app(backend: DataBackend | None = None, run_cleanup: bool = True) -> FastAPI:
    """Build the API. Without a backend the configured database is used."""
    app = FastAPI(title="Exam Session API")

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.backend = backend or DataBackend()
    app.state.sessions = SessionRegistry()

    # Startup events
    @app.on_event("startup")
    def startup_events() -> None:
        """Initialize database and schedule cleanup on startup."""
        if backend is None:
            init_db()
        if run_cleanup:
            schedule_activity_cleanup(app.state.backend)

    app.add_exception_handler(ExamServiceError, exam_error_handler)

    # Include routers
    app.include_router(exams.router)
    app.include_router(sessions.router)
    return app


setup_console_logging(LOG_LEVEL)

app = create_app()
