"""Exam session endpoints."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request

from exam_api.backend import CurrentUser, DataBackend
from exam_api.dependencies import get_backend, get_current_student
from exam_api.models import AnswerRequest, SessionView
from exam_api.services.session_service import ExamSession, SessionRegistry
from exam_api.utils import validate_id

router = APIRouter(prefix="/api/exams/{exam_id}/session", tags=["sessions"])


def _registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def _live_session(request: Request, student: CurrentUser, exam_id: str) -> ExamSession:
    exam_id = validate_id("examId", exam_id)
    session = _registry(request).get(student.id, exam_id)
    if session is None:
        raise HTTPException(status_code=404, detail="No open session for this exam")
    return session


@router.post("", response_model=SessionView)
async def open_session(
    exam_id: str,
    request: Request,
    student: Annotated[CurrentUser, Depends(get_current_student)],
    backend: Annotated[DataBackend, Depends(get_backend)],
) -> dict[str, object]:
    """Open a new session or resume the live one."""
    exam_id = validate_id("examId", exam_id)
    session = await _registry(request).open(backend, exam_id, student.id)
    return session.view()


@router.get("", response_model=SessionView)
async def get_session(
    exam_id: str,
    request: Request,
    student: Annotated[CurrentUser, Depends(get_current_student)],
) -> dict[str, object]:
    """Get the current session view."""
    return _live_session(request, student, exam_id).view()


@router.post("/sections/{section_id}", response_model=SessionView)
async def select_section(
    exam_id: str,
    section_id: str,
    request: Request,
    student: Annotated[CurrentUser, Depends(get_current_student)],
) -> dict[str, object]:
    """Enter a section."""
    session = _live_session(request, student, exam_id)
    session.select_section(validate_id("sectionId", section_id))
    return session.view()


@router.post("/sections/{section_id}/complete", response_model=SessionView)
async def complete_section(
    exam_id: str,
    section_id: str,
    request: Request,
    student: Annotated[CurrentUser, Depends(get_current_student)],
) -> dict[str, object]:
    """Complete the current section."""
    session = _live_session(request, student, exam_id)
    await session.complete_section(validate_id("sectionId", section_id))
    return session.view()


@router.put("/answers/{question_id}", response_model=SessionView)
async def answer_question(
    exam_id: str,
    question_id: str,
    payload: AnswerRequest,
    request: Request,
    student: Annotated[CurrentUser, Depends(get_current_student)],
) -> dict[str, object]:
    """Answer a question. The write is persisted in the background."""
    session = _live_session(request, student, exam_id)
    session.answer(validate_id("questionId", question_id), payload.value)
    return session.view()


@router.post("/next", response_model=SessionView)
async def next_question(
    exam_id: str,
    request: Request,
    student: Annotated[CurrentUser, Depends(get_current_student)],
) -> dict[str, object]:
    session = _live_session(request, student, exam_id)
    session.next_question()
    return session.view()


@router.post("/previous", response_model=SessionView)
async def previous_question(
    exam_id: str,
    request: Request,
    student: Annotated[CurrentUser, Depends(get_current_student)],
) -> dict[str, object]:
    session = _live_session(request, student, exam_id)
    session.previous_question()
    return session.view()


@router.post("/goto/{index}", response_model=SessionView)
async def go_to_question(
    exam_id: str,
    index: int,
    request: Request,
    student: Annotated[CurrentUser, Depends(get_current_student)],
) -> dict[str, object]:
    session = _live_session(request, student, exam_id)
    session.go_to_question(index)
    return session.view()


@router.post("/submit", response_model=SessionView)
async def submit_exam(
    exam_id: str,
    request: Request,
    student: Annotated[CurrentUser, Depends(get_current_student)],
) -> dict[str, object]:
    """Submit the exam, or retry a submission that failed to save."""
    session = _live_session(request, student, exam_id)
    if session.submission_error is not None:
        await session.retry_submission()
    else:
        await session.submit()
    return session.view()


@router.post("/exit", response_model=SessionView)
async def exit_exam(
    exam_id: str,
    request: Request,
    student: Annotated[CurrentUser, Depends(get_current_student)],
) -> dict[str, object]:
    """Leave the exam. It can be resumed later."""
    session = _live_session(request, student, exam_id)
    await session.exit()
    return session.view()
