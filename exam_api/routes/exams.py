"""Exam content and result endpoints."""
import asyncio
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException

from exam_api.backend import CurrentUser, DataBackend
from exam_api.dependencies import get_backend, get_current_student
from exam_api.models import ResultResponse
from exam_api.services.exam_loader import load_exam
from exam_api.services.scoring_service import ScoringEngine, result_report
from exam_api.utils import validate_id

router = APIRouter(prefix="/api/exams/{exam_id}", tags=["exams"])


def _iso(value: Any) -> str | None:
    return value.isoformat() if value is not None else None


@router.get("")
async def get_exam(
    exam_id: str,
    backend: Annotated[DataBackend, Depends(get_backend)],
) -> dict[str, Any]:
    """Get the student-safe exam definition."""
    exam_id = validate_id("examId", exam_id)
    exam = await asyncio.to_thread(load_exam, backend, exam_id)
    return exam.public_view()


@router.get("/result", response_model=ResultResponse)
async def get_result(
    exam_id: str,
    student: Annotated[CurrentUser, Depends(get_current_student)],
    backend: Annotated[DataBackend, Depends(get_backend)],
) -> ResultResponse:
    """Get the stored result for the current student."""
    exam_id = validate_id("examId", exam_id)
    row = await asyncio.to_thread(ScoringEngine(backend).get_result, student.id, exam_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Result not found")

    return ResultResponse(
        examId=row["exam_id"],
        studentId=row["student_id"],
        examType=row["exam_type"],
        status=row["status"],
        sectionScores=row["section_scores"],
        totalPoints=row["total_points"],
        questionCount=row["question_count"],
        totalScore=row["total_score"],
        scaledScore=row["scaled_score"],
        takenAt=_iso(row["taken_at"]),
        completionTime=_iso(row["completion_time"]),
        report=result_report(row),
    )
