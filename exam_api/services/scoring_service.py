"""Service layer for scoring exams and writing results."""
import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable

from exam_api.backend import DataBackend
from exam_api.config import (
    SECTION_WEIGHTS,
    TOEFL_FINAL_SCALE,
    TOEFL_SECTION_SCALE,
)
from exam_api.errors import BackendError, DuplicateRowError, SubmissionError
from exam_api.models.db import ExamKind, ResultStatus, ScheduleStatus
from exam_api.models.questions import (
    LETTERS,
    BaseQuestion,
    ExamDefinition,
    MatchingQuestion,
    MultipleChoiceQuestion,
    TrueFalseQuestion,
    UnderlineQuestion,
)
from exam_api.utils import utc_now

logger = logging.getLogger(__name__)

TRUTHY = {"true", "1", "t", "yes"}
FALSY = {"false", "0", "f", "no"}


# ---------------------------------------------------------------------------
# Answer checking
# ---------------------------------------------------------------------------

def _parse_bool(raw: Any) -> bool | None:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, int):
        return bool(raw) if raw in (0, 1) else None
    if isinstance(raw, str):
        value = raw.strip().lower()
        if value in TRUTHY:
            return True
        if value in FALSY:
            return False
    return None


def _parse_pairs(raw: Any) -> set[tuple[int, int]] | None:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return None
    pairs = set()
    if isinstance(raw, dict):
        items = raw.items()
    elif isinstance(raw, list):
        items = enumerate(raw)
    else:
        return None
    for right, left in items:
        try:
            pairs.add((int(right), int(left)))
        except (TypeError, ValueError):
            return None
    return pairs


def check_answer(question: BaseQuestion, raw: Any) -> bool | None:
    """
    Compare a stored answer with the question's correct answer.

    Returns None when the question cannot be scored, False for a missing
    answer to a scorable question.
    """
    if not question.is_scorable:
        return None
    if raw is None or raw == "":
        return False

    if isinstance(question, MultipleChoiceQuestion):
        return str(raw).strip() == str(question.correct_index)

    if isinstance(question, TrueFalseQuestion):
        return _parse_bool(raw) == question.correct

    if isinstance(question, MatchingQuestion):
        given = _parse_pairs(raw)
        return given is not None and sorted(given) == sorted(question.correct_pairs.items())

    if isinstance(question, UnderlineQuestion):
        letter = str(raw).strip().upper()
        if letter.isdigit() and int(letter) < len(LETTERS):
            letter = LETTERS[int(letter)]
        return letter == question.incorrect_letter

    return None


# ---------------------------------------------------------------------------
# Score arithmetic
# ---------------------------------------------------------------------------

@dataclass
class SectionScore:
    correct: int = 0
    total: int = 0
    answered: int = 0
    weighted: int = 0


def score_questions(
    questions: Iterable[BaseQuestion],
    answers: dict[str, Any],
    denominator: str = "total",
) -> SectionScore:
    """
    Count correct answers.

    ``denominator="total"`` counts every scorable question,
    ``"attempted"`` only the answered ones. Unscorable questions never count.
    """
    score = SectionScore()
    for question in questions:
        raw = answers.get(question.id)
        result = check_answer(question, raw)
        if result is None:
            continue
        answered = raw is not None and raw != ""
        if answered:
            score.answered += 1
        if denominator == "total" or answered:
            score.total += 1
        if result:
            score.correct += 1
    return score


def weighted_section_score(correct: int, total: int, weight: int) -> int:
    return round(correct / max(total, 1) * weight)


def percentage(correct: int, total: int) -> int:
    if total <= 0:
        return 0
    return round(correct / total * 100)


def calculate_toefl_scores(listening: int, structure: int, reading: int) -> dict[str, Any]:
    """
    Convert weighted section scores to the TOEFL scale.

    Each section is scaled to 140 points; the final score is the sum scaled
    to 677.
    """
    raw = {
        "listening": max(0, listening),
        "structure": max(0, structure),
        "reading": max(0, reading),
    }
    converted = {
        name: round(value / SECTION_WEIGHTS[name] * TOEFL_SECTION_SCALE)
        for name, value in raw.items()
    }
    total_converted = sum(converted.values())
    max_converted = TOEFL_SECTION_SCALE * len(converted)
    return {
        "scores": {
            name: {"raw": raw[name], "converted": converted[name]} for name in raw
        },
        "totalConverted": total_converted,
        "average": total_converted / len(converted),
        "finalScore": round(total_converted / max_converted * TOEFL_FINAL_SCALE),
    }


def format_score_report(scores: dict[str, Any]) -> str:
    """Plain-text TOEFL score breakdown."""
    lines = ["TOEFL Score Breakdown:", "---------------------"]
    for name, section in scores["scores"].items():
        lines.append(
            f"{name.title()}: {section['converted']}/{TOEFL_SECTION_SCALE} "
            f"(Raw: {section['raw']}/{SECTION_WEIGHTS[name]})"
        )
    lines.extend(
        [
            "---------------------",
            f"Total Converted: {scores['totalConverted']}/{TOEFL_SECTION_SCALE * 3}",
            f"Average: {scores['average']:.2f}/{TOEFL_SECTION_SCALE}",
            f"Final TOEFL Score: {scores['finalScore']}/{TOEFL_FINAL_SCALE}",
        ]
    )
    return "\n".join(lines)


def result_report(row: dict[str, Any]) -> str | None:
    """Score breakdown for a stored TOEFL result row. None for other exams."""
    sections = row.get("section_scores") or {}
    if row.get("exam_type") != ExamKind.TOEFL.value or not sections:
        return None
    weighted = [
        (sections.get(name) or {}).get("weighted", 0)
        for name in ("listening", "structure", "reading")
    ]
    return format_score_report(calculate_toefl_scores(*weighted))


@dataclass
class ExamScore:
    exam_type: str
    sections: dict[str, SectionScore] = field(default_factory=dict)
    total_points: int = 0
    question_count: int = 0
    total_score: int = 0
    scaled_score: int | None = None


def compute_exam_score(exam: ExamDefinition, answers: dict[str, Any]) -> ExamScore:
    """Score every section of an exam from a question id -> answer mapping."""
    result = ExamScore(exam_type=exam.kind)

    if exam.is_multi_section:
        for section in exam.sections:
            score = score_questions(section.questions, answers, denominator="attempted")
            score.weighted = weighted_section_score(
                score.correct, score.total, SECTION_WEIGHTS.get(section.id, 0)
            )
            result.sections[section.id] = score
        result.total_points = sum(s.correct for s in result.sections.values())
        result.question_count = sum(s.total for s in result.sections.values())
        result.total_score = sum(s.weighted for s in result.sections.values())
        toefl = calculate_toefl_scores(
            *(result.sections[name].weighted if name in result.sections else 0
              for name in ("listening", "structure", "reading"))
        )
        result.scaled_score = toefl["finalScore"]
        return result

    score = score_questions(exam.questions, answers, denominator="total")
    score.weighted = percentage(score.correct, score.total)
    for section in exam.sections:
        result.sections[section.id] = score
    result.total_points = score.correct
    result.question_count = score.total
    result.total_score = score.weighted
    return result


# ---------------------------------------------------------------------------
# Result persistence
# ---------------------------------------------------------------------------

class ScoringEngine:
    """Reads answers back from the backend, scores them and saves the result."""

    def __init__(self, backend: DataBackend) -> None:
        self.backend = backend

    def load_answers(self, student_id: str, exam_id: str) -> dict[str, str]:
        rows = self.backend.select(
            "student_answers",
            {"student_id": student_id, "exam_id": exam_id},
            columns=["question_id", "answer"],
            order_by=["updated_at", "id"],
        )
        return {str(row["question_id"]): row["answer"] for row in rows}

    def score_exam(self, exam: ExamDefinition, student_id: str) -> dict[str, Any]:
        """
        Score the attempt and write the completed result row.

        Raises:
            SubmissionError: answers could not be read or the result not saved.
        """
        try:
            answers = self.load_answers(student_id, exam.id)
        except BackendError as e:
            logger.error("Error reading answers for exam %s: %s", exam.id, e)
            raise SubmissionError() from e

        score = compute_exam_score(exam, answers)
        now = utc_now()
        fields = self._score_fields(score)
        fields.update(
            {
                "status": ResultStatus.COMPLETED.value,
                "answers": answers,
                "completion_time": now,
                "updated_at": now,
            }
        )
        try:
            result = self.save_result(exam, student_id, fields)
        except BackendError as e:
            logger.error("Error saving result for exam %s: %s", exam.id, e)
            raise SubmissionError() from e

        logger.info(
            "Scored exam %s for student %s: %s/%s correct, total score %s",
            exam.id, student_id, score.total_points, score.question_count, score.total_score,
        )
        return result

    def refresh_live_scores(self, exam: ExamDefinition, student_id: str) -> None:
        """Recompute running scores for the live view. Best effort."""
        try:
            key = {"student_id": student_id, "exam_id": exam.id}
            existing = self.backend.select_one("exam_results", key, columns=["id", "status"])
            if existing is None or existing["status"] == ResultStatus.COMPLETED.value:
                return
            score = compute_exam_score(exam, self.load_answers(student_id, exam.id))
            fields = self._score_fields(score)
            fields["updated_at"] = utc_now()
            self.backend.update("exam_results", {"id": existing["id"]}, fields)
        except BackendError as e:
            logger.error("Error updating live scores for exam %s: %s", exam.id, e)

    def save_result(
        self, exam: ExamDefinition, student_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        """
        Update the (student, exam) result row, inserting only when none exists.
        """
        key = {"student_id": student_id, "exam_id": exam.id}
        existing = self.backend.select_one("exam_results", key, columns=["id"])
        if existing is None:
            try:
                return self.backend.insert(
                    "exam_results",
                    {**key, "exam_type": exam.kind, "taken_at": utc_now(), **fields},
                )
            except DuplicateRowError:
                # Lost an insert race; the other row is the one to update
                existing = self.backend.select_one("exam_results", key, columns=["id"])
                if existing is None:
                    raise
        self.backend.update("exam_results", {"id": existing["id"]}, fields)
        return self.backend.select_one("exam_results", {"id": existing["id"]})

    def mark_inactive(self, exam: ExamDefinition, student_id: str) -> None:
        """Flag an unfinished attempt as inactive so it can be resumed."""
        key = {"student_id": student_id, "exam_id": exam.id}
        existing = self.backend.select_one("exam_results", key, columns=["id", "status"])
        if existing is not None and existing["status"] == ResultStatus.COMPLETED.value:
            return
        self.save_result(
            exam, student_id, {"status": ResultStatus.INACTIVE.value, "updated_at": utc_now()}
        )

    def mark_schedule_completed(self, exam_id: str) -> None:
        self.backend.update(
            "exam_schedule", {"id": exam_id}, {"status": ScheduleStatus.COMPLETED.value}
        )

    def get_result(self, student_id: str, exam_id: str) -> dict[str, Any] | None:
        return self.backend.select_one(
            "exam_results", {"student_id": student_id, "exam_id": exam_id}
        )

    @staticmethod
    def _score_fields(score: ExamScore) -> dict[str, Any]:
        return {
            "section_scores": {name: asdict(s) for name, s in score.sections.items()},
            "total_points": score.total_points,
            "question_count": score.question_count,
            "total_score": score.total_score,
            "scaled_score": score.scaled_score,
        }
