"""Service layer for persisting student answers."""
import logging
from typing import Any

from exam_api.backend import DataBackend
from exam_api.errors import BackendError, DuplicateRowError
from exam_api.models.db import ResultStatus
from exam_api.utils import json_dump, utc_now

logger = logging.getLogger(__name__)


def serialize_answer(value: Any) -> str:
    """Serialize an answer value to its stored text form."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, str)):
        return str(value)
    if isinstance(value, (dict, list, tuple)):
        if isinstance(value, dict):
            value = {str(k): v for k, v in value.items()}
        return json_dump(value)
    return str(value)


class AnswerStore:
    """
    Per-(student, exam, question) answer persistence.
    Writes are last-write-wins and safe to retry.
    """

    def __init__(self, backend: DataBackend, exam_type: str = "Unit") -> None:
        self.backend = backend
        self.exam_type = exam_type

    def put_answer(
        self,
        student_id: str,
        exam_id: str,
        question_id: str,
        value: Any,
    ) -> bool:
        """
        Store an answer, replacing any previous one for the same key.

        Returns False (after logging) when the answer could not be written.
        """
        key = {
            "student_id": student_id,
            "exam_id": exam_id,
            "question_id": str(question_id),
        }
        answer = serialize_answer(value)
        stored = False

        try:
            self._delete_then_insert(key, answer)
            stored = True
        except BackendError as e:
            logger.warning(
                "Delete-then-insert failed for question %s, falling back: %s",
                question_id, e,
            )
            try:
                self._update_or_insert(key, answer)
                stored = True
            except BackendError as e2:
                logger.error("Error saving answer for question %s: %s", question_id, e2)

        self.touch_activity(student_id, exam_id)
        return stored

    def get_answers(self, student_id: str, exam_id: str) -> dict[str, str]:
        """Get current answers keyed by question id."""
        rows = self.backend.select(
            "student_answers",
            {"student_id": student_id, "exam_id": exam_id},
            columns=["question_id", "answer"],
            order_by=["updated_at", "id"],
        )
        return {str(row["question_id"]): row["answer"] for row in rows}

    def touch_activity(self, student_id: str, exam_id: str) -> None:
        """Mark the attempt as active for the live view. Best effort."""
        key = {"student_id": student_id, "exam_id": exam_id}
        try:
            existing = self.backend.select_one("exam_results", key, columns=["id", "status"])
            if existing is None:
                try:
                    self.backend.insert(
                        "exam_results",
                        {
                            **key,
                            "exam_type": self.exam_type,
                            "status": ResultStatus.ACTIVE.value,
                            "taken_at": utc_now(),
                            "updated_at": utc_now(),
                        },
                    )
                    return
                except DuplicateRowError:
                    existing = self.backend.select_one(
                        "exam_results", key, columns=["id", "status"]
                    )
            if existing is None or existing["status"] == ResultStatus.COMPLETED.value:
                return
            self.backend.update(
                "exam_results",
                {"id": existing["id"]},
                {"status": ResultStatus.ACTIVE.value, "updated_at": utc_now()},
            )
        except BackendError as e:
            logger.error("Error updating activity for exam %s: %s", exam_id, e)

    def _delete_then_insert(self, key: dict[str, str], answer: str) -> None:
        now = utc_now()
        self.backend.delete("student_answers", key)
        self.backend.insert(
            "student_answers",
            {**key, "answer": answer, "created_at": now, "updated_at": now},
        )

    def _update_or_insert(self, key: dict[str, str], answer: str) -> None:
        existing = self.backend.select_one("student_answers", key, columns=["id"])
        if existing:
            self.backend.update(
                "student_answers",
                {"id": existing["id"]},
                {"answer": answer, "updated_at": utc_now()},
            )
        else:
            now = utc_now()
            self.backend.insert(
                "student_answers",
                {**key, "answer": answer, "created_at": now, "updated_at": now},
            )
