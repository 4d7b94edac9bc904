"""Service layer for per-attempt section progress."""
import logging
from dataclasses import dataclass, field
from typing import Iterable

from exam_api.backend import DataBackend
from exam_api.errors import BackendError, DuplicateRowError
from exam_api.utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class SectionCompletion:
    """Outcome of marking a section complete."""

    completed: list[str] = field(default_factory=list)
    exam_complete: bool = False
    # True only for the call that made the exam complete
    newly_complete: bool = False


def _merge(current: Iterable[str], extra: Iterable[str]) -> list[str]:
    merged = list(dict.fromkeys(current))
    for section_id in extra:
        if section_id not in merged:
            merged.append(section_id)
    return merged


def covers(completed: Iterable[str], required: Iterable[str]) -> bool:
    done = set(completed)
    return all(section_id in done for section_id in required)


class ProgressTracker:
    """Tracks which sections a student has completed in an exam."""

    def __init__(self, backend: DataBackend) -> None:
        self.backend = backend

    def get_completed_sections(self, student_id: str, exam_id: str) -> list[str]:
        row = self.backend.select_one(
            "student_progress",
            {"student_id": student_id, "exam_id": exam_id},
            columns=["sections_completed"],
        )
        if row is None or not isinstance(row["sections_completed"], list):
            return []
        return list(row["sections_completed"])

    def is_exam_complete(
        self, student_id: str, exam_id: str, all_section_ids: Iterable[str]
    ) -> bool:
        return covers(self.get_completed_sections(student_id, exam_id), all_section_ids)

    def mark_section_complete(
        self,
        student_id: str,
        exam_id: str,
        section_id: str,
        required_sections: Iterable[str],
        known_completed: Iterable[str] = (),
    ) -> SectionCompletion:
        """
        Add a section to the completed set.

        Adding a section twice is a no-op. The completed set is computed from
        the stored set, the caller's local set and the new section, so the
        result is correct even when the stored row cannot be read or written.
        """
        required = list(required_sections)
        local = list(known_completed)

        try:
            stored = self.get_completed_sections(student_id, exam_id)
        except BackendError as e:
            logger.error("Error reading progress for exam %s: %s", exam_id, e)
            stored = []

        before = _merge(stored, local)
        after = _merge(before, [section_id])

        if after != stored:
            try:
                self._save(student_id, exam_id, after)
            except BackendError as e:
                logger.error("Error saving progress for exam %s: %s", exam_id, e)

        exam_complete = covers(after, required)
        return SectionCompletion(
            completed=after,
            exam_complete=exam_complete,
            newly_complete=exam_complete and not covers(before, required),
        )

    def _save(self, student_id: str, exam_id: str, sections: list[str]) -> None:
        key = {"student_id": student_id, "exam_id": exam_id}
        patch = {"sections_completed": sections, "last_activity": utc_now()}
        if self.backend.update("student_progress", key, patch):
            return
        try:
            self.backend.insert("student_progress", {**key, **patch})
        except DuplicateRowError:
            self.backend.update("student_progress", key, patch)
