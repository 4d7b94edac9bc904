"""Exam session state machine.

An ``ExamSession`` drives one student through one exam: section selection and
per-section timers for TOEFL exams, linear navigation under a single exam timer
for Unit exams, background answer writes and a single submission path.
"""
import asyncio
import enum
import logging
from typing import Any, Callable

from exam_api.backend import DataBackend
from exam_api.config import LIVE_SCORING, SECURITY_POLICY_ENABLED
from exam_api.errors import (
    BackendError,
    ContentLoadError,
    ExamAlreadyCompletedError,
    InvalidTransitionError,
    NotAuthenticatedError,
    SectionNotFoundError,
    SubmissionError,
)
from exam_api.models.db import ResultStatus
from exam_api.models.questions import BaseQuestion, ExamDefinition, Section
from exam_api.models.sessions import SecurityPolicy
from exam_api.services.answer_store import AnswerStore, serialize_answer
from exam_api.services.exam_loader import load_exam
from exam_api.services.progress_service import ProgressTracker
from exam_api.services.scoring_service import ScoringEngine
from exam_api.services.timer import CountdownTimer, Scheduler
from exam_api.services.write_queue import AnswerWriteQueue
from exam_api.utils import format_time, utc_now

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    SELECTING_SECTION = "selecting_section"
    IN_SECTION = "in_section"
    IN_PROGRESS = "in_progress"
    COMPLETING_SECTION = "completing_section"
    # Answers are frozen from here on; only submit, retry and exit are accepted
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    EXITED = "exited"


FINISHED_STATES = (SessionState.SUBMITTED, SessionState.EXITED)


class ExamSession:
    """One student's live attempt at one exam."""

    def __init__(
        self,
        backend: DataBackend,
        exam: ExamDefinition,
        student_id: str,
        answers: dict[str, str] | None = None,
        completed_sections: list[str] | None = None,
        scheduler: Scheduler | None = None,
        live_scoring: bool = LIVE_SCORING,
        security_policy: SecurityPolicy | None = None,
        on_finished: Callable[["ExamSession"], None] | None = None,
    ) -> None:
        self.exam = exam
        self.student_id = student_id
        self.live_scoring = live_scoring
        self.security_policy = security_policy
        self.on_finished = on_finished

        self.store = AnswerStore(backend, exam.kind)
        self.progress = ProgressTracker(backend)
        self.scoring = ScoringEngine(backend)
        self.queue = AnswerWriteQueue(self._write_answer)
        self.timer = CountdownTimer(
            on_expire=self._on_timer_expired,
            on_warning=self._on_timer_warning,
            scheduler=scheduler,
        )

        self.answers: dict[str, str] = dict(answers or {})
        self.completed_sections: list[str] = list(completed_sections or [])
        self.state = SessionState.SELECTING_SECTION
        self.section_id: str | None = None
        self.question_index = 0
        self.result: dict[str, Any] | None = None
        self.submission_error: str | None = None
        self.events: list[dict[str, Any]] = []
        self._finalize_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Opening
    # ------------------------------------------------------------------

    @classmethod
    async def open(
        cls,
        backend: DataBackend,
        exam_id: str,
        student_id: str | None = None,
        **options: Any,
    ) -> "ExamSession":
        """
        Load an exam and restore the student's stored progress.

        Raises:
            NotAuthenticatedError: no student id and no user on the backend.
            ContentError: the exam cannot be loaded.
            ExamAlreadyCompletedError: a completed result already exists.
        """
        if student_id is None:
            user = backend.current_user()
            if user is None:
                raise NotAuthenticatedError()
            student_id = user.id

        exam = await asyncio.to_thread(load_exam, backend, exam_id)
        scoring = ScoringEngine(backend)
        try:
            existing = await asyncio.to_thread(scoring.get_result, student_id, exam.id)
            answers = await asyncio.to_thread(
                AnswerStore(backend, exam.kind).get_answers, student_id, exam.id
            )
        except BackendError as e:
            logger.error("Error restoring attempt for exam %s: %s", exam.id, e)
            raise ContentLoadError() from e

        if existing is not None and existing["status"] == ResultStatus.COMPLETED.value:
            raise ExamAlreadyCompletedError()

        completed: list[str] = []
        if exam.is_multi_section:
            try:
                completed = await asyncio.to_thread(
                    ProgressTracker(backend).get_completed_sections, student_id, exam.id
                )
            except BackendError as e:
                logger.error("Error reading progress for exam %s: %s", exam.id, e)

        if "security_policy" not in options and SECURITY_POLICY_ENABLED:
            options["security_policy"] = SecurityPolicy()

        session = cls(backend, exam, student_id, answers, completed, **options)
        session._enter()
        return session

    def _enter(self) -> None:
        if self.exam.is_multi_section:
            self.state = SessionState.SELECTING_SECTION
            self._record("opened", sections_completed=list(self.completed_sections))
            return
        self.state = SessionState.IN_PROGRESS
        self.question_index = 0
        self.timer.start(self.exam.duration_seconds)
        self._record("opened", duration_seconds=self.exam.duration_seconds)

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def select_section(self, section_id: str) -> Section:
        """Enter a section and start its timer."""
        self._require(SessionState.SELECTING_SECTION)
        section = self.exam.section(section_id)
        if section is None:
            raise SectionNotFoundError()
        if section_id in self.completed_sections:
            raise InvalidTransitionError("This section has already been completed.")

        self.state = SessionState.IN_SECTION
        self.section_id = section.id
        self.question_index = 0
        self.timer.start(section.duration_seconds)
        self._record("section_started", section=section.id)
        return section

    async def complete_section(self, section_id: str | None = None) -> None:
        """
        Finish the current section, manually or on timer expiry.

        Submits the exam when this completion was the one that covered every
        section. Passing ``section_id`` rejects the call unless that section
        is the one in progress.
        """
        self._require(SessionState.IN_SECTION)
        if section_id is not None and section_id != self.section_id:
            raise InvalidTransitionError("Section is not in progress.")
        section_id = self.section_id
        self.timer.cancel()
        # Leave IN_SECTION before the first await so a second call is rejected
        self.state = SessionState.COMPLETING_SECTION
        self.section_id = None
        self.question_index = 0

        completion = await asyncio.to_thread(
            self.progress.mark_section_complete,
            self.student_id,
            self.exam.id,
            section_id,
            self.exam.section_ids,
            self.completed_sections,
        )
        self.completed_sections = completion.completed
        self.state = SessionState.SELECTING_SECTION
        self._record("section_completed", section=section_id)

        if completion.newly_complete:
            await self._finalize()

    # ------------------------------------------------------------------
    # Answers and navigation
    # ------------------------------------------------------------------

    def answer(self, question_id: str, value: Any) -> None:
        """Record an answer locally and queue it for persistence."""
        self._require(SessionState.IN_SECTION, SessionState.IN_PROGRESS)
        question_id = str(question_id)
        question = self.exam.find_question(question_id)
        if question is None:
            raise InvalidTransitionError("This question is not part of the exam.")
        if all(q is not question for q in self.current_questions):
            raise InvalidTransitionError("This question is not part of the current section.")

        self.answers[question_id] = serialize_answer(value)
        self.queue.submit(question_id, value)

    def next_question(self) -> int:
        return self.go_to_question(self.question_index + 1)

    def previous_question(self) -> int:
        return self.go_to_question(self.question_index - 1)

    def go_to_question(self, index: int) -> int:
        self._require(SessionState.IN_SECTION, SessionState.IN_PROGRESS)
        if not 0 <= index < len(self.current_questions):
            raise InvalidTransitionError("There is no question at that position.")
        self.question_index = index
        return index

    @property
    def current_questions(self) -> list[BaseQuestion]:
        if self.state is SessionState.IN_SECTION:
            return self.exam.section(self.section_id).questions
        if self.state is SessionState.IN_PROGRESS:
            return self.exam.questions
        return []

    @property
    def current_question(self) -> BaseQuestion | None:
        questions = self.current_questions
        if 0 <= self.question_index < len(questions):
            return questions[self.question_index]
        return None

    @property
    def is_last_question(self) -> bool:
        return self.question_index == len(self.current_questions) - 1

    # ------------------------------------------------------------------
    # Submission and exit
    # ------------------------------------------------------------------

    async def submit(self) -> dict[str, Any]:
        """
        Submit the exam.

        Unit exams accept this only on the last question. TOEFL exams accept it
        once every section is complete. A submission that failed to save
        is retried from the SUBMITTING state.
        """
        if self.state is SessionState.SUBMITTED:
            return self.result
        if self.state is SessionState.SUBMITTING:
            return await self._finalize()
        if self.exam.is_multi_section:
            if not all(s in self.completed_sections for s in self.exam.section_ids):
                raise InvalidTransitionError("Complete every section before submitting.")
            self._require(SessionState.SELECTING_SECTION)
        else:
            self._require(SessionState.IN_PROGRESS)
            if not self.is_last_question:
                raise InvalidTransitionError("Submit is only available on the last question.")
        return await self._finalize()

    async def retry_submission(self) -> dict[str, Any]:
        """Retry a submission that failed to save."""
        if self.state is SessionState.SUBMITTED:
            return self.result
        if self.submission_error is None:
            raise InvalidTransitionError("There is no failed submission to retry.")
        return await self._finalize()

    async def exit(self) -> None:
        """Leave the exam. Stored answers are kept so the attempt can resume."""
        async with self._finalize_lock:
            self.timer.cancel()
            await self.queue.flush()
            if self.exam.is_multi_section and self.state is not SessionState.SUBMITTED:
                try:
                    await asyncio.to_thread(self.scoring.mark_inactive, self.exam, self.student_id)
                except BackendError as e:
                    logger.error("Error marking exam %s inactive: %s", self.exam.id, e)
            self.state = SessionState.EXITED
            self.section_id = None
            self.question_index = 0
            self._record("exited")
        self._finished()

    async def _finalize(self) -> dict[str, Any]:
        """Score the attempt and write the result. The only result-writing path."""
        async with self._finalize_lock:
            if self.state is SessionState.SUBMITTED:
                return self.result
            if self.state is SessionState.EXITED:
                raise InvalidTransitionError()

            self.timer.cancel()
            self.state = SessionState.SUBMITTING
            self.section_id = None
            await self.queue.flush()
            # Give writes that failed earlier one more chance before scoring
            for question_id in list(self.queue.failed_keys):
                self.queue.submit(question_id, self.answers.get(question_id))
            await self.queue.flush()

            try:
                result = await asyncio.to_thread(
                    self.scoring.score_exam, self.exam, self.student_id
                )
            except SubmissionError as e:
                self.submission_error = e.message
                self._record("submission_failed", message=e.message)
                raise

            try:
                await asyncio.to_thread(self.scoring.mark_schedule_completed, self.exam.id)
            except BackendError as e:
                logger.error("Error marking schedule %s completed: %s", self.exam.id, e)

            self.result = result
            self.submission_error = None
            self.state = SessionState.SUBMITTED
            self._record("submitted", total_score=result.get("total_score"))
        self._finished()
        return result

    # ------------------------------------------------------------------
    # Timer callbacks
    # ------------------------------------------------------------------

    def _on_timer_warning(self, remaining: int) -> None:
        self._record("time_warning", remaining_seconds=remaining, section=self.section_id)

    async def _on_timer_expired(self) -> None:
        self._record("time_expired", section=self.section_id)
        try:
            if self.state is SessionState.IN_SECTION:
                await self.complete_section()
            elif self.state is SessionState.IN_PROGRESS:
                await self._finalize()
        except SubmissionError:
            # Recorded in submission_error; the student retries from the UI
            logger.warning("Submission after timer expiry failed for exam %s", self.exam.id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _write_answer(self, question_id: str, value: Any) -> bool:
        stored = await asyncio.to_thread(
            self.store.put_answer, self.student_id, self.exam.id, question_id, value
        )
        if stored and self.live_scoring and self.exam.is_multi_section:
            await asyncio.to_thread(self.scoring.refresh_live_scores, self.exam, self.student_id)
        return stored

    def _finished(self) -> None:
        if self.on_finished is not None:
            self.on_finished(self)

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            raise InvalidTransitionError()

    def _record(self, kind: str, **data: Any) -> None:
        logger.info("Exam %s student %s: %s %s", self.exam.id, self.student_id, kind, data)
        self.events.append({"type": kind, "at": utc_now().isoformat(), "data": data})

    def view(self) -> dict[str, Any]:
        """Snapshot for the student UI."""
        question = self.current_question
        return {
            "examId": self.exam.id,
            "title": self.exam.title,
            "kind": self.exam.kind,
            "state": self.state.value,
            "sectionId": self.section_id,
            "questionIndex": self.question_index,
            "questionCount": len(self.current_questions),
            "isLastQuestion": question is not None and self.is_last_question,
            "question": question.public_view() if question is not None else None,
            "answers": dict(self.answers),
            "sections": [
                {
                    "id": s.id,
                    "title": s.title,
                    "questionCount": len(s.questions),
                    "durationMinutes": s.duration_minutes,
                    "completed": s.id in self.completed_sections,
                }
                for s in self.exam.sections
            ],
            "completedSections": list(self.completed_sections),
            "timerState": self.timer.state.value,
            "remainingSeconds": self.timer.remaining,
            "remainingTime": format_time(self.timer.remaining),
            "timeWarning": self.timer.warning_raised,
            "pendingWrites": sorted(self.queue.busy_keys),
            "failedWrites": sorted(self.queue.failed_keys),
            "submissionError": self.submission_error,
            "result": self.result,
            "events": list(self.events),
            "securityPolicy": self.security_policy,
        }


class SessionRegistry:
    """Keeps one live session per (student, exam). Finished sessions drop out."""

    def __init__(self) -> None:
        self._sessions: dict[tuple[str, str], ExamSession] = {}
        self._lock = asyncio.Lock()

    def get(self, student_id: str, exam_id: str) -> ExamSession | None:
        return self._sessions.get((student_id, exam_id))

    async def open(
        self, backend: DataBackend, exam_id: str, student_id: str, **options: Any
    ) -> ExamSession:
        """Return the live session, opening a new one if there is none."""
        key = (student_id, exam_id)
        async with self._lock:
            session = self._sessions.get(key)
            if session is not None and session.state not in FINISHED_STATES:
                return session
            self._sessions.pop(key, None)
            session = await ExamSession.open(
                backend, exam_id, student_id, on_finished=self._drop, **options
            )
            self._sessions[key] = session
            return session

    def _drop(self, session: ExamSession) -> None:
        key = (session.student_id, session.exam.id)
        if self._sessions.get(key) is session:
            del self._sessions[key]

    def __len__(self) -> int:
        return len(self._sessions)
