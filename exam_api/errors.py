"""Error taxonomy for the exam session service.

Every error carries a message that can be shown to the student as-is.
"""


class ExamServiceError(Exception):
    """Base class for all exam service errors."""

    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# Content errors: fatal to entering that part of the flow, never retried.
class ContentError(ExamServiceError):
    """Exam content could not be loaded or is not usable."""


class ExamNotFoundError(ContentError):
    default_message = "Exam not found. Please return to the dashboard and try again."


class NoQuestionsConfiguredError(ContentError):
    default_message = (
        "This exam has not been configured yet. Please contact your administrator."
    )


class SectionNotFoundError(ContentError):
    default_message = "Section not found."


class ContentLoadError(ContentError):
    default_message = "Failed to load exam content. Please try again."


# Session errors
class SubmissionError(ExamServiceError):
    """The final result could not be written. The student may retry."""

    default_message = "Failed to save exam result. Please try again."


class InvalidTransitionError(ExamServiceError):
    default_message = "This action is not available right now."


class ExamAlreadyCompletedError(ExamServiceError):
    default_message = "You have already completed this exam."


class NotAuthenticatedError(ExamServiceError):
    default_message = "User not authenticated. Please log in again."


# Backend errors
class BackendError(ExamServiceError):
    """A call to the data backend failed."""

    default_message = "The data backend request failed."


class DuplicateRowError(BackendError):
    """An insert collided with a uniqueness constraint."""

    default_message = "A row with the same key already exists."
