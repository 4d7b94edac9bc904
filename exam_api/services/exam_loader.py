"""Service layer for loading exam content.

All knowledge of how question rows are stored (including shapes written by
older authoring screens) lives here; everything downstream works with the
canonical question dataclasses.
"""
import logging
from datetime import datetime
from typing import Any

from exam_api.backend import DataBackend
from exam_api.config import DEFAULT_EXAM_MINUTES, DEFAULT_SECTION_MINUTES, TOEFL_SECTIONS, UNIT_SECTION_ID
from exam_api.errors import BackendError, ContentLoadError, ExamNotFoundError, NoQuestionsConfiguredError
from exam_api.models.db import ExamKind
from exam_api.models.questions import (
    LETTERS,
    BaseQuestion,
    Cohort,
    ExamDefinition,
    MatchingQuestion,
    MultipleChoiceQuestion,
    Passage,
    QuestionType,
    Section,
    TrueFalseQuestion,
    UnderlinedWord,
    UnderlineQuestion,
    UnknownQuestion,
)
from exam_api.utils import maybe_json, parse_schedule

logger = logging.getLogger(__name__)

TYPE_ALIASES = {
    "multiple": QuestionType.MULTIPLE_CHOICE,
    "multiple_choice": QuestionType.MULTIPLE_CHOICE,
    "multiplechoice": QuestionType.MULTIPLE_CHOICE,
    "mc": QuestionType.MULTIPLE_CHOICE,
    "reading": QuestionType.MULTIPLE_CHOICE,
    "passage": QuestionType.MULTIPLE_CHOICE,
    "listening": QuestionType.MULTIPLE_CHOICE,
    "truefalse": QuestionType.TRUE_FALSE,
    "true_false": QuestionType.TRUE_FALSE,
    "tf": QuestionType.TRUE_FALSE,
    "boolean": QuestionType.TRUE_FALSE,
    "matching": QuestionType.MATCHING,
    "match": QuestionType.MATCHING,
    "underline": QuestionType.UNDERLINE,
    "underline_error": QuestionType.UNDERLINE,
    "error_identification": QuestionType.UNDERLINE,
}

TRUE_STRINGS = {"true", "t", "yes", "verdadero"}
FALSE_STRINGS = {"false", "f", "no", "falso"}


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def _pick(row: dict[str, Any], *keys: str) -> Any:
    """Return the first non-None value among keys."""
    for key in keys:
        value = row.get(key)
        if value is not None:
            return value
    return None


def _to_index(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        raw = value.strip()
        if raw.lstrip("-").isdigit():
            return int(raw)
        if raw.upper() in LETTERS:
            return LETTERS.index(raw.upper())
    return None


def _to_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in TRUE_STRINGS:
            return True
        if raw in FALSE_STRINGS:
            return False
    return None


def _to_str_list(value: Any) -> list[str]:
    value = maybe_json(value)
    if not isinstance(value, list):
        return []
    return ["" if item is None else str(item) for item in value]


def _to_pairs(value: Any) -> dict[int, int] | None:
    """Pairs as right index -> left index, from a list or a mapping."""
    value = maybe_json(value)
    pairs: dict[int, int] = {}
    if isinstance(value, list):
        for right, left in enumerate(value):
            left_index = _to_index(left)
            if left_index is not None:
                pairs[right] = left_index
    elif isinstance(value, dict):
        for right, left in value.items():
            right_index = _to_index(right)
            left_index = _to_index(left)
            if right_index is not None and left_index is not None:
                pairs[right_index] = left_index
    return pairs or None


def _to_words(value: Any) -> list[UnderlinedWord]:
    value = maybe_json(value)
    if isinstance(value, dict):
        value = value.get("words")
    if not isinstance(value, list):
        return []
    words = []
    for position, item in enumerate(value):
        if isinstance(item, dict):
            letter = str(item.get("letter") or "").upper()
            word = str(_pick(item, "word", "text") or "")
            index = _to_index(item.get("index"))
        else:
            letter = LETTERS[position] if position < len(LETTERS) else ""
            word = str(item)
            index = None
        words.append(UnderlinedWord(letter=letter, word=word, index=index))
    return words


def _to_letter(value: Any) -> str | None:
    if isinstance(value, str) and value.strip().upper() in LETTERS:
        return value.strip().upper()
    index = _to_index(value)
    if index is not None and 0 <= index < len(LETTERS):
        return LETTERS[index]
    return None


# ---------------------------------------------------------------------------
# Question normalization
# ---------------------------------------------------------------------------

def resolve_type(raw_type: Any) -> QuestionType:
    """Map a stored type label to a canonical question type."""
    if not isinstance(raw_type, str) or not raw_type.strip():
        return QuestionType.MULTIPLE_CHOICE
    key = raw_type.strip().lower().replace("-", "_").replace(" ", "_")
    return TYPE_ALIASES.get(key, QuestionType.UNKNOWN)


def normalize_question(row: dict[str, Any]) -> BaseQuestion:
    """Map any stored question shape to one canonical question variant."""
    common: dict[str, Any] = {
        "id": str(row.get("id")),
        "text": str(row.get("text") or ""),
        "sequence": _to_index(row.get("sequence")) or 0,
        "audio_url": _pick(row, "audio_url", "audioUrl") or None,
    }
    passage_title = _pick(row, "passage_title", "passageTitle")
    passage_body = _pick(row, "passage_content", "passageContent")
    if passage_title or passage_body:
        common["passage"] = Passage(title=passage_title or "", body=passage_body or "")

    correct = maybe_json(_pick(row, "correct_answer", "correctAnswer"))
    question_type = resolve_type(row.get("type"))

    if question_type is QuestionType.MULTIPLE_CHOICE:
        return MultipleChoiceQuestion(
            choices=_to_str_list(_pick(row, "choices", "options")),
            correct_index=_to_index(correct),
            **common,
        )

    if question_type is QuestionType.TRUE_FALSE:
        answer = _to_bool(_pick(row, "is_true", "isTrue"))
        if answer is None:
            answer = _to_bool(correct)
        if answer is None:
            # Authoring stores the index of the "True"/"False" choice
            index = _to_index(correct)
            if index in (0, 1):
                answer = index == 0
        return TrueFalseQuestion(correct=answer, **common)

    if question_type is QuestionType.MATCHING:
        pairs = _to_pairs(_pick(row, "correct_pairs", "correctPairs"))
        if pairs is None and isinstance(correct, (list, dict)):
            pairs = _to_pairs(correct)
        return MatchingQuestion(
            left_items=_to_str_list(_pick(row, "left_items", "leftItems")),
            right_items=_to_str_list(_pick(row, "right_items", "rightItems")),
            correct_pairs=pairs,
            **common,
        )

    if question_type is QuestionType.UNDERLINE:
        letter = _to_letter(_pick(row, "incorrect_letter", "incorrectLetter"))
        if letter is None:
            letter = _to_letter(correct)
        return UnderlineQuestion(
            words=_to_words(_pick(row, "underlined_words", "underlinedWords")),
            incorrect_letter=letter,
            **common,
        )

    return UnknownQuestion(raw_type=str(row.get("type")), **common)


def _order_key(row: dict[str, Any]) -> tuple:
    sequence = _to_index(row.get("sequence"))
    created = row.get("created_at")
    created_ts = created.timestamp() if isinstance(created, datetime) else 0.0
    return (sequence is None, sequence or 0, created_ts, str(row.get("id")))


def normalize_questions(rows: list[dict[str, Any]]) -> list[BaseQuestion]:
    """Normalize rows and number them in display order."""
    questions = []
    for position, row in enumerate(sorted(rows, key=_order_key)):
        question = normalize_question(row)
        question.sequence = position + 1
        questions.append(question)
    return questions


# ---------------------------------------------------------------------------
# Exam loading
# ---------------------------------------------------------------------------

def load_exam(backend: DataBackend, exam_id: str) -> ExamDefinition:
    """
    Load an exam schedule entry with its sections and questions.

    Raises:
        ExamNotFoundError: no schedule entry or no test behind it.
        NoQuestionsConfiguredError: the test has nothing to answer.
        ContentLoadError: the backend failed while loading.
    """
    try:
        schedule = backend.select_one("exam_schedule", {"id": exam_id})
        if schedule is None:
            raise ExamNotFoundError()

        test = None
        if schedule.get("test_id"):
            test = backend.select_one("tests", {"id": schedule["test_id"]})
        if test is None:
            raise ExamNotFoundError("Test not found. Please contact your administrator.")

        if test.get("type") == ExamKind.TOEFL.value:
            sections = _load_toefl_sections(backend, test)
        else:
            sections = [_load_unit_section(backend, test)]
    except BackendError as e:
        logger.error("Error loading exam %s: %s", exam_id, e)
        raise ContentLoadError() from e

    exam = ExamDefinition(
        id=exam_id,
        test_id=test["id"],
        title=test.get("title") or ("TOEFL Exam" if test.get("type") == "TOEFL" else "Unit Exam"),
        kind=ExamKind.TOEFL.value if test.get("type") == "TOEFL" else ExamKind.UNIT.value,
        duration_minutes=schedule.get("duration") or DEFAULT_EXAM_MINUTES,
        sections=sections,
        scheduled_at=parse_schedule(schedule.get("date"), schedule.get("time")),
        cohort=Cohort(
            level=test.get("level"),
            program=test.get("carrera"),
            semester=test.get("semestre"),
            group=test.get("grupo"),
            salons=test.get("salons") or None,
        ),
    )
    logger.info(
        "Loaded %s exam %s: %d sections, %d questions",
        exam.kind, exam_id, len(exam.sections), len(exam.questions),
    )
    return exam


def _load_unit_section(backend: DataBackend, test: dict[str, Any]) -> Section:
    rows = backend.select("questions", {"test_id": test["id"]})
    if not rows:
        raise NoQuestionsConfiguredError(
            "This exam has no questions configured. Please contact your administrator."
        )
    return Section(
        id=UNIT_SECTION_ID,
        title=test.get("title") or "Questions",
        questions=normalize_questions(rows),
        duration_minutes=test.get("section_duration") or DEFAULT_SECTION_MINUTES,
        audio_url=test.get("audio_url"),
    )


def _load_toefl_sections(backend: DataBackend, test: dict[str, Any]) -> list[Section]:
    children = backend.select(
        "tests", {"parent_test_id": test["id"]}, order_by=["created_at"]
    )
    if not children:
        raise NoQuestionsConfiguredError()

    by_skill: dict[str, dict[str, Any]] = {}
    for child in children:
        skill = str(child.get("section") or "").strip().lower()
        if skill in TOEFL_SECTIONS and skill not in by_skill:
            by_skill[skill] = child

    sections = []
    for skill in TOEFL_SECTIONS:
        child = by_skill.get(skill)
        if child is None:
            logger.warning("TOEFL test %s has no %s section", test["id"], skill)
            sections.append(
                Section(id=skill, title=skill.title(), duration_minutes=DEFAULT_SECTION_MINUTES)
            )
            continue

        rows = backend.select("questions", {"test_id": child["id"]})
        if not child.get("audio_url") and skill == "listening":
            logger.warning("Listening section %s has no audio", child["id"])
        sections.append(
            Section(
                id=skill,
                title=child.get("title") or skill.title(),
                questions=normalize_questions(rows),
                duration_minutes=child.get("section_duration") or DEFAULT_SECTION_MINUTES,
                audio_url=child.get("audio_url") or None,
            )
        )

    if not any(section.questions for section in sections):
        raise NoQuestionsConfiguredError()
    return sections
