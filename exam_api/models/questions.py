from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


LETTERS = ("A", "B", "C", "D")


class QuestionType(str, enum.Enum):
    MULTIPLE_CHOICE = "multiple"
    TRUE_FALSE = "truefalse"
    MATCHING = "matching"
    UNDERLINE = "underline"
    UNKNOWN = "unknown"


@dataclass
class Passage:
    title: str = ""
    body: str = ""


@dataclass
class BaseQuestion:
    id: str
    text: str = ""
    sequence: int = 0
    passage: Optional[Passage] = None
    audio_url: Optional[str] = None

    type = QuestionType.UNKNOWN

    @property
    def is_scorable(self) -> bool:
        return False

    def public_view(self) -> Dict[str, Any]:
        """Student-facing payload, without the correct answer."""
        view: Dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "text": self.text,
            "sequence": self.sequence,
        }
        if self.passage is not None:
            view["passage"] = {"title": self.passage.title, "body": self.passage.body}
        if self.audio_url:
            view["audioUrl"] = self.audio_url
        return view


@dataclass
class MultipleChoiceQuestion(BaseQuestion):
    choices: List[str] = field(default_factory=list)
    correct_index: Optional[int] = None

    type = QuestionType.MULTIPLE_CHOICE

    @property
    def is_scorable(self) -> bool:
        return self.correct_index is not None

    def public_view(self) -> Dict[str, Any]:
        view = super().public_view()
        view["choices"] = list(self.choices)
        return view


@dataclass
class TrueFalseQuestion(BaseQuestion):
    correct: Optional[bool] = None

    type = QuestionType.TRUE_FALSE

    @property
    def is_scorable(self) -> bool:
        return self.correct is not None

    def public_view(self) -> Dict[str, Any]:
        view = super().public_view()
        view["choices"] = ["True", "False"]
        return view


@dataclass
class MatchingQuestion(BaseQuestion):
    left_items: List[str] = field(default_factory=list)
    right_items: List[str] = field(default_factory=list)
    # right item index -> left item index
    correct_pairs: Optional[Dict[int, int]] = None

    type = QuestionType.MATCHING

    @property
    def is_scorable(self) -> bool:
        return bool(self.correct_pairs)

    def public_view(self) -> Dict[str, Any]:
        view = super().public_view()
        view["leftItems"] = list(self.left_items)
        view["rightItems"] = list(self.right_items)
        return view


@dataclass
class UnderlinedWord:
    letter: str
    word: str
    index: Optional[int] = None


@dataclass
class UnderlineQuestion(BaseQuestion):
    words: List[UnderlinedWord] = field(default_factory=list)
    incorrect_letter: Optional[str] = None

    type = QuestionType.UNDERLINE

    @property
    def is_scorable(self) -> bool:
        return self.incorrect_letter is not None

    def public_view(self) -> Dict[str, Any]:
        view = super().public_view()
        view["underlinedWords"] = [
            {"letter": w.letter, "word": w.word, "index": w.index} for w in self.words
        ]
        return view


@dataclass
class UnknownQuestion(BaseQuestion):
    raw_type: str = ""

    def public_view(self) -> Dict[str, Any]:
        view = super().public_view()
        view["rawType"] = self.raw_type
        return view


@dataclass
class Section:
    id: str
    title: str
    questions: List[BaseQuestion] = field(default_factory=list)
    duration_minutes: int = 35
    audio_url: Optional[str] = None

    @property
    def duration_seconds(self) -> int:
        return self.duration_minutes * 60

    def public_view(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "durationMinutes": self.duration_minutes,
            "audioUrl": self.audio_url,
            "questions": [q.public_view() for q in self.questions],
        }


@dataclass
class Cohort:
    level: Optional[str] = None
    program: Optional[str] = None
    semester: Optional[str] = None
    group: Optional[str] = None
    salons: Optional[List[str]] = None  # None means every salon


@dataclass
class ExamDefinition:
    id: str
    test_id: str
    title: str
    kind: str  # "Unit" | "TOEFL"
    duration_minutes: int
    sections: List[Section]
    scheduled_at: Optional[datetime] = None
    cohort: Cohort = field(default_factory=Cohort)

    @property
    def is_multi_section(self) -> bool:
        return self.kind == "TOEFL"

    @property
    def duration_seconds(self) -> int:
        return self.duration_minutes * 60

    @property
    def section_ids(self) -> List[str]:
        return [s.id for s in self.sections]

    @property
    def questions(self) -> List[BaseQuestion]:
        return [q for s in self.sections for q in s.questions]

    def section(self, section_id: str) -> Optional[Section]:
        for s in self.sections:
            if s.id == section_id:
                return s
        return None

    def find_question(self, question_id: str) -> Optional[BaseQuestion]:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def public_view(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "kind": self.kind,
            "durationMinutes": self.duration_minutes,
            "scheduledAt": self.scheduled_at.isoformat() if self.scheduled_at else None,
            "sections": [s.public_view() for s in self.sections],
        }
