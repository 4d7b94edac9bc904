from pathlib import Path
from typing import Any, Callable

import pytest
from sqlalchemy.orm import sessionmaker

from exam_api.backend import DataBackend
from exam_api.database import init_db, make_engine


class FakeHandle:
    def __init__(self, callback: Callable[[], Any]) -> None:
        self.callback = callback
        self.cancelled = False
        self.done = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock standing in for the event loop's call_later."""

    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []

    def call_later(self, delay: float, callback: Callable[[], Any]) -> FakeHandle:
        handle = FakeHandle(callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> list[FakeHandle]:
        return [h for h in self.handles if not h.cancelled and not h.done]

    def advance(self, seconds: int = 1) -> None:
        for _ in range(seconds):
            for handle in self.pending:
                handle.done = True
                handle.callback()


class Seeder:
    """Writes exam content straight into the test database."""

    def __init__(self, backend: DataBackend) -> None:
        self.backend = backend

    @staticmethod
    def mc(correct: int | None, text: str = "Pick one", **extra: Any) -> dict[str, Any]:
        row = {
            "type": "multiple",
            "text": text,
            "choices": ["A", "B", "C", "D"],
            "correct_answer": correct,
        }
        row.update(extra)
        return row

    def questions(self, test_id: str, rows: list[dict[str, Any]]) -> None:
        for position, row in enumerate(rows, start=1):
            self.backend.insert("questions", {"sequence": position, **row, "test_id": test_id})

    def schedule(self, test_id: str, duration: int | None = 60) -> str:
        row = self.backend.insert(
            "exam_schedule",
            {"test_id": test_id, "date": "2026-03-02", "time": "09:00", "duration": duration},
        )
        return row["id"]

    def unit_exam(self, rows: list[dict[str, Any]], duration: int | None = 60) -> str:
        test = self.backend.insert("tests", {"title": "Unit 1", "type": "Unit"})
        self.questions(test["id"], rows)
        return self.schedule(test["id"], duration)

    def toefl_exam(
        self, sections: dict[str, list[dict[str, Any]]], section_minutes: int = 35
    ) -> str:
        parent = self.backend.insert("tests", {"title": "TOEFL Practice", "type": "TOEFL"})
        for skill, rows in sections.items():
            child = self.backend.insert(
                "tests",
                {
                    "title": skill.title(),
                    "type": "TOEFL",
                    "section": skill,
                    "parent_test_id": parent["id"],
                    "section_duration": section_minutes,
                    "audio_url": "https://cdn.example.org/a.mp3" if skill == "listening" else None,
                },
            )
            self.questions(child["id"], rows)
        return self.schedule(parent["id"], duration=None)


@pytest.fixture
def backend(tmp_path: Path):
    engine = make_engine(f"sqlite:///{tmp_path / 'exams.db'}")
    init_db(bind=engine)
    yield DataBackend(sessionmaker(autocommit=False, autoflush=False, bind=engine))
    engine.dispose()


@pytest.fixture
def seed(backend: DataBackend) -> Seeder:
    return Seeder(backend)


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()
