from datetime import timedelta

import pytest

from exam_api.backend import CurrentUser
from exam_api.errors import DuplicateRowError
from exam_api.services.cleanup_service import mark_stale_results_inactive
from exam_api.utils import utc_now


def test_insert_returns_generated_values(backend) -> None:
    row = backend.insert("tests", {"title": "Unit 2"})
    assert row["id"]
    assert row["type"] == "Unit"
    assert row["created_at"] is not None


def test_select_filters_and_ordering(backend) -> None:
    for student in ("s1", "s2", "s3"):
        backend.insert("student_answers", {"student_id": student, "exam_id": "e1", "question_id": "1"})

    rows = backend.select(
        "student_answers",
        {"student_id": ["s1", "s3"]},
        columns=["student_id"],
        order_by=["-student_id"],
    )
    assert rows == [{"student_id": "s3"}, {"student_id": "s1"}]


def test_update_and_delete_report_row_counts(backend) -> None:
    backend.insert("exam_schedule", {"id": "e1"})
    assert backend.update("exam_schedule", {"id": "e1"}, {"status": "completed"}) == 1
    assert backend.update("exam_schedule", {"id": "nope"}, {"status": "completed"}) == 0
    assert backend.delete("exam_schedule", {"id": "e1"}) == 1


def test_duplicate_result_row_is_rejected(backend) -> None:
    row = {"student_id": "s1", "exam_id": "e1", "exam_type": "Unit"}
    backend.insert("exam_results", row)
    with pytest.raises(DuplicateRowError):
        backend.insert("exam_results", row)


def test_unknown_table_or_column(backend) -> None:
    with pytest.raises(ValueError):
        backend.select("users")
    with pytest.raises(ValueError):
        backend.select("tests", {"owner": "x"})
    with pytest.raises(ValueError):
        backend.delete("tests", {})


def test_for_user_binds_current_user(backend) -> None:
    assert backend.current_user() is None
    bound = backend.for_user(CurrentUser(id="s1", email="s1@school.edu"))
    assert bound.current_user().id == "s1"
    assert backend.current_user() is None


def test_stale_active_results_become_inactive(backend) -> None:
    old = utc_now() - timedelta(hours=5)
    backend.insert(
        "exam_results",
        {"student_id": "s1", "exam_id": "e1", "exam_type": "TOEFL", "status": "active", "updated_at": old},
    )
    backend.insert(
        "exam_results",
        {"student_id": "s2", "exam_id": "e1", "exam_type": "TOEFL", "status": "active"},
    )
    backend.insert(
        "exam_results",
        {"student_id": "s3", "exam_id": "e1", "exam_type": "TOEFL", "status": "completed", "updated_at": old},
    )

    assert mark_stale_results_inactive(backend, stale_minutes=180) == 1
    statuses = {
        row["student_id"]: row["status"]
        for row in backend.select("exam_results", columns=["student_id", "status"])
    }
    assert statuses == {"s1": "inactive", "s2": "active", "s3": "completed"}
