import pytest
from fastapi.testclient import TestClient
from jose import jwt

from exam_api.app import create_app
from exam_api.config import ALGORITHM, SECRET_KEY
from exam_api.errors import SubmissionError
from exam_api.services.scoring_service import ScoringEngine


def auth_headers(student_id: str = "s1") -> dict[str, str]:
    token = jwt.encode({"sub": student_id, "email": f"{student_id}@school.edu"}, SECRET_KEY, algorithm=ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(backend):
    with TestClient(create_app(backend, run_cleanup=False)) as test_client:
        yield test_client


def test_requires_bearer_token(client, seed) -> None:
    exam_id = seed.unit_exam([seed.mc(0)])
    assert client.get(f"/api/exams/{exam_id}").status_code == 401

    response = client.get(
        f"/api/exams/{exam_id}", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401


def test_get_exam_hides_answers(client, seed) -> None:
    exam_id = seed.unit_exam([seed.mc(1, text="2 + 2?")])
    response = client.get(f"/api/exams/{exam_id}", headers=auth_headers())

    assert response.status_code == 200
    payload = response.json()
    assert payload["kind"] == "Unit"
    assert payload["sections"][0]["questions"][0]["text"] == "2 + 2?"
    assert "correct" not in response.text


def test_unknown_exam_returns_404_with_dashboard_action(client) -> None:
    response = client.get("/api/exams/missing", headers=auth_headers())
    assert response.status_code == 404
    assert response.json()["action"] == "return_to_dashboard"


def test_exam_without_questions_returns_409(client, seed) -> None:
    exam_id = seed.unit_exam([])
    response = client.post(f"/api/exams/{exam_id}/session", headers=auth_headers())
    assert response.status_code == 409
    assert response.json()["error"] == "NoQuestionsConfiguredError"


def test_unit_exam_session_flow(client, seed) -> None:
    exam_id = seed.unit_exam([seed.mc(0), seed.mc(1)])
    headers = auth_headers()
    base = f"/api/exams/{exam_id}/session"

    view = client.post(base, headers=headers).json()
    assert view["state"] == "in_progress"
    assert view["securityPolicy"]["blockContextMenu"] is True
    first_id = view["question"]["id"]

    view = client.put(f"{base}/answers/{first_id}", json={"value": 0}, headers=headers).json()
    assert view["answers"] == {first_id: "0"}

    assert client.post(f"{base}/submit", headers=headers).status_code == 409

    view = client.post(f"{base}/next", headers=headers).json()
    assert view["isLastQuestion"] is True
    second_id = view["question"]["id"]
    client.put(f"{base}/answers/{second_id}", json={"value": 1}, headers=headers)

    view = client.post(f"{base}/previous", headers=headers).json()
    assert view["questionIndex"] == 0
    client.post(f"{base}/goto/1", headers=headers)

    view = client.post(f"{base}/submit", headers=headers).json()
    assert view["state"] == "submitted"
    assert view["result"]["total_score"] == 100

    result = client.get(f"/api/exams/{exam_id}/result", headers=headers).json()
    assert result["status"] == "completed"
    assert result["totalScore"] == 100
    assert result["questionCount"] == 2
    assert result["report"] is None
    assert client.get(base, headers=headers).status_code == 404

    response = client.post(base, headers=headers)
    assert response.status_code == 409
    assert response.json()["error"] == "ExamAlreadyCompletedError"


def test_toefl_sections_and_exit(client, seed) -> None:
    exam_id = seed.toefl_exam({"listening": [seed.mc(0)], "reading": [seed.mc(1)]})
    headers = auth_headers()
    base = f"/api/exams/{exam_id}/session"

    view = client.post(base, headers=headers).json()
    assert view["state"] == "selecting_section"
    assert [s["id"] for s in view["sections"]] == ["listening", "structure", "reading"]

    assert client.post(f"{base}/sections/speaking", headers=headers).status_code == 404

    view = client.post(f"{base}/sections/listening", headers=headers).json()
    assert view["state"] == "in_section"
    question_id = view["question"]["id"]
    client.put(f"{base}/answers/{question_id}", json={"value": 0}, headers=headers)
    assert client.post(f"{base}/sections/reading/complete", headers=headers).status_code == 409

    view = client.post(f"{base}/sections/listening/complete", headers=headers).json()
    assert view["completedSections"] == ["listening"]

    view = client.post(f"{base}/exit", headers=headers).json()
    assert view["state"] == "exited"
    assert client.get(base, headers=headers).status_code == 404

    result = client.get(f"/api/exams/{exam_id}/result", headers=headers).json()
    assert result["status"] == "inactive"

    view = client.post(base, headers=headers).json()
    assert view["completedSections"] == ["listening"]
    assert view["answers"] == {question_id: "0"}


def test_failed_submission_returns_503_and_can_be_retried(
    client, seed, monkeypatch: pytest.MonkeyPatch
) -> None:
    exam_id = seed.unit_exam([seed.mc(0)])
    headers = auth_headers()
    base = f"/api/exams/{exam_id}/session"
    question_id = client.post(base, headers=headers).json()["question"]["id"]

    real_score_exam = ScoringEngine.score_exam

    def failing(self, exam, student_id):
        raise SubmissionError()

    monkeypatch.setattr(ScoringEngine, "score_exam", failing)
    response = client.post(f"{base}/submit", headers=headers)
    assert response.status_code == 503
    assert response.json()["retry"] is True
    view = client.get(base, headers=headers).json()
    assert view["state"] == "submitting"
    assert view["submissionError"]
    response = client.put(f"{base}/answers/{question_id}", json={"value": 0}, headers=headers)
    assert response.status_code == 409

    monkeypatch.setattr(ScoringEngine, "score_exam", real_score_exam)
    view = client.post(f"{base}/submit", headers=headers).json()
    assert view["state"] == "submitted"


def test_sessions_are_per_student(client, seed) -> None:
    exam_id = seed.unit_exam([seed.mc(0)])
    base = f"/api/exams/{exam_id}/session"
    client.post(base, headers=auth_headers("s1"))

    assert client.get(base, headers=auth_headers("s1")).status_code == 200
    assert client.get(base, headers=auth_headers("s2")).status_code == 404


def test_completed_toefl_result_includes_report(client, seed) -> None:
    exam_id = seed.toefl_exam(
        {"listening": [seed.mc(0)], "structure": [seed.mc(1)], "reading": [seed.mc(2)]}
    )
    headers = auth_headers()
    base = f"/api/exams/{exam_id}/session"
    client.post(base, headers=headers)

    for section_id, value in (("listening", 0), ("structure", 1), ("reading", 2)):
        view = client.post(f"{base}/sections/{section_id}", headers=headers).json()
        client.put(f"{base}/answers/{view['question']['id']}", json={"value": value}, headers=headers)
        view = client.post(f"{base}/sections/{section_id}/complete", headers=headers).json()

    assert view["state"] == "submitted"
    assert client.get(base, headers=headers).status_code == 404

    result = client.get(f"/api/exams/{exam_id}/result", headers=headers).json()
    assert result["status"] == "completed"
    assert result["scaledScore"] == 677
    assert "Final TOEFL Score: 677/677" in result["report"]
