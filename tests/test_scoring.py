import pytest

from exam_api.errors import BackendError, SubmissionError
from exam_api.models.questions import (
    MatchingQuestion,
    MultipleChoiceQuestion,
    TrueFalseQuestion,
    UnderlineQuestion,
    UnknownQuestion,
)
from exam_api.services.answer_store import AnswerStore
from exam_api.services.exam_loader import load_exam
from exam_api.services.scoring_service import (
    ScoringEngine,
    calculate_toefl_scores,
    check_answer,
    compute_exam_score,
    format_score_report,
    result_report,
    score_questions,
    weighted_section_score,
)


def test_check_multiple_choice() -> None:
    question = MultipleChoiceQuestion(id="1", choices=["a", "b"], correct_index=1)
    assert check_answer(question, "1") is True
    assert check_answer(question, 1) is True
    assert check_answer(question, "0") is False
    assert check_answer(question, "") is False


@pytest.mark.parametrize("raw", [True, "true", "True", 1, "1"])
def test_check_true_false_accepts_true_forms(raw) -> None:
    assert check_answer(TrueFalseQuestion(id="1", correct=True), raw) is True


def test_check_matching_compares_pairs() -> None:
    question = MatchingQuestion(
        id="1", left_items=["a", "b"], right_items=["x", "y"], correct_pairs={0: 1, 1: 0}
    )
    assert check_answer(question, '{"0":1,"1":0}') is True
    assert check_answer(question, {"1": 0, "0": 1}) is True
    assert check_answer(question, '{"0":0,"1":1}') is False
    assert check_answer(question, "not json") is False


def test_check_underline_accepts_letter_or_index() -> None:
    question = UnderlineQuestion(id="1", incorrect_letter="C")
    assert check_answer(question, "C") is True
    assert check_answer(question, "c") is True
    assert check_answer(question, "2") is True
    assert check_answer(question, "A") is False


def test_unscorable_questions_are_excluded() -> None:
    questions = [
        MultipleChoiceQuestion(id="1", correct_index=0),
        MultipleChoiceQuestion(id="2", correct_index=None),
        UnknownQuestion(id="3", raw_type="essay"),
    ]
    score = score_questions(questions, {"1": "0", "2": "1", "3": "text"})
    assert (score.correct, score.total) == (1, 1)


def test_attempted_denominator_ignores_unanswered() -> None:
    questions = [MultipleChoiceQuestion(id=str(i), correct_index=0) for i in range(4)]
    answers = {"0": "0", "1": "1"}

    attempted = score_questions(questions, answers, denominator="attempted")
    total = score_questions(questions, answers, denominator="total")

    assert (attempted.correct, attempted.total) == (1, 2)
    assert (total.correct, total.total) == (1, 4)


def test_weighted_section_scores_sum_to_115() -> None:
    total = (
        weighted_section_score(8, 10, 50)
        + weighted_section_score(6, 8, 40)
        + weighted_section_score(9, 10, 50)
    )
    assert total == 115
    assert weighted_section_score(0, 0, 50) == 0


def test_toefl_conversion() -> None:
    perfect = calculate_toefl_scores(50, 40, 50)
    assert perfect["finalScore"] == 677
    assert perfect["scores"]["structure"]["converted"] == 140

    report = format_score_report(calculate_toefl_scores(40, 30, 45))
    assert "Final TOEFL Score:" in report
    assert "Structure: 105/140" in report


def test_result_report_only_for_toefl_rows() -> None:
    row = {
        "exam_type": "TOEFL",
        "section_scores": {
            "listening": {"weighted": 40},
            "structure": {"weighted": 30},
            "reading": {"weighted": 45},
        },
    }
    assert result_report(row) == format_score_report(calculate_toefl_scores(40, 30, 45))
    assert result_report({**row, "exam_type": "Unit"}) is None
    assert result_report({"exam_type": "TOEFL", "section_scores": None}) is None


def test_unit_exam_all_correct_scores_100(backend, seed) -> None:
    exam = load_exam(backend, seed.unit_exam([seed.mc(0), seed.mc(1), seed.mc(2)]))
    answers = {q.id: str(q.correct_index) for q in exam.questions}
    assert compute_exam_score(exam, answers).total_score == 100


def test_toefl_exam_total_is_sum_of_weighted_sections(backend, seed) -> None:
    exam_id = seed.toefl_exam(
        {
            "listening": [seed.mc(0) for _ in range(10)],
            "structure": [seed.mc(0) for _ in range(8)],
            "reading": [seed.mc(0) for _ in range(10)],
        }
    )
    exam = load_exam(backend, exam_id)
    wrong = {"listening": 2, "structure": 2, "reading": 1}
    answers = {}
    for section in exam.sections:
        for position, question in enumerate(section.questions):
            answers[question.id] = "1" if position < wrong[section.id] else "0"

    score = compute_exam_score(exam, answers)
    assert score.sections["listening"].weighted == 40
    assert score.sections["structure"].weighted == 30
    assert score.sections["reading"].weighted == 45
    assert score.total_score == 115
    assert score.scaled_score == calculate_toefl_scores(40, 30, 45)["finalScore"]


def test_scoring_twice_keeps_one_result_row(backend, seed) -> None:
    exam = load_exam(backend, seed.unit_exam([seed.mc(0), seed.mc(1)]))
    store = AnswerStore(backend)
    engine = ScoringEngine(backend)

    store.put_answer("s1", exam.id, exam.questions[0].id, 0)
    first = engine.score_exam(exam, "s1")
    store.put_answer("s1", exam.id, exam.questions[1].id, 1)
    second = engine.score_exam(exam, "s1")

    rows = backend.select("exam_results", {"student_id": "s1", "exam_id": exam.id})
    assert len(rows) == 1
    assert first["total_score"] == 50
    assert second["total_score"] == 100
    assert rows[0]["status"] == "completed"
    assert rows[0]["answers"] == {exam.questions[0].id: "0", exam.questions[1].id: "1"}


def test_live_scores_do_not_touch_completed_rows(backend, seed) -> None:
    exam = load_exam(backend, seed.toefl_exam({"listening": [seed.mc(0)]}))
    engine = ScoringEngine(backend)
    AnswerStore(backend, "TOEFL").put_answer("s1", exam.id, exam.questions[0].id, 0)

    engine.refresh_live_scores(exam, "s1")
    live = engine.get_result("s1", exam.id)
    assert live["status"] == "active"
    assert live["total_score"] == 50

    backend.update("exam_results", {"id": live["id"]}, {"status": "completed", "total_score": 7})
    engine.refresh_live_scores(exam, "s1")
    assert engine.get_result("s1", exam.id)["total_score"] == 7


def test_mark_inactive_spares_completed(backend, seed) -> None:
    exam = load_exam(backend, seed.toefl_exam({"listening": [seed.mc(0)]}))
    engine = ScoringEngine(backend)

    engine.mark_inactive(exam, "s1")
    assert engine.get_result("s1", exam.id)["status"] == "inactive"

    engine.score_exam(exam, "s1")
    engine.mark_inactive(exam, "s1")
    assert engine.get_result("s1", exam.id)["status"] == "completed"


def test_mark_schedule_completed(backend, seed) -> None:
    exam_id = seed.unit_exam([seed.mc(0)])
    ScoringEngine(backend).mark_schedule_completed(exam_id)
    assert backend.select_one("exam_schedule", {"id": exam_id})["status"] == "completed"


def test_result_write_failure_raises_submission_error(
    backend, seed, monkeypatch: pytest.MonkeyPatch
) -> None:
    exam = load_exam(backend, seed.unit_exam([seed.mc(0)]))

    def broken(*args, **kwargs):
        raise BackendError()

    monkeypatch.setattr(backend, "insert", broken)
    with pytest.raises(SubmissionError):
        ScoringEngine(backend).score_exam(exam, "s1")
