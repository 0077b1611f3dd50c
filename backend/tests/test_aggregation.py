from __future__ import annotations

from typing import List

from quizcoach.aggregation import aggregate_run, build_test_result, build_trend_rows
from quizcoach.models import OVERALL_TREND_KEY, AnsweredRecord, PlanEntry, SavedAnswer


def _plan() -> List[PlanEntry]:
    return [
        PlanEntry(id="ADD", title="Add fractions", difficulty="intermediate"),
        PlanEntry(id="SUB", title="Subtract fractions", difficulty="intermediate"),
        PlanEntry(id="EQ", title="Equivalent fractions", difficulty="basic"),
    ]


def _records(*pairs) -> List[AnsweredRecord]:
    return [AnsweredRecord(plan_index=index, correct=correct) for index, correct in pairs]


def test_four_of_five_is_not_weak_three_of_five_is() -> None:
    plan = [PlanEntry(id="A", title="A", difficulty="basic")] * 5 + [
        PlanEntry(id="B", title="B", difficulty="stretch")
    ] * 5
    answered = _records(
        (0, True), (1, True), (2, True), (3, True), (4, False),
        (5, True), (6, True), (7, True), (8, False), (9, False),
    )

    aggregate = aggregate_run(plan, answered, weak_threshold=0.8)
    by_id = {record.objective_id: record for record in aggregate.per_objective}

    assert by_id["A"].accuracy == 0.8
    assert by_id["A"].considered_weak is False
    assert by_id["B"].accuracy == 0.6
    assert by_id["B"].considered_weak is True
    assert aggregate.weak_objective_ids == ["B"]
    assert (aggregate.overall.score, aggregate.overall.total) == (7, 10)


def test_weak_objectives_sort_first_by_accuracy() -> None:
    aggregate = aggregate_run(
        _plan(),
        _records((0, True), (1, False), (2, True), (0, False), (1, True), (2, False), (2, False)),
        weak_threshold=0.8,
    )
    assert [record.objective_id for record in aggregate.per_objective] == ["EQ", "ADD", "SUB"]
    assert aggregate.per_objective[0].accuracy == 0.333
    assert all(record.considered_weak for record in aggregate.per_objective)


def test_strong_objectives_follow_weak_ones() -> None:
    aggregate = aggregate_run(_plan(), _records((0, True), (1, False), (2, True)), weak_threshold=0.8)
    assert [record.objective_id for record in aggregate.per_objective] == ["SUB", "ADD", "EQ"]
    assert [record.considered_weak for record in aggregate.per_objective] == [True, False, False]


def test_accuracy_is_rounded_to_three_places() -> None:
    aggregate = aggregate_run(_plan(), _records((0, True), (0, True), (0, False)), weak_threshold=0.5)
    assert aggregate.per_objective[0].accuracy == 0.667
    assert aggregate.per_objective[0].considered_weak is False


def test_out_of_range_indices_are_skipped(events) -> None:
    aggregate = aggregate_run(_plan(), _records((0, True), (7, True), (-1, False)), weak_threshold=0.8)
    assert [record.objective_id for record in aggregate.per_objective] == ["ADD"]
    assert aggregate.per_objective[0].attempts == 1
    # correct answers are counted even when their index is bad
    assert aggregate.overall.score == 2
    assert aggregate.overall.total == 3
    assert events[-1].name == "run_aggregated"
    assert events[-1].payload["skipped"] == 2


def test_unanswered_objectives_are_omitted() -> None:
    aggregate = aggregate_run(_plan(), [], weak_threshold=0.8)
    assert aggregate.per_objective == []
    assert (aggregate.overall.score, aggregate.overall.total) == (0, 3)


def test_threshold_defaults_to_settings(monkeypatch) -> None:
    from quizcoach.config import get_settings

    monkeypatch.setenv("QUIZCOACH_WEAK_THRESHOLD", "0.5")
    get_settings.cache_clear()
    aggregate = aggregate_run(_plan(), _records((0, True), (0, False)))
    assert aggregate.per_objective[0].considered_weak is False


def test_answered_record_accepts_short_alias() -> None:
    record = AnsweredRecord.model_validate({"i": 2, "correct": True})
    assert record.plan_index == 2
    assert record.correct is True


def _answers() -> List[SavedAnswer]:
    return [
        SavedAnswer(index=0, objective_id="ADD", question="1/4 + 2/4?", user_answer="3/4", correct=True),
        SavedAnswer(index=1, objective_id="SUB", question="3/5 - 1/5?", user_answer="1/5", correct=False),
        SavedAnswer(index=2, objective_id="EQ", question="1/2 = ?/4", user_answer="2", correct=True),
    ]


def test_build_test_result_derives_score_and_weaknesses() -> None:
    result = build_test_result(
        user_id="learner-1",
        age=8,
        year="y4",
        subject="maths",
        skill="fractions",
        plan=_plan(),
        answers=_answers(),
        run_id="run-1",
        date_iso="2024-05-01T10:00:00+00:00",
        weak_threshold=0.8,
    )
    assert result.run_id == "run-1"
    assert (result.score, result.total) == (2, 3)
    assert [weakness.objective_id for weakness in result.weaknesses if weakness.considered_weak] == ["SUB"]


def test_build_test_result_generates_run_id_and_date() -> None:
    result = build_test_result(
        user_id="learner-1",
        year="y4",
        subject="maths",
        skill="fractions",
        plan=_plan(),
        answers=[],
    )
    assert result.run_id
    assert result.date_iso


def test_trend_rows_hold_overall_and_per_objective() -> None:
    result = build_test_result(
        user_id="learner-1",
        year="y4",
        subject="maths",
        skill="fractions",
        plan=_plan(),
        answers=_answers(),
        run_id="run-1",
        date_iso="2024-05-01T10:00:00+00:00",
        weak_threshold=0.8,
    )
    rows = build_trend_rows(result)

    assert rows[0].objective == OVERALL_TREND_KEY
    assert (rows[0].questions, rows[0].score, rows[0].accuracy) == (3, 2, 0.667)
    assert {row.objective for row in rows[1:]} == {"ADD", "SUB", "EQ"}
    assert all(row.run_id == "run-1" for row in rows)
    sub = next(row for row in rows if row.objective == "SUB")
    assert (sub.objective_title, sub.questions, sub.score, sub.accuracy) == ("Subtract fractions", 1, 0, 0.0)


def test_overall_trend_accuracy_is_capped() -> None:
    plan = [PlanEntry(id="ADD", title="Add fractions", difficulty="intermediate")]
    answers = [
        SavedAnswer(index=0, objective_id="ADD", correct=True),
        SavedAnswer(index=4, objective_id="ADD", correct=True),
    ]
    result = build_test_result(user_id="u", year="y4", subject="maths", skill="fractions", plan=plan, answers=answers)
    overall = build_trend_rows(result)[0]
    assert overall.score == 2
    assert overall.accuracy == 1.0
