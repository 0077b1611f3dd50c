"""Run aggregation: per-objective accuracy, weakness flags, and trend rows."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from .config import get_settings
from .models import (
    OVERALL_TREND_KEY,
    AnsweredRecord,
    ObjectiveWeakness,
    PlanEntry,
    RunAggregate,
    RunScore,
    SavedAnswer,
    TestResult,
    TrendRow,
)
from .telemetry import emit_event

logger = logging.getLogger(__name__)

ACCURACY_DIGITS = 3


@dataclass
class _ObjectiveTally:
    entry: PlanEntry
    attempts: int = 0
    correct: int = 0


def _accuracy(correct: int, attempts: int) -> float:
    if attempts <= 0:
        return 0.0
    return round(correct / attempts, ACCURACY_DIGITS)


def aggregate_run(
    plan: Sequence[PlanEntry],
    answered: Iterable[AnsweredRecord],
    weak_threshold: Optional[float] = None,
) -> RunAggregate:
    """Group answers by plan objective and flag objectives below the weak threshold.

    Answers that point outside the plan are skipped so one dropped turn cannot
    abort scoring for the whole run.
    """
    threshold = get_settings().weak_threshold if weak_threshold is None else weak_threshold
    tallies: Dict[str, _ObjectiveTally] = {}
    score = 0
    skipped = 0

    for record in answered:
        if record.correct:
            score += 1
        if record.plan_index < 0 or record.plan_index >= len(plan):
            skipped += 1
            logger.debug("Skipping answer for unknown plan index %d (plan size %d)", record.plan_index, len(plan))
            continue
        entry = plan[record.plan_index]
        tally = tallies.get(entry.id)
        if tally is None:
            tally = tallies[entry.id] = _ObjectiveTally(entry=entry)
        tally.attempts += 1
        if record.correct:
            tally.correct += 1

    per_objective: List[ObjectiveWeakness] = []
    for objective_id, tally in tallies.items():
        accuracy = _accuracy(tally.correct, tally.attempts)
        per_objective.append(
            ObjectiveWeakness(
                objective_id=objective_id,
                title=tally.entry.title,
                difficulty=tally.entry.difficulty,
                attempts=tally.attempts,
                correct=tally.correct,
                accuracy=accuracy,
                considered_weak=tally.attempts > 0 and accuracy < threshold,
            )
        )
    per_objective.sort(key=lambda record: (not record.considered_weak, record.accuracy))

    aggregate = RunAggregate(per_objective=per_objective, overall=RunScore(score=score, total=len(plan)))
    emit_event(
        "run_aggregated",
        score=score,
        total=len(plan),
        objectives=len(per_objective),
        weak=len(aggregate.weak_objective_ids),
        skipped=skipped,
    )
    return aggregate


def answers_to_records(answers: Iterable[SavedAnswer]) -> List[AnsweredRecord]:
    return [AnsweredRecord(plan_index=answer.index, correct=answer.correct) for answer in answers]


def build_test_result(
    *,
    user_id: str,
    year: str,
    subject: str,
    skill: str,
    plan: Sequence[PlanEntry],
    answers: Sequence[SavedAnswer],
    age: Optional[int] = None,
    run_id: Optional[str] = None,
    date_iso: Optional[str] = None,
    weak_threshold: Optional[float] = None,
) -> TestResult:
    """Assemble the full run record written to the result store."""
    aggregate = aggregate_run(plan, answers_to_records(answers), weak_threshold)
    extra: Dict[str, str] = {}
    if run_id:
        extra["run_id"] = run_id
    if date_iso:
        extra["date_iso"] = date_iso
    return TestResult(
        user_id=user_id,
        age=age,
        year=year,
        subject=subject,
        skill=skill,
        score=aggregate.overall.score,
        total=aggregate.overall.total,
        plan=list(plan),
        answers=list(answers),
        weaknesses=aggregate.per_objective,
        **extra,
    )


def build_trend_rows(result: TestResult) -> List[TrendRow]:
    """Flatten a run into one overall trend row plus one row per objective."""
    rows = [
        TrendRow(
            run_id=result.run_id,
            date_iso=result.date_iso,
            year=result.year,
            subject=result.subject,
            skill=result.skill,
            objective=OVERALL_TREND_KEY,
            questions=result.total,
            score=result.score,
            accuracy=min(_accuracy(result.score, result.total), 1.0),
        )
    ]
    for weakness in result.weaknesses:
        rows.append(
            TrendRow(
                run_id=result.run_id,
                date_iso=result.date_iso,
                year=result.year,
                subject=result.subject,
                skill=result.skill,
                objective=weakness.objective_id,
                objective_title=weakness.title,
                questions=weakness.attempts,
                score=weakness.correct,
                accuracy=weakness.accuracy,
            )
        )
    return rows


__all__ = [
    "ACCURACY_DIGITS",
    "aggregate_run",
    "answers_to_records",
    "build_test_result",
    "build_trend_rows",
]
