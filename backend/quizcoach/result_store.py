"""Append-only persistence for test run records and trend rows."""

from __future__ import annotations

import logging
import threading
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy import select

from .config import get_settings
from .db.models import TestRunModel, TrendRowModel
from .db.session import session_scope
from .models import TestResult, TrendRow
from .telemetry import emit_event

logger = logging.getLogger(__name__)

DEFAULT_RECENT_LIMIT = 10

T = TypeVar("T", bound=BaseModel)


class ResultStore(Protocol):
    def append_run_record(self, result: TestResult) -> None:  # pragma: no cover - protocol definition
        ...

    def append_trend_rows(self, rows: Sequence[TrendRow]) -> int:  # pragma: no cover - protocol definition
        ...

    def query_recent_runs(
        self, year: str, subject: str, skill: str, limit: int = DEFAULT_RECENT_LIMIT
    ) -> List[TestResult]:  # pragma: no cover - protocol definition
        ...

    def query_trend_rows(
        self,
        subject: Optional[str] = None,
        skill: Optional[str] = None,
        objective: Optional[str] = None,
        since_iso: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[TrendRow]:  # pragma: no cover - protocol definition
        ...


def _scope_segment(value: str, field: str) -> str:
    segment = value.strip()
    if not segment or "/" in segment or "\\" in segment or segment.startswith("."):
        raise ValueError(f"Invalid {field} for result storage: {value!r}")
    return segment


def _filter_trends(
    rows: Iterable[TrendRow],
    subject: Optional[str],
    skill: Optional[str],
    objective: Optional[str],
    since_iso: Optional[str],
    limit: Optional[int],
) -> List[TrendRow]:
    filtered = [
        row
        for row in rows
        if (not subject or row.subject == subject)
        and (not skill or row.skill == skill)
        and (not objective or row.objective == objective)
        and (not since_iso or row.date_iso >= since_iso)
    ]
    filtered.sort(key=lambda row: row.date_iso, reverse=True)
    return filtered[:limit] if limit else filtered


class JsonlResultStore:
    """JSON Lines log: one results file per (year, subject, skill) and a shared trends file."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)
        self._results_dir = self._root / "tests"
        self._trends_file = self._root / "trends" / "all.jsonl"
        self._lock = threading.RLock()

    def results_path(self, year: str, subject: str, skill: str) -> Path:
        name = "__".join(
            [
                _scope_segment(year, "year"),
                _scope_segment(subject, "subject"),
                _scope_segment(skill, "skill"),
            ]
        )
        return self._results_dir / f"{name}.jsonl"

    @property
    def trends_path(self) -> Path:
        return self._trends_file

    def append_run_record(self, result: TestResult) -> None:
        path = self.results_path(result.year, result.subject, result.skill)
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as handle:
                handle.write(result.model_dump_json() + "\n")
        logger.info("Saved run %s to %s", result.run_id, path)

    def append_trend_rows(self, rows: Sequence[TrendRow]) -> int:
        if not rows:
            return 0
        payload = "".join(row.model_dump_json() + "\n" for row in rows)
        with self._lock:
            self._trends_file.parent.mkdir(parents=True, exist_ok=True)
            with self._trends_file.open("a", encoding="utf-8") as handle:
                handle.write(payload)
        logger.info("Appended %d trend rows to %s", len(rows), self._trends_file)
        return len(rows)

    def query_recent_runs(
        self, year: str, subject: str, skill: str, limit: int = DEFAULT_RECENT_LIMIT
    ) -> List[TestResult]:
        results = self._read_lines(self.results_path(year, subject, skill), TestResult)
        results.sort(key=lambda result: result.date_iso, reverse=True)
        return results[: max(limit, 0)]

    def query_trend_rows(
        self,
        subject: Optional[str] = None,
        skill: Optional[str] = None,
        objective: Optional[str] = None,
        since_iso: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[TrendRow]:
        rows = self._read_lines(self._trends_file, TrendRow)
        return _filter_trends(rows, subject, skill, objective, since_iso, limit)

    def _read_lines(self, path: Path, model: Type[T]) -> List[T]:
        with self._lock:
            if not path.exists():
                return []
            with path.open("r", encoding="utf-8") as handle:
                lines = [line for line in handle.read().splitlines() if line.strip()]
        parsed: List[T] = []
        for number, line in enumerate(lines, start=1):
            try:
                parsed.append(model.model_validate_json(line))
            except ValidationError:
                logger.warning("Skipping malformed %s entry at %s:%d", model.__name__, path, number)
        return parsed


class DatabaseResultStore:
    """SQLAlchemy-backed log mirroring the JSON Lines store API."""

    def append_run_record(self, result: TestResult) -> None:
        for field in ("year", "subject", "skill"):
            _scope_segment(getattr(result, field), field)
        with session_scope() as session:
            session.add(
                TestRunModel(
                    run_id=result.run_id,
                    user_id=result.user_id,
                    date_iso=result.date_iso,
                    age=result.age,
                    year=result.year,
                    subject=result.subject,
                    skill=result.skill,
                    score=result.score,
                    total=result.total,
                    plan=[entry.model_dump(mode="json") for entry in result.plan],
                    answers=[answer.model_dump(mode="json") for answer in result.answers],
                    weaknesses=[weakness.model_dump(mode="json") for weakness in result.weaknesses],
                )
            )
            session.flush()
        logger.info("Stored run %s for %s/%s/%s", result.run_id, result.year, result.subject, result.skill)

    def append_trend_rows(self, rows: Sequence[TrendRow]) -> int:
        if not rows:
            return 0
        with session_scope() as session:
            session.add_all([TrendRowModel(**row.model_dump()) for row in rows])
        logger.info("Stored %d trend rows", len(rows))
        return len(rows)

    def query_recent_runs(
        self, year: str, subject: str, skill: str, limit: int = DEFAULT_RECENT_LIMIT
    ) -> List[TestResult]:
        with session_scope(commit=False) as session:
            stmt = (
                select(TestRunModel)
                .where(
                    TestRunModel.year == year,
                    TestRunModel.subject == subject,
                    TestRunModel.skill == skill,
                )
                .order_by(TestRunModel.date_iso.desc())
                .limit(max(limit, 0))
            )
            rows = session.execute(stmt).scalars().all()
            return [self._run_to_domain(row) for row in rows]

    def query_trend_rows(
        self,
        subject: Optional[str] = None,
        skill: Optional[str] = None,
        objective: Optional[str] = None,
        since_iso: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[TrendRow]:
        with session_scope(commit=False) as session:
            stmt = select(TrendRowModel).order_by(TrendRowModel.date_iso.desc(), TrendRowModel.id)
            if subject:
                stmt = stmt.where(TrendRowModel.subject == subject)
            if skill:
                stmt = stmt.where(TrendRowModel.skill == skill)
            if objective:
                stmt = stmt.where(TrendRowModel.objective == objective)
            if since_iso:
                stmt = stmt.where(TrendRowModel.date_iso >= since_iso)
            if limit:
                stmt = stmt.limit(limit)
            rows = session.execute(stmt).scalars().all()
            return [self._trend_to_domain(row) for row in rows]

    def has_run(self, run_id: str) -> bool:
        with session_scope(commit=False) as session:
            stmt = select(TestRunModel.id).where(TestRunModel.run_id == run_id)
            return session.execute(stmt).first() is not None

    @staticmethod
    def _run_to_domain(model: TestRunModel) -> TestResult:
        return TestResult.model_validate(
            {
                "run_id": model.run_id,
                "user_id": model.user_id,
                "date_iso": model.date_iso,
                "age": model.age,
                "year": model.year,
                "subject": model.subject,
                "skill": model.skill,
                "score": model.score,
                "total": model.total,
                "plan": model.plan or [],
                "answers": model.answers or [],
                "weaknesses": model.weaknesses or [],
            }
        )

    @staticmethod
    def _trend_to_domain(model: TrendRowModel) -> TrendRow:
        return TrendRow(
            run_id=model.run_id,
            date_iso=model.date_iso,
            year=model.year,
            subject=model.subject,
            skill=model.skill,
            objective=model.objective,
            objective_title=model.objective_title,
            questions=model.questions,
            score=model.score,
            accuracy=model.accuracy,
        )


def record_run(store: ResultStore, result: TestResult, trend_rows: Sequence[TrendRow]) -> None:
    """Write a finished run and its trend rows to the store."""
    store.append_run_record(result)
    written = store.append_trend_rows(trend_rows)
    emit_event(
        "run_recorded",
        run_id=result.run_id,
        year=result.year,
        subject=result.subject,
        skill=result.skill,
        score=result.score,
        total=result.total,
        trend_rows=written,
    )


@lru_cache
def get_result_store() -> ResultStore:
    settings = get_settings()
    if settings.persistence_mode == "database":
        return DatabaseResultStore()
    if settings.persistence_mode == "legacy":
        return JsonlResultStore(settings.results_dir)
    raise ValueError(f"Unsupported persistence mode: {settings.persistence_mode}")


__all__ = [
    "DEFAULT_RECENT_LIMIT",
    "DatabaseResultStore",
    "JsonlResultStore",
    "ResultStore",
    "get_result_store",
    "record_run",
]
