"""Endpoints for recording finished test runs and reading them back for charts."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError

from .aggregation import build_test_result, build_trend_rows
from .config import Settings, get_settings
from .models import ObjectiveWeakness, PlanEntry, SavedAnswer, TestResult, TrendRow
from .result_store import ResultStore, get_result_store, record_run

router = APIRouter(prefix="/api/results", tags=["results"])
logger = logging.getLogger(__name__)


class RunRecordRequest(BaseModel):
    """Finished run as submitted by the client; weaknesses are derived when omitted."""

    model_config = ConfigDict(str_strip_whitespace=True)

    run_id: Optional[str] = None
    user_id: str = Field(..., min_length=1)
    date_iso: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=0)
    year: str = Field(..., min_length=1)
    subject: str = Field(..., min_length=1)
    skill: str = Field(..., min_length=1)
    plan: List[PlanEntry] = Field(default_factory=list)
    answers: List[SavedAnswer] = Field(default_factory=list)
    weaknesses: Optional[List[ObjectiveWeakness]] = None


class RunRecordResponse(BaseModel):
    ok: bool = True
    run_id: str
    score: int
    total: int
    weaknesses: List[ObjectiveWeakness] = Field(default_factory=list)


class RecentRunsResponse(BaseModel):
    results: List[TestResult] = Field(default_factory=list)


class TrendRowsResponse(BaseModel):
    rows: List[TrendRow] = Field(default_factory=list)


def _to_result(payload: RunRecordRequest, weak_threshold: float) -> TestResult:
    result = build_test_result(
        user_id=payload.user_id,
        age=payload.age,
        year=payload.year,
        subject=payload.subject,
        skill=payload.skill,
        plan=payload.plan,
        answers=payload.answers,
        run_id=payload.run_id,
        date_iso=payload.date_iso,
        weak_threshold=weak_threshold,
    )
    if payload.weaknesses is not None:
        result = result.model_copy(update={"weaknesses": list(payload.weaknesses)})
    return result


@router.post("", response_model=RunRecordResponse, status_code=status.HTTP_200_OK)
def save_run(
    payload: RunRecordRequest,
    store: ResultStore = Depends(get_result_store),
    settings: Settings = Depends(get_settings),
) -> RunRecordResponse:
    result = _to_result(payload, settings.weak_threshold)
    try:
        record_run(store, result, build_trend_rows(result))
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except (OSError, SQLAlchemyError) as exc:
        logger.exception("Failed to save run %s", result.run_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save result.",
        ) from exc
    return RunRecordResponse(
        run_id=result.run_id,
        score=result.score,
        total=result.total,
        weaknesses=result.weaknesses,
    )


@router.get("", response_model=RecentRunsResponse, status_code=status.HTTP_200_OK)
def recent_runs(
    year: str = Query(default=""),
    subject: str = Query(default=""),
    skill: str = Query(default=""),
    limit: int = Query(default=5, ge=1, le=100),
    store: ResultStore = Depends(get_result_store),
) -> RecentRunsResponse:
    if not year or not subject or not skill:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing year/subject/skill.",
        )
    try:
        results = store.query_recent_runs(year, subject, skill, limit)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except (OSError, SQLAlchemyError) as exc:
        logger.exception("Failed to read results for %s/%s/%s", year, subject, skill)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read results.",
        ) from exc
    return RecentRunsResponse(results=results)


@router.get("/trends", response_model=TrendRowsResponse, status_code=status.HTTP_200_OK)
def trend_rows(
    subject: Optional[str] = None,
    skill: Optional[str] = None,
    objective: Optional[str] = None,
    since: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    store: ResultStore = Depends(get_result_store),
) -> TrendRowsResponse:
    try:
        rows = store.query_trend_rows(subject=subject, skill=skill, objective=objective, since_iso=since, limit=limit)
    except (OSError, SQLAlchemyError) as exc:
        logger.exception("Failed to read trend rows")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read trend rows.",
        ) from exc
    return TrendRowsResponse(rows=rows)


__all__ = ["router"]
