"""REST endpoints driving practice and test sessions.

The caller owns all session state: every request carries the history, plan,
and avoid list it needs. Question wording and answer marking come from the
text-generation service on the caller's side; these endpoints only choose
objectives and score outcomes.
"""

from __future__ import annotations

import logging
from typing import List, Literal, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import AliasChoices, BaseModel, Field

from .aggregation import aggregate_run
from .catalogue import CatalogueError, CatalogueLoader, get_catalogue_loader
from .config import Settings, get_settings
from .models import AnsweredRecord, BandDistribution, Objective, PlanEntry, RunAggregate
from .plan_builder import build_test_plan
from .selection import (
    RandomSource,
    default_random_source,
    expand_weakness_tags,
    match_weights_from_settings,
    next_practice_objective,
    practice_band,
    used_objective_ids,
)

router = APIRouter(prefix="/api", tags=["session"])
logger = logging.getLogger(__name__)

# upper bound on questions per practice session or test plan
MAX_SESSION_TOTAL = 200


def get_random_source() -> RandomSource:
    return default_random_source()


class PracticeHistoryEntry(BaseModel):
    n: Optional[int] = None
    objective_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("objective_id", "objectiveId"))
    correct: Optional[bool] = None


class PracticeNextRequest(BaseModel):
    mode: Literal["init", "grade"] = "init"
    level: str = Field(..., min_length=1)
    subject: str = Field(..., min_length=1)
    skill: str = Field(..., min_length=1)
    difficulty: Literal["warmup", "standard", "challenge"] = "standard"
    focus_weaknesses: bool = False
    weaknesses: List[str] = Field(default_factory=list)
    history: List[PracticeHistoryEntry] = Field(default_factory=list)
    last_objective_id: Optional[str] = None
    total: Optional[int] = Field(default=None, ge=1, le=MAX_SESSION_TOTAL)


class PracticeNextResponse(BaseModel):
    objective: Optional[Objective] = None
    finish: bool = False
    remaining: Optional[int] = None
    weakness_titles: List[str] = Field(default_factory=list)


class PlanInitRequest(BaseModel):
    level: str = Field(..., min_length=1)
    subject: str = Field(..., min_length=1)
    skill: str = Field(..., min_length=1)
    total: Optional[int] = Field(default=None, le=MAX_SESSION_TOTAL)
    distribution: Optional[BandDistribution] = None


class PlanInitResponse(BaseModel):
    plan: List[PlanEntry]
    total: int
    distribution: BandDistribution


class PlanGradeRequest(BaseModel):
    plan: List[PlanEntry] = Field(..., min_length=1)
    index: int = Field(..., ge=0)
    correct: bool
    history: List[AnsweredRecord] = Field(default_factory=list)


class PlanGradeResponse(BaseModel):
    finish: bool
    score: int
    total: int
    next_index: Optional[int] = None
    next_objective: Optional[PlanEntry] = None
    aggregate: Optional[RunAggregate] = None


def _objectives_for_skill(
    loader: CatalogueLoader,
    level: str,
    subject: str,
    skill: str,
) -> Tuple[Objective, ...]:
    try:
        return loader.lookup(level, subject, skill)
    except (CatalogueError, OSError) as exc:
        logger.exception("Objective catalogue unavailable at %s", loader.path)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Objective catalogue is unavailable.",
        ) from exc


@router.get("/catalogue/{level}/{subject}/{skill}", response_model=List[Objective])
def list_skill_objectives(
    level: str,
    subject: str,
    skill: str,
    loader: CatalogueLoader = Depends(get_catalogue_loader),
) -> List[Objective]:
    return list(_objectives_for_skill(loader, level, subject, skill))


@router.post("/practice/next", response_model=PracticeNextResponse, status_code=status.HTTP_200_OK)
def practice_next(
    payload: PracticeNextRequest,
    loader: CatalogueLoader = Depends(get_catalogue_loader),
    rng: RandomSource = Depends(get_random_source),
) -> PracticeNextResponse:
    remaining: Optional[int] = None
    if payload.total is not None:
        remaining = payload.total - len(payload.history) - (1 if payload.mode == "grade" else 0)
        if payload.mode == "grade" and remaining <= 0:
            return PracticeNextResponse(finish=True, remaining=0)

    objectives = _objectives_for_skill(loader, payload.level, payload.subject, payload.skill)
    weak_ids = set(payload.weaknesses)
    weak_objectives = [objective for objective in objectives if objective.id in weak_ids]
    weakness_tags = expand_weakness_tags(objectives, weak_ids) if payload.focus_weaknesses else []
    avoid_ids = used_objective_ids(
        (entry.objective_id for entry in payload.history),
        payload.last_objective_id,
    )
    objective = next_practice_objective(
        objectives,
        practice_band(payload.difficulty),
        weakness_tags,
        avoid_ids,
        rng=rng,
        weights=match_weights_from_settings(),
    )
    logger.info(
        "Practice %s/%s/%s picked %s (avoid=%d, weakness_tags=%d)",
        payload.level,
        payload.subject,
        payload.skill,
        objective.id if objective else None,
        len(avoid_ids),
        len(weakness_tags),
    )
    return PracticeNextResponse(
        objective=objective,
        finish=False,
        remaining=remaining,
        weakness_titles=[weak.title for weak in weak_objectives] if payload.focus_weaknesses else [],
    )


@router.post("/test/init", response_model=PlanInitResponse, status_code=status.HTTP_200_OK)
def start_test(
    payload: PlanInitRequest,
    loader: CatalogueLoader = Depends(get_catalogue_loader),
    rng: RandomSource = Depends(get_random_source),
) -> PlanInitResponse:
    objectives = _objectives_for_skill(loader, payload.level, payload.subject, payload.skill)
    if not objectives:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No objectives for {payload.level}/{payload.subject}/{payload.skill}.",
        )
    distribution, plan = build_test_plan(objectives, payload.total, payload.distribution, rng=rng)
    return PlanInitResponse(plan=plan, total=len(plan), distribution=distribution)


@router.post("/test/grade", response_model=PlanGradeResponse, status_code=status.HTTP_200_OK)
def grade_test_answer(
    payload: PlanGradeRequest,
    settings: Settings = Depends(get_settings),
) -> PlanGradeResponse:
    if payload.index >= len(payload.plan):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Plan index {payload.index} is outside a plan of {len(payload.plan)} questions.",
        )
    so_far = [*payload.history, AnsweredRecord(plan_index=payload.index, correct=payload.correct)]
    score = sum(1 for record in so_far if record.correct)
    total = len(payload.plan)
    next_index = payload.index + 1

    if next_index >= total:
        aggregate = aggregate_run(payload.plan, so_far, settings.weak_threshold)
        return PlanGradeResponse(finish=True, score=score, total=total, aggregate=aggregate)

    return PlanGradeResponse(
        finish=False,
        score=score,
        total=total,
        next_index=next_index,
        next_objective=payload.plan[next_index],
    )


__all__ = ["MAX_SESSION_TOTAL", "get_random_source", "router"]
