"""Domain models shared by the selector, the plan builder, and the aggregator."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Literal, Optional, Tuple
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

DifficultyBand = Literal["basic", "intermediate", "stretch"]
BANDS: Tuple[DifficultyBand, ...] = ("basic", "intermediate", "stretch")
OVERALL_TREND_KEY = "__overall__"


class Objective(BaseModel):
    """Atomic learning goal loaded from the catalogue."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    difficulty: DifficultyBand = "intermediate"
    tags: Tuple[str, ...] = ()


class BandDistribution(BaseModel):
    """Per-band question counts; a ratio on input, exact counts once sized."""

    basic: int = Field(default=0, ge=0)
    intermediate: int = Field(default=0, ge=0)
    stretch: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.basic + self.intermediate + self.stretch

    def get(self, band: DifficultyBand) -> int:
        return int(getattr(self, band))


class PlanEntry(BaseModel):
    """One question slot of a test plan."""

    id: str
    title: str
    difficulty: DifficultyBand

    @classmethod
    def from_objective(cls, objective: Objective) -> "PlanEntry":
        return cls(id=objective.id, title=objective.title, difficulty=objective.difficulty)


class AnsweredRecord(BaseModel):
    """Marked answer for a plan slot, as collected by the caller during a run."""

    plan_index: int = Field(validation_alias=AliasChoices("plan_index", "planIndex", "i"))
    correct: bool = False


class ObjectiveWeakness(BaseModel):
    """Per-objective outcome of a finished run."""

    objective_id: str
    title: str
    difficulty: DifficultyBand
    attempts: int = Field(ge=0)
    correct: int = Field(ge=0)
    accuracy: float = Field(ge=0.0, le=1.0)
    considered_weak: bool


class RunScore(BaseModel):
    score: int = Field(ge=0)
    total: int = Field(ge=0)


class RunAggregate(BaseModel):
    """Aggregated view of a run: weak objectives first, then the overall score."""

    per_objective: List[ObjectiveWeakness] = Field(default_factory=list)
    overall: RunScore

    @property
    def weak_objective_ids(self) -> List[str]:
        return [record.objective_id for record in self.per_objective if record.considered_weak]


class SavedAnswer(BaseModel):
    index: int = Field(ge=0)
    objective_id: str
    question: str = ""
    user_answer: str = ""
    correct: bool
    correct_answer: str = ""


class TestResult(BaseModel):
    """Full-fidelity run record handed to the result store."""

    __test__ = False

    run_id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: str = Field(min_length=1)
    date_iso: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    age: Optional[int] = Field(default=None, ge=0)
    year: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    skill: str = Field(min_length=1)
    score: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    plan: List[PlanEntry] = Field(default_factory=list)
    answers: List[SavedAnswer] = Field(default_factory=list)
    weaknesses: List[ObjectiveWeakness] = Field(default_factory=list)

    @field_validator("year", "subject", "skill", mode="before")
    @classmethod
    def _strip_scope(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class TrendRow(BaseModel):
    """Chart-friendly summary row; one overall row plus one per objective per run."""

    run_id: str
    date_iso: str
    year: str
    subject: str
    skill: str
    objective: str
    objective_title: Optional[str] = None
    questions: int = Field(ge=0)
    score: int = Field(ge=0)
    accuracy: float = Field(ge=0.0, le=1.0)


__all__ = [
    "AnsweredRecord",
    "BANDS",
    "BandDistribution",
    "DifficultyBand",
    "OVERALL_TREND_KEY",
    "Objective",
    "ObjectiveWeakness",
    "PlanEntry",
    "RunAggregate",
    "RunScore",
    "SavedAnswer",
    "TestResult",
    "TrendRow",
]
