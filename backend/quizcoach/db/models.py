"""ORM models backing the append-only result log."""

from __future__ import annotations

import uuid

from sqlalchemy import Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


class TestRunModel(TimestampMixin, Base):
    __test__ = False
    __tablename__ = "test_runs"
    __table_args__ = (
        Index("ix_test_runs_scope", "year", "subject", "skill"),
        Index("ix_test_runs_date", "date_iso"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    run_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    date_iso: Mapped[str] = mapped_column(String(40), nullable=False)
    age: Mapped[int | None] = mapped_column(Integer)
    year: Mapped[str] = mapped_column(String(32), nullable=False)
    subject: Mapped[str] = mapped_column(String(64), nullable=False)
    skill: Mapped[str] = mapped_column(String(128), nullable=False)
    score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    plan: Mapped[list[dict]] = mapped_column(JSONType, default=list, nullable=False)
    answers: Mapped[list[dict]] = mapped_column(JSONType, default=list, nullable=False)
    weaknesses: Mapped[list[dict]] = mapped_column(JSONType, default=list, nullable=False)


class TrendRowModel(Base):
    __tablename__ = "trend_rows"
    __table_args__ = (
        Index("ix_trend_rows_scope", "subject", "skill"),
        Index("ix_trend_rows_objective", "objective"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    date_iso: Mapped[str] = mapped_column(String(40), nullable=False)
    year: Mapped[str] = mapped_column(String(32), nullable=False)
    subject: Mapped[str] = mapped_column(String(64), nullable=False)
    skill: Mapped[str] = mapped_column(String(128), nullable=False)
    objective: Mapped[str] = mapped_column(String(128), nullable=False)
    objective_title: Mapped[str | None] = mapped_column(Text)
    questions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    accuracy: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)


__all__ = [
    "TestRunModel",
    "TrendRowModel",
]
