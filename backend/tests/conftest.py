"""Shared fixtures: cache resets, a small objective catalogue, and captured telemetry."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator, List

import pytest

from quizcoach.catalogue import get_catalogue_loader
from quizcoach.config import get_settings
from quizcoach.db.session import dispose_engine
from quizcoach.models import Objective
from quizcoach.result_store import get_result_store
from quizcoach.telemetry import TelemetryEvent, clear_listeners, register_listener

CATALOGUE_YAML = """\
levels:
  y4:
    maths:
      fractions:
        title: Fractions
        objectives:
          - id: FRAC.EQUIV
            label: Recognise equivalent fractions
            difficulty: foundation
            tags: [equivalence, diagrams]
          - id: FRAC.COUNT
            label: Count in hundredths
            difficulty: basic
          - id: FRAC.ADD
            label: Add fractions with the same denominator
            difficulty: core
            tags: [addition, denominator]
          - id: FRAC.SUB
            label: Subtract fractions with the same denominator
            difficulty: core
            tags: [subtraction, denominator]
          - id: FRAC.DECIMAL
            label: Write hundredths as decimals
          - id: FRAC.QUANTITY
            label: Find fractions of a quantity
            difficulty: extension
            tags: [quantities]
      empty-skill:
        title: Nothing here yet
        objectives: []
"""


def _reset_caches() -> None:
    clear_listeners()
    get_settings.cache_clear()
    get_catalogue_loader.cache_clear()
    get_result_store.cache_clear()
    dispose_engine()


@pytest.fixture(autouse=True)
def _isolated_state() -> Iterator[None]:
    _reset_caches()
    yield
    _reset_caches()


@pytest.fixture
def catalogue_file(tmp_path: Path) -> Path:
    path = tmp_path / "objectives.yaml"
    path.write_text(CATALOGUE_YAML, encoding="utf-8")
    return path


@pytest.fixture
def objectives() -> List[Objective]:
    return [
        Objective(id="B1", title="Count to twenty", difficulty="basic", tags=("counting",)),
        Objective(id="B2", title="Number bonds to ten", difficulty="basic", tags=("addition",)),
        Objective(id="I1", title="Add two-digit numbers", difficulty="intermediate", tags=("addition",)),
        Objective(id="I2", title="Subtract two-digit numbers", difficulty="intermediate", tags=("subtraction",)),
        Objective(id="I3", title="Compare fractions", difficulty="intermediate", tags=("fractions",)),
        Objective(id="S1", title="Solve missing number problems", difficulty="stretch", tags=("reasoning",)),
    ]


@pytest.fixture
def events() -> List[TelemetryEvent]:
    captured: List[TelemetryEvent] = []
    register_listener(captured.append)
    return captured
