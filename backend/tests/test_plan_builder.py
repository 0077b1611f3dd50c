from __future__ import annotations

import random
from collections import Counter

import pytest

from quizcoach.models import BandDistribution, Objective
from quizcoach.plan_builder import (
    DEFAULT_DISTRIBUTION,
    build_test_plan,
    choose_for_test,
    size_distribution,
)


def _dist(basic: int, intermediate: int, stretch: int) -> BandDistribution:
    return BandDistribution(basic=basic, intermediate=intermediate, stretch=stretch)


@pytest.mark.parametrize(
    ("total", "expected"),
    [
        (20, (8, 8, 4)),
        (10, (4, 4, 2)),
        (21, (8, 9, 4)),
    ],
)
def test_default_ratio_sizing(total: int, expected) -> None:
    sized = size_distribution(DEFAULT_DISTRIBUTION, total)
    assert (sized.basic, sized.intermediate, sized.stretch) == expected


def test_sized_bands_always_sum_to_total() -> None:
    ratios = [_dist(8, 8, 4), _dist(1, 1, 1), _dist(0, 0, 5), _dist(3, 0, 1), _dist(1, 2, 7)]
    for ratio in ratios:
        for total in range(1, 41):
            assert size_distribution(ratio, total).total == total


def test_overshoot_is_taken_from_intermediate_first() -> None:
    sized = size_distribution(_dist(1, 1, 1), 2)
    assert (sized.basic, sized.intermediate, sized.stretch) == (1, 0, 1)


def test_overshoot_moves_on_when_intermediate_is_empty() -> None:
    # 0.5 rounds up in both bands, so one question has to come back out of basic
    sized = size_distribution(_dist(1, 0, 1), 1)
    assert (sized.basic, sized.intermediate, sized.stretch) == (0, 0, 1)


def test_zero_ratio_puts_everything_in_intermediate() -> None:
    sized = size_distribution(_dist(0, 0, 0), 7)
    assert (sized.basic, sized.intermediate, sized.stretch) == (0, 7, 0)


def test_unresolvable_drift_is_reported(events) -> None:
    sized = size_distribution(_dist(1, 1, 1), -2)
    assert sized.total == 0
    assert events[-1].name == "distribution_drift_unresolved"
    assert events[-1].payload["drift"] == -2


def test_choose_for_test_orders_bands(objectives) -> None:
    plan = choose_for_test(objectives, _dist(2, 3, 1), rng=random.Random(5))
    assert [objective.difficulty for objective in plan] == [
        "basic",
        "basic",
        "intermediate",
        "intermediate",
        "intermediate",
        "stretch",
    ]
    assert len({objective.id for objective in plan}) == 6


def test_short_band_is_topped_up_from_leftovers(objectives) -> None:
    plan = choose_for_test(objectives, _dist(0, 0, 3), rng=random.Random(2))
    assert len(plan) == 3
    assert plan[0].id == "S1"
    assert len({objective.id for objective in plan}) == 3


def test_small_pool_is_padded_cyclically(objectives) -> None:
    plan = choose_for_test(objectives, _dist(4, 4, 4), rng=random.Random(9))
    assert len(plan) == 12
    counts = Counter(objective.id for objective in plan)
    assert set(counts) == {objective.id for objective in objectives}
    assert max(counts.values()) == 2


def test_choose_for_test_with_no_objectives() -> None:
    assert choose_for_test([], _dist(1, 1, 1), rng=random.Random(0)) == []


def test_plan_without_repeats_when_pool_is_large_enough() -> None:
    pool = [
        Objective(id=f"{band[0].upper()}{index}", title=f"{band} {index}", difficulty=band)
        for band in ("basic", "intermediate", "stretch")
        for index in range(10)
    ]
    for seed in range(10):
        _, plan = build_test_plan(pool, 20, rng=random.Random(seed))
        ids = [entry.id for entry in plan]
        assert len(ids) == 20
        assert len(set(ids)) == 20
        assert Counter(entry.difficulty for entry in plan) == {"basic": 8, "intermediate": 8, "stretch": 4}


def test_build_test_plan_uses_configured_default_total(objectives, monkeypatch, events) -> None:
    from quizcoach.config import get_settings

    monkeypatch.setenv("QUIZCOACH_DEFAULT_TEST_TOTAL", "5")
    get_settings.cache_clear()
    distribution, plan = build_test_plan(objectives, rng=random.Random(1))
    assert distribution.total == 5
    assert len(plan) == 5
    assert events[-1].name == "test_plan_built"
    assert events[-1].payload["planned"] == 5


def test_build_test_plan_clamps_total_to_one(objectives) -> None:
    distribution, plan = build_test_plan(objectives, 0, rng=random.Random(1))
    assert distribution.total == 1
    assert len(plan) == 1
    assert distribution.intermediate == 1


def test_build_test_plan_honours_custom_ratio(objectives) -> None:
    distribution, plan = build_test_plan(objectives, 3, _dist(0, 0, 1), rng=random.Random(4))
    assert (distribution.basic, distribution.intermediate, distribution.stretch) == (0, 0, 3)
    assert len(plan) == 3
    assert plan[0].id == "S1"
