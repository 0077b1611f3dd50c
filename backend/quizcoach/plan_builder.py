"""Test plan construction: distribution sizing and per-band objective sampling."""

from __future__ import annotations

import logging
import math
from collections import Counter
from typing import List, Optional, Sequence, Set, Tuple

from .catalogue import split_by_difficulty
from .config import get_settings
from .models import BANDS, BandDistribution, DifficultyBand, Objective, PlanEntry
from .selection import RandomSource, default_random_source
from .telemetry import emit_event

logger = logging.getLogger(__name__)

DEFAULT_DISTRIBUTION = BandDistribution(basic=8, intermediate=8, stretch=4)
# Bands given up first when rounding overshoots the target total.
DECREMENT_ORDER: Tuple[DifficultyBand, ...] = ("intermediate", "basic", "stretch")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def size_distribution(ratio: BandDistribution, total: int) -> BandDistribution:
    """Scale a band ratio so the bands sum exactly to ``total``.

    Each band is scaled and rounded independently; any rounding drift is then
    absorbed by ``intermediate`` when short, or removed from the first
    non-empty band in :data:`DECREMENT_ORDER` when over.
    """
    ratio_total = ratio.total
    if ratio_total <= 0:
        logger.warning("Band ratio %s has no weight; sizing %d questions as intermediate", ratio, total)
    scale = total / ratio_total if ratio_total > 0 else 0.0
    sized = {band: max(0, _round_half_up(ratio.get(band) * scale)) for band in BANDS}

    drift = total - sum(sized.values())
    while drift != 0:
        if drift > 0:
            sized["intermediate"] += 1
            drift -= 1
            continue
        band = next((candidate for candidate in DECREMENT_ORDER if sized[candidate] > 0), None)
        if band is None:
            logger.warning("Unable to resolve distribution drift of %d for total %d", drift, total)
            emit_event("distribution_drift_unresolved", total=total, drift=drift, ratio=ratio.model_dump())
            break
        sized[band] -= 1
        drift += 1

    return BandDistribution(**sized)


def _take_unused(
    candidates: Sequence[Objective],
    count: int,
    used: Set[str],
    rng: RandomSource,
) -> List[Objective]:
    shuffled = list(candidates)
    rng.shuffle(shuffled)
    picked: List[Objective] = []
    for objective in shuffled:
        if len(picked) >= count:
            break
        if objective.id in used:
            continue
        picked.append(objective)
        used.add(objective.id)
    return picked


def choose_for_test(
    objectives: Sequence[Objective],
    distribution: BandDistribution,
    *,
    rng: Optional[RandomSource] = None,
) -> List[Objective]:
    """Sample objectives per band, topping up and then cycling so the plan is never short.

    Ordering is basic, intermediate, stretch, then top-ups, then cyclic padding.
    Padding repeats objectives when the pool is smaller than the target total.
    """
    rng = rng or default_random_source()
    target_total = distribution.total
    bands = split_by_difficulty(objectives)

    used: Set[str] = set()
    result: List[Objective] = []
    for band in BANDS:
        result.extend(_take_unused(bands[band], distribution.get(band), used, rng))

    if len(result) < target_total:
        leftovers = [objective for band in BANDS for objective in bands[band] if objective.id not in used]
        rng.shuffle(leftovers)
        for objective in leftovers:
            if len(result) >= target_total:
                break
            result.append(objective)
            used.add(objective.id)

    while len(result) < target_total and objectives:
        result.append(objectives[len(result) % len(objectives)])

    plan = result[:target_total]
    repeats = [objective_id for objective_id, count in Counter(o.id for o in plan).items() if count > 1]
    if repeats:
        logger.warning(
            "Test plan of %d repeats %d objectives; only %d available",
            target_total,
            len(repeats),
            len(objectives),
        )
    return plan


def build_test_plan(
    objectives: Sequence[Objective],
    total: Optional[int] = None,
    ratio: Optional[BandDistribution] = None,
    *,
    rng: Optional[RandomSource] = None,
) -> Tuple[BandDistribution, List[PlanEntry]]:
    """Size the band ratio to ``total`` and flatten the sampled objectives into plan entries."""
    requested = total if total is not None else get_settings().default_test_total
    target_total = max(1, requested)
    sized = size_distribution(ratio or DEFAULT_DISTRIBUTION, target_total)
    chosen = choose_for_test(objectives, sized, rng=rng)
    plan = [PlanEntry.from_objective(objective) for objective in chosen]
    emit_event(
        "test_plan_built",
        total=target_total,
        planned=len(plan),
        available=len(objectives),
        distribution=sized.model_dump(),
    )
    return sized, plan


__all__ = [
    "DECREMENT_ORDER",
    "DEFAULT_DISTRIBUTION",
    "build_test_plan",
    "choose_for_test",
    "size_distribution",
]
