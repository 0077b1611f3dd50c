"""Weakness-biased objective selection for practice sessions."""

from __future__ import annotations

import logging
import random
import re
import unicodedata
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from .config import get_settings
from .models import BANDS, DifficultyBand, Objective
from .telemetry import emit_event

logger = logging.getLogger(__name__)

PRACTICE_LEVEL_BANDS: Dict[str, DifficultyBand] = {
    "warmup": "basic",
    "standard": "intermediate",
    "challenge": "stretch",
}
MIN_PREFIX_TERM_LENGTH = 4
MAX_PREFIX_LENGTH = 6


class RandomSource(Protocol):
    """Subset of :class:`random.Random` used for tie-breaks and sampling."""

    def random(self) -> float:  # pragma: no cover - protocol definition
        ...

    def shuffle(self, x: List[Objective]) -> None:  # pragma: no cover - protocol definition
        ...


def default_random_source() -> RandomSource:
    return random  # type: ignore[return-value]


@dataclass(frozen=True)
class MatchWeights:
    whole_word: int = 3
    substring: int = 2
    prefix: int = 1


def match_weights_from_settings() -> MatchWeights:
    settings = get_settings()
    return MatchWeights(
        whole_word=settings.match_weight_whole_word,
        substring=settings.match_weight_substring,
        prefix=settings.match_weight_prefix,
    )


def normalize_text(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value.lower())
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return stripped.strip()


def _haystack(objective: Objective) -> str:
    return normalize_text(" ".join([objective.title, *objective.tags]))


def score_objective_match(
    objective: Objective,
    weakness_terms: Iterable[str],
    weights: Optional[MatchWeights] = None,
) -> int:
    """Score how strongly an objective's title and tags match the weakness terms."""
    weights = weights or MatchWeights()
    terms = [term for term in weakness_terms if term]
    if not terms:
        return 0
    hay = _haystack(objective)
    score = 0
    for term in terms:
        needle = normalize_text(term)
        if not needle:
            continue
        if re.search(rf"\b{re.escape(needle)}\b", hay):
            score += weights.whole_word
        elif needle in hay:
            score += weights.substring
        elif len(needle) >= MIN_PREFIX_TERM_LENGTH and needle[: min(len(needle), MAX_PREFIX_LENGTH)] in hay:
            score += weights.prefix
    return score


def choose_for_practice(
    objectives: Sequence[Objective],
    target_difficulty: DifficultyBand,
    weakness_tags: Iterable[str] = (),
    avoid_ids: Iterable[str] = (),
    *,
    rng: Optional[RandomSource] = None,
    weights: Optional[MatchWeights] = None,
) -> Optional[Objective]:
    """Pick one objective, preferring the target band and the strongest weakness match.

    Returns ``None`` when ``objectives`` is empty or every objective is avoided;
    the caller owns any fallback. Equal scores are broken uniformly at random.
    """
    if not objectives:
        return None
    rng = rng or default_random_source()

    avoid = {objective_id for objective_id in avoid_ids if objective_id}
    pool = [objective for objective in objectives if objective.id not in avoid]
    if not pool:
        return None

    preferred = [objective for objective in pool if objective.difficulty == target_difficulty]
    bucket = preferred or pool

    terms = list(weakness_tags)
    scored: List[Tuple[int, float, Objective]] = [
        (score_objective_match(objective, terms, weights), rng.random(), objective) for objective in bucket
    ]
    best_score, _, chosen = min(scored, key=lambda item: (-item[0], item[1]))
    logger.debug(
        "Practice pick %s (band=%s, score=%d, candidates=%d, avoided=%d)",
        chosen.id,
        target_difficulty,
        best_score,
        len(bucket),
        len(objectives) - len(pool),
    )
    return chosen


def practice_band(level: str) -> DifficultyBand:
    """Map a practice difficulty setting (warmup/standard/challenge) to a band."""
    normalized = (level or "").strip().lower()
    if normalized in BANDS:
        return normalized  # type: ignore[return-value]
    return PRACTICE_LEVEL_BANDS.get(normalized, "intermediate")


def expand_weakness_tags(objectives: Iterable[Objective], weak_ids: Iterable[str]) -> List[str]:
    """Turn weak objective ids into matching terms: each weak objective's id plus its tags."""
    wanted = {objective_id for objective_id in weak_ids if objective_id}
    terms: List[str] = []
    seen: set[str] = set()
    for objective in objectives:
        if objective.id not in wanted:
            continue
        for term in (objective.id, *objective.tags):
            if term not in seen:
                seen.add(term)
                terms.append(term)
    return terms


def used_objective_ids(history_ids: Iterable[Optional[str]], last_objective_id: Optional[str] = None) -> List[str]:
    used: List[str] = []
    for objective_id in [*history_ids, last_objective_id]:
        if objective_id and objective_id not in used:
            used.append(objective_id)
    return used


def next_practice_objective(
    objectives: Sequence[Objective],
    target_difficulty: DifficultyBand,
    weakness_tags: Iterable[str] = (),
    avoid_ids: Iterable[str] = (),
    *,
    rng: Optional[RandomSource] = None,
    weights: Optional[MatchWeights] = None,
) -> Optional[Objective]:
    """Session-level pick: the selector first, then the first unseen objective, then the first one."""
    avoid = list(avoid_ids)
    chosen = choose_for_practice(
        objectives,
        target_difficulty,
        weakness_tags,
        avoid,
        rng=rng,
        weights=weights,
    )
    source = "selector"
    if chosen is None:
        chosen = next((objective for objective in objectives if objective.id not in avoid), None)
        source = "unseen"
    if chosen is None and objectives:
        chosen = objectives[0]
        source = "first"
    emit_event(
        "practice_objective_selected",
        objective_id=chosen.id if chosen else None,
        target_difficulty=target_difficulty,
        source=source if chosen else "none",
        avoided=len(avoid),
    )
    return chosen


__all__ = [
    "MatchWeights",
    "PRACTICE_LEVEL_BANDS",
    "RandomSource",
    "choose_for_practice",
    "default_random_source",
    "expand_weakness_tags",
    "match_weights_from_settings",
    "next_practice_objective",
    "normalize_text",
    "practice_band",
    "score_objective_match",
    "used_objective_ids",
]
