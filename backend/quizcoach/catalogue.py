"""Objective catalogue loading, difficulty normalisation, and lookup helpers."""

from __future__ import annotations

import logging
import threading
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import yaml

from .config import get_settings
from .models import BANDS, DifficultyBand, Objective
from .telemetry import emit_event

logger = logging.getLogger(__name__)

_BASIC_LABELS = {"basic", "foundation"}
_STRETCH_LABELS = {"stretch", "challenge", "extension"}

SkillIndex = Mapping[str, Tuple[Objective, ...]]
SubjectIndex = Mapping[str, SkillIndex]


class CatalogueError(ValueError):
    """Raised when the objective source is not a well-formed catalogue."""


def normalize_difficulty(raw: Any) -> DifficultyBand:
    value = str(raw if raw is not None else "").strip().lower()
    if value in _BASIC_LABELS:
        return "basic"
    if value in _STRETCH_LABELS:
        return "stretch"
    # "core" and anything unrecognised
    return "intermediate"


class ObjectiveCatalogue:
    """Read-only level -> subject -> skill -> objectives index."""

    def __init__(self, index: Mapping[str, Mapping[str, Mapping[str, Iterable[Objective]]]]) -> None:
        frozen: Dict[str, SubjectIndex] = {}
        for level, subjects in index.items():
            frozen_subjects: Dict[str, SkillIndex] = {}
            for subject, skills in subjects.items():
                frozen_subjects[subject] = MappingProxyType(
                    {skill: tuple(objectives) for skill, objectives in skills.items()}
                )
            frozen[level] = MappingProxyType(frozen_subjects)
        self._index: Mapping[str, SubjectIndex] = MappingProxyType(frozen)

    def lookup(self, level: str, subject: str, skill: str) -> Tuple[Objective, ...]:
        return self._index.get(level, {}).get(subject, {}).get(skill, ())

    def levels(self) -> List[str]:
        return list(self._index)

    def subjects(self, level: str) -> List[str]:
        return list(self._index.get(level, {}))

    def skills(self, level: str, subject: str) -> List[str]:
        return list(self._index.get(level, {}).get(subject, {}))

    def objective_count(self) -> int:
        return sum(
            len(objectives)
            for subjects in self._index.values()
            for skills in subjects.values()
            for objectives in skills.values()
        )

    def as_dict(self) -> Dict[str, Dict[str, Dict[str, List[Dict[str, Any]]]]]:
        return {
            level: {
                subject: {
                    skill: [objective.model_dump(mode="json") for objective in objectives]
                    for skill, objectives in skills.items()
                }
                for subject, skills in subjects.items()
            }
            for level, subjects in self._index.items()
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ObjectiveCatalogue):
            return NotImplemented
        return self.as_dict() == other.as_dict()

    def __repr__(self) -> str:
        return f"ObjectiveCatalogue(levels={len(self._index)}, objectives={self.objective_count()})"


def lookup(catalogue: ObjectiveCatalogue, level: str, subject: str, skill: str) -> Tuple[Objective, ...]:
    """Return the objectives for a skill, or an empty tuple when the path is unknown."""
    objectives = catalogue.lookup(level, subject, skill)
    logger.debug(
        "Catalogue lookup level=%s subject=%s skill=%s found=%d",
        level,
        subject,
        skill,
        len(objectives),
    )
    return objectives


def split_by_difficulty(objectives: Iterable[Objective]) -> Dict[DifficultyBand, List[Objective]]:
    bands: Dict[DifficultyBand, List[Objective]] = {band: [] for band in BANDS}
    for objective in objectives:
        if objective.difficulty == "basic":
            bands["basic"].append(objective)
        elif objective.difficulty == "stretch":
            bands["stretch"].append(objective)
        else:
            bands["intermediate"].append(objective)
    return bands


def _require_mapping(value: Any, where: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise CatalogueError(f"{where}: expected a mapping, got {type(value).__name__}")
    return value


def _parse_objective(raw: Any, where: str) -> Objective:
    if not isinstance(raw, Mapping):
        raise CatalogueError(f"{where}: objective must be a mapping, got {type(raw).__name__}")
    objective_id = raw.get("id")
    label = raw.get("label")
    if objective_id is None or not str(objective_id).strip():
        raise CatalogueError(f"{where}: objective is missing an id")
    if label is None or not str(label).strip():
        raise CatalogueError(f"{where}: objective '{objective_id}' is missing a label")
    raw_tags = raw.get("tags")
    tags: Tuple[str, ...] = ()
    if isinstance(raw_tags, list):
        tags = tuple(str(tag).strip() for tag in raw_tags if str(tag).strip())
    return Objective(
        id=str(objective_id).strip(),
        title=str(label).strip(),
        difficulty=normalize_difficulty(raw.get("difficulty")),
        tags=tags,
    )


def parse_catalogue(raw: Any) -> ObjectiveCatalogue:
    """Validate and normalise a raw catalogue document."""
    if not isinstance(raw, Mapping):
        raise CatalogueError("Objective catalogue root is not a mapping")

    index: Dict[str, Dict[str, Dict[str, List[Objective]]]] = {}
    levels = _require_mapping(raw.get("levels"), "levels")
    for level, subjects in levels.items():
        level_key = str(level)
        index.setdefault(level_key, {})
        for subject, skills in _require_mapping(subjects, f"levels.{level_key}").items():
            subject_key = str(subject)
            index[level_key].setdefault(subject_key, {})
            skill_map = _require_mapping(skills, f"levels.{level_key}.{subject_key}")
            for skill, payload in skill_map.items():
                skill_key = str(skill)
                where = f"levels.{level_key}.{subject_key}.{skill_key}"
                entry = _require_mapping(payload, where)
                raw_objectives = entry.get("objectives") or []
                if not isinstance(raw_objectives, list):
                    raise CatalogueError(f"{where}.objectives: expected a list")
                objectives: List[Objective] = []
                seen: set[str] = set()
                for position, item in enumerate(raw_objectives):
                    objective = _parse_objective(item, f"{where}.objectives[{position}]")
                    if objective.id in seen:
                        raise CatalogueError(f"{where}: duplicate objective id '{objective.id}'")
                    seen.add(objective.id)
                    objectives.append(objective)
                index[level_key][subject_key][skill_key] = objectives
    return ObjectiveCatalogue(index)


class CatalogueLoader:
    """Loads the catalogue source once per process and serves the cached result."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._catalogue: Optional[ObjectiveCatalogue] = None
        self._error: Optional[Exception] = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_loaded(self) -> bool:
        return self._catalogue is not None

    def load(self) -> ObjectiveCatalogue:
        """Return the cached catalogue, reading the source on first use only.

        A failed read is remembered too: later calls re-raise the same error
        without touching the source until ``reset`` or a successful ``reload``.
        """
        catalogue = self._catalogue
        if catalogue is not None:
            return catalogue
        with self._lock:
            if self._catalogue is not None:
                return self._catalogue
            if self._error is not None:
                raise self._error
            try:
                self._catalogue = self._read()
            except (OSError, CatalogueError) as exc:
                self._error = exc
                raise
            return self._catalogue

    def reload(self) -> ObjectiveCatalogue:
        """Re-read the source and swap it in; a bad source leaves the cached catalogue serving."""
        with self._lock:
            catalogue = self._read()
            self._catalogue = catalogue
            self._error = None
        return catalogue

    def lookup(self, level: str, subject: str, skill: str) -> Tuple[Objective, ...]:
        return lookup(self.load(), level, subject, skill)

    def reset(self) -> None:
        with self._lock:
            self._catalogue = None
            self._error = None

    def _read(self) -> ObjectiveCatalogue:
        logger.info("Loading objective catalogue from %s", self._path)
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                raw = yaml.safe_load(handle)
            catalogue = parse_catalogue(raw)
        except yaml.YAMLError as exc:
            emit_event("catalogue_load_failed", path=self._path, error=str(exc))
            raise CatalogueError(f"{self._path}: invalid YAML: {exc}") from exc
        except (OSError, CatalogueError) as exc:
            emit_event(
                "catalogue_load_failed",
                path=self._path,
                error=str(exc),
                exception_type=exc.__class__.__name__,
            )
            raise
        emit_event(
            "catalogue_loaded",
            path=self._path,
            levels=len(catalogue.levels()),
            objectives=catalogue.objective_count(),
        )
        return catalogue


@lru_cache
def get_catalogue_loader() -> CatalogueLoader:
    return CatalogueLoader(get_settings().objectives_path)


__all__ = [
    "CatalogueError",
    "CatalogueLoader",
    "ObjectiveCatalogue",
    "get_catalogue_loader",
    "lookup",
    "normalize_difficulty",
    "parse_catalogue",
    "split_by_difficulty",
]
