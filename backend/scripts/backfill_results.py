from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Tuple

from pydantic import ValidationError

from quizcoach.config import get_settings
from quizcoach.db.session import get_engine
from quizcoach.models import TestResult, TrendRow
from quizcoach.result_store import DatabaseResultStore


logger = logging.getLogger("backfill")


def _read_jsonl(path: Path) -> List[Tuple[int, str]]:
    with path.open(encoding="utf-8") as handle:
        return [(number, line) for number, line in enumerate(handle, start=1) if line.strip()]


def backfill_runs(results_dir: Path, store: DatabaseResultStore) -> Tuple[int, set[str]]:
    """Import every run file under ``results_dir``; returns the count and the imported run ids."""
    imported_ids: set[str] = set()
    if not results_dir.exists():
        logger.info("No legacy run files found at %s", results_dir)
        return 0, imported_ids

    for path in sorted(results_dir.glob("*.jsonl")):
        for number, line in _read_jsonl(path):
            try:
                result = TestResult.model_validate_json(line)
            except ValidationError as exc:
                logger.warning("Skipping invalid run at %s:%d: %s", path, number, exc)
                continue
            if store.has_run(result.run_id):
                continue
            store.append_run_record(result)
            imported_ids.add(result.run_id)
    logger.info("Imported %d test runs", len(imported_ids))
    return len(imported_ids), imported_ids


def backfill_trends(trends_file: Path, store: DatabaseResultStore, run_ids: set[str]) -> int:
    """Import trend rows belonging to the runs imported in this pass."""
    if not trends_file.exists():
        logger.info("No legacy trend rows found at %s", trends_file)
        return 0

    rows: List[TrendRow] = []
    for number, line in _read_jsonl(trends_file):
        try:
            row = TrendRow.model_validate_json(line)
        except ValidationError as exc:
            logger.warning("Skipping invalid trend row at %s:%d: %s", trends_file, number, exc)
            continue
        if row.run_id in run_ids:
            rows.append(row)
    imported = store.append_trend_rows(rows)
    logger.info("Imported %d trend rows", imported)
    return imported


def parse_args() -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Backfill legacy JSON Lines results into the database.")
    parser.add_argument("--results-dir", type=Path, default=settings.results_dir / "tests")
    parser.add_argument("--trends", type=Path, default=settings.results_dir / "trends" / "all.jsonl")
    return parser.parse_args()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    args = parse_args()
    get_engine()
    store = DatabaseResultStore()
    total_runs, run_ids = backfill_runs(args.results_dir, store)
    total_trends = backfill_trends(args.trends, store, run_ids)
    logger.info("Backfill completed: %d runs, %d trend rows", total_runs, total_trends)


if __name__ == "__main__":
    main()
