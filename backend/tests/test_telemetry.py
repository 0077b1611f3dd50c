from __future__ import annotations

import logging
from pathlib import Path

from quizcoach.telemetry import clear_listeners, emit_event, register_listener


def test_listeners_receive_sanitized_payload(events) -> None:
    emit_event("catalogue_loaded", path=Path("/tmp/objectives.yaml"), ids={"b", "a"}, objectives=3)

    assert events[-1].name == "catalogue_loaded"
    assert events[-1].payload == {"path": "/tmp/objectives.yaml", "ids": ["a", "b"], "objectives": 3}


def test_failing_listener_does_not_block_others(events, caplog) -> None:
    def broken(event) -> None:
        raise RuntimeError("boom")

    register_listener(broken)
    with caplog.at_level(logging.INFO, logger="quizcoach.telemetry"):
        emit_event("run_recorded", run_id="run-1")

    assert events[-1].payload == {"run_id": "run-1"}
    assert "Telemetry listener failed" in caplog.text
    assert 'TELEMETRY {"event": "run_recorded", "run_id": "run-1"}' in caplog.text


def test_clear_listeners(events) -> None:
    clear_listeners()
    emit_event("run_aggregated", score=1)
    assert events == []


def test_capture_events_scopes_the_listener() -> None:
    from quizcoach.models import BandDistribution
    from quizcoach.telemetry import capture_events

    with capture_events() as captured:
        emit_event("test_plan_built", distribution=BandDistribution(basic=1, intermediate=2, stretch=0))
    emit_event("test_plan_built", total=3)

    assert len(captured) == 1
    assert captured[0].payload == {"distribution": {"basic": 1, "intermediate": 2, "stretch": 0}}
