from __future__ import annotations

import io
import json
import logging

import pytest

from tomato.observability import EVENT_PREFIX, EventFormatter, RunSummary, log_event
from tomato.runtime.settings import Settings


def _lines(out):
    return [json.loads(l[len(EVENT_PREFIX):]) for l in out.getvalue().splitlines() if l.startswith(EVENT_PREFIX)]


def test_events_omit_empty_error_and_tally_summary():
    out = io.StringIO()
    f = EventFormatter(out)

    f.feature_start(feature="F", file="f.feature")
    f.scenario_start(feature="F", scenario="S", file="f.feature")
    f.step_end(feature="F", scenario="S", step="a", status="passed")
    f.step_end(feature="F", scenario="S", step="b", status="failed", error="boom")
    f.step_end(feature="F", scenario="S", step="c", status="skipped")
    f.scenario_end(feature="F", scenario="S", status="failed", error="boom")
    f.feature_end(feature="F")
    summary = f.finish()

    events = _lines(out)
    assert events[2] == {"type": "step_end", "feature": "F", "scenario": "S", "step": "a", "status": "passed"}
    assert events[3]["error"] == "boom"
    assert events[-1] == {"type": "summary", "total": 1, "passed": 0, "failed": 1, "skipped": 0}
    assert out.getvalue().endswith("\n1 scenarios (0 passed, 1 failed), 3 steps (1 passed, 1 failed, 1 skipped)\n")
    assert summary.as_dict()["steps"] == {"total": 3, "passed": 1, "failed": 1, "skipped": 1}
    assert not summary.ok


def test_pending_counts_as_skipped_and_unknown_status_rejected():
    s = RunSummary()
    s.count_step("pending")
    s.count_step("undefined")

    assert (s.steps_skipped, s.steps_failed) == (1, 1)
    with pytest.raises(ValueError):
        s.count_step("bogus")


def test_log_event_text_and_json(caplog):
    logger = logging.getLogger("tomato.test")
    caplog.set_level(logging.INFO, logger="tomato.test")

    log_event(logger, settings=Settings(), level=logging.INFO, event="resource_ready", resource="db", attempts=2)
    log_event(logger, settings=Settings(log_format="json"), level=logging.INFO, event="randomize", seed=42)

    assert caplog.records[0].getMessage() == "resource_ready resource=db attempts=2"
    payload = json.loads(caplog.records[1].getMessage())
    assert payload["event"] == "randomize"
    assert payload["seed"] == 42
    assert isinstance(payload["ts_ms"], int)
