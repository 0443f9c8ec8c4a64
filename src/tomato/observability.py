from __future__ import annotations

import json
import logging
import sys
import time
from dataclasses import dataclass
from typing import Any, Optional, TextIO

from tomato.runtime.settings import Settings
from tomato.steps.base import AMBIGUOUS, FAILED, PASSED, PENDING, SKIPPED, UNDEFINED

log = logging.getLogger("tomato.observability")

EVENT_PREFIX = "TOMATO_EVENT:"

FEATURE_START = "feature_start"
FEATURE_END = "feature_end"
SCENARIO_START = "scenario_start"
SCENARIO_END = "scenario_end"
STEP_END = "step_end"
SUMMARY = "summary"


def _now_ms() -> int:
    return int(time.time() * 1000)


def log_event(logger: logging.Logger, *, settings: Settings, level: int, event: str, **fields: Any) -> None:
    """Emit an event log.

    - text format: one-liner `event key=value ...`
    - json format: one JSON object per line
    """
    if settings.log_format.lower() == "json":
        payload = {"ts_ms": _now_ms(), "event": event, **fields}
        logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))
        return

    parts = [event]
    for k, v in fields.items():
        parts.append(f"{k}={v}")
    logger.log(level, " ".join(parts))


@dataclass
class RunSummary:
    scenarios_passed: int = 0
    scenarios_failed: int = 0
    scenarios_skipped: int = 0
    steps_passed: int = 0
    steps_failed: int = 0
    steps_skipped: int = 0
    cancelled: bool = False

    @property
    def scenarios_total(self) -> int:
        return self.scenarios_passed + self.scenarios_failed + self.scenarios_skipped

    @property
    def steps_total(self) -> int:
        return self.steps_passed + self.steps_failed + self.steps_skipped

    @property
    def ok(self) -> bool:
        return self.scenarios_failed == 0 and not self.cancelled

    def count_step(self, status: str) -> None:
        if status == PASSED:
            self.steps_passed += 1
        elif status in (FAILED, UNDEFINED, AMBIGUOUS):
            self.steps_failed += 1
        elif status in (SKIPPED, PENDING):
            self.steps_skipped += 1
        else:
            raise ValueError(f"unknown step status: {status}")

    def count_scenario(self, status: str) -> None:
        if status == PASSED:
            self.scenarios_passed += 1
        elif status == SKIPPED:
            self.scenarios_skipped += 1
        else:
            self.scenarios_failed += 1

    def lines(self) -> list[str]:
        def tally(total: int, passed: int, failed: int, skipped: int, noun: str) -> str:
            parts = [f"{passed} passed"]
            if failed:
                parts.append(f"{failed} failed")
            if skipped:
                parts.append(f"{skipped} skipped")
            return f"{total} {noun} ({', '.join(parts)})"

        return [
            tally(self.scenarios_total, self.scenarios_passed, self.scenarios_failed, self.scenarios_skipped, "scenarios"),
            tally(self.steps_total, self.steps_passed, self.steps_failed, self.steps_skipped, "steps"),
        ]

    def as_dict(self) -> dict:
        return {
            "scenarios": {
                "total": self.scenarios_total,
                "passed": self.scenarios_passed,
                "failed": self.scenarios_failed,
                "skipped": self.scenarios_skipped,
            },
            "steps": {
                "total": self.steps_total,
                "passed": self.steps_passed,
                "failed": self.steps_failed,
                "skipped": self.steps_skipped,
            },
            "cancelled": self.cancelled,
        }


class EventFormatter:
    """Writes `TOMATO_EVENT:{json}` lines and accumulates the RunSummary.

    Events go to `out` (stdout by default); log records go through logging, so
    the two streams never interleave for machine consumers.
    """

    def __init__(self, out: Optional[TextIO] = None) -> None:
        self.out = out if out is not None else sys.stdout
        self.summary = RunSummary()

    def emit(self, type_: str, **fields: Any) -> None:
        payload = {"type": type_}
        for k, v in fields.items():
            if k == "error" and not v:
                continue
            payload[k] = v
        self.out.write(EVENT_PREFIX + json.dumps(payload, ensure_ascii=False) + "\n")
        self.out.flush()

    def feature_start(self, *, feature: str, file: str) -> None:
        self.emit(FEATURE_START, feature=feature, file=file)

    def feature_end(self, *, feature: str) -> None:
        self.emit(FEATURE_END, feature=feature)

    def scenario_start(self, *, feature: str, scenario: str, file: str) -> None:
        self.emit(SCENARIO_START, feature=feature, scenario=scenario, file=file)

    def scenario_end(self, *, feature: str, scenario: str, status: str, error: Optional[str] = None) -> None:
        self.summary.count_scenario(status)
        self.emit(SCENARIO_END, feature=feature, scenario=scenario, status=status, error=error)

    def step_end(self, *, feature: str, scenario: str, step: str, status: str, error: Optional[str] = None) -> None:
        self.summary.count_step(status)
        self.emit(STEP_END, feature=feature, scenario=scenario, step=step, status=status, error=error)

    def finish(self, *, cancelled: bool = False) -> RunSummary:
        s = self.summary
        s.cancelled = cancelled
        self.emit(
            SUMMARY,
            total=s.scenarios_total,
            passed=s.scenarios_passed,
            failed=s.scenarios_failed,
            skipped=s.scenarios_skipped,
        )
        self.out.write("\n" + ", ".join(s.lines()) + "\n")
        if cancelled:
            self.out.write("run cancelled; summary is partial\n")
        self.out.flush()
        return s
