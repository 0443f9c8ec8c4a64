from __future__ import annotations

import logging
import os
import random
import signal
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Tuple

from tomato.builtins import register_all
from tomato.config import load_config
from tomato.exception import AmbiguousStep, ResetError, TomatoError, UndefinedStep
from tomato.feature import Feature, Scenario, load_features
from tomato.observability import EventFormatter, RunSummary, log_event
from tomato.plugins import load_all_plugins
from tomato.registry.drivers import DriverRegistry
from tomato.registry.steps import StepRegistry
from tomato.resources.manager import ResourceManager
from tomato.runtime.settings import Settings, load_settings
from tomato.steps.base import AMBIGUOUS, FAILED, PASSED, PENDING, SKIPPED, UNDEFINED

log = logging.getLogger("tomato.runner")


def _ensure_logging(settings: Settings) -> None:
    fmt = '%(asctime)s - (%(threadName)-10s) - %(name)s - %(levelname)s - %(message)s'
    if (settings.log_format or "text").lower() == "json":
        # JSON payload already includes timestamp; keep formatter minimal.
        fmt = "%(message)s"
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=fmt,
    )


def build_registries(settings: Settings, *, plugins: bool = True) -> Tuple[DriverRegistry, StepRegistry]:
    """Fresh registries holding the built-ins plus any configured plugins."""
    drivers = DriverRegistry()
    steps = StepRegistry()
    register_all(drivers, steps)
    if plugins:
        load_all_plugins(drivers, steps, settings=settings)
    return drivers, steps


class ScenarioDriver:
    """Runs features scenario by scenario, one step at a time, against a ready manager."""

    def __init__(
        self,
        manager: ResourceManager,
        steps: StepRegistry,
        formatter: EventFormatter,
        *,
        settings: Settings,
        stop_on_failure: bool = False,
        randomize: bool = False,
        seed: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self.manager = manager
        self.steps = steps
        self.formatter = formatter
        self.settings = settings
        self.stop_on_failure = stop_on_failure
        self.randomize = randomize
        self.seed = seed
        self.cancel = cancel or threading.Event()

    def order(self, feature: Feature, rng: Optional[random.Random]) -> List[Scenario]:
        scenarios = list(feature.scenarios)
        if rng is not None:
            rng.shuffle(scenarios)
        return scenarios

    def run(self, features: List[Feature]) -> RunSummary:
        rng = None
        if self.randomize:
            if self.seed is None:
                self.seed = int(time.time() * 1000)
            rng = random.Random(self.seed)
            log_event(log, settings=self.settings, level=logging.INFO, event="randomize", seed=self.seed)

        halted = False
        for feature in features:
            if halted or self.cancel.is_set():
                break
            if not feature.name and not feature.scenarios:
                log.debug("skipping empty feature file %s", feature.path)
                continue
            self.formatter.feature_start(feature=feature.name, file=feature.path)
            for scenario in self.order(feature, rng):
                if self.cancel.is_set():
                    break
                status = self.run_scenario(feature, scenario)
                if status == FAILED and self.stop_on_failure:
                    log_event(log, settings=self.settings, level=logging.INFO, event="stop_on_failure",
                              feature=feature.name, scenario=scenario.name)
                    halted = True
                    break
            self.formatter.feature_end(feature=feature.name)

        return self.formatter.finish(cancelled=self.cancel.is_set())

    def run_scenario(self, feature: Feature, scenario: Scenario) -> str:
        error: Optional[str] = None
        try:
            self.manager.reset_all()
        except ResetError as e:
            error = str(e)

        f = self.formatter
        f.scenario_start(feature=feature.name, scenario=scenario.name, file=feature.path)

        failed = error is not None
        stopped = failed
        for step in scenario.steps:
            if stopped:
                f.step_end(feature=feature.name, scenario=scenario.name, step=step.text, status=SKIPPED)
                continue
            status, step_error = self.run_step(step.text, step.argument)
            f.step_end(feature=feature.name, scenario=scenario.name, step=step.text, status=status, error=step_error)
            if status != PASSED:
                stopped = True
                if status in (FAILED, UNDEFINED, AMBIGUOUS):
                    failed = True
                    error = error or step_error

        status = FAILED if failed else PASSED
        f.scenario_end(feature=feature.name, scenario=scenario.name, status=status, error=error if failed else None)
        return status

    def run_step(self, text: str, argument: Any) -> Tuple[str, Optional[str]]:
        try:
            bound = self.steps.bind(text, argument)
        except UndefinedStep as e:
            return UNDEFINED, str(e)
        except AmbiguousStep as e:
            return AMBIGUOUS, str(e)
        except TomatoError as e:
            return FAILED, str(e)

        try:
            bound.invoke(self.manager)
        except NotImplementedError as e:
            return PENDING, str(e) or "step is pending"
        except TomatoError as e:
            return FAILED, str(e)
        except Exception as e:
            log.debug("step raised %s: %s", type(e).__name__, text, exc_info=True)
            return FAILED, f"{type(e).__name__}: {e}"
        return PASSED, None


class _SignalCancel:
    """SIGINT/SIGTERM set the cancel event; the run stops at the next scenario boundary."""

    SIGNALS = ("SIGINT", "SIGTERM")

    def __init__(self, cancel: threading.Event) -> None:
        self.cancel = cancel
        self._previous: Dict[int, Any] = {}

    def _handle(self, signum, frame) -> None:
        log.warning("received signal %s; stopping after the current scenario", signum)
        self.cancel.set()

    def __enter__(self) -> "_SignalCancel":
        if threading.current_thread() is not threading.main_thread():
            return self
        for name in self.SIGNALS:
            sig = getattr(signal, name, None)
            if sig is not None:
                self._previous[sig] = signal.signal(sig, self._handle)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        for sig, prev in self._previous.items():
            signal.signal(sig, prev)
        self._previous.clear()


def run_suite(
    config_path: str | Path,
    *,
    settings: Settings | None = None,
    env: Dict[str, str] | None = None,
    features_paths: Optional[List[str]] = None,
    overrides: Dict[str, Any] | None = None,
    out: Optional[TextIO] = None,
    drivers: Optional[DriverRegistry] = None,
    steps: Optional[StepRegistry] = None,
    cancel: Optional[threading.Event] = None,
) -> RunSummary:
    """Load a suite config, bring every resource up and run all scenarios.

    Raises ConfigError for bad configs or feature files and ReadinessTimeout when
    resources never become ready; resources are closed on every exit path.
    """
    env_snapshot = {k: str(v) for k, v in os.environ.items()} if env is None else env
    settings = settings or load_settings(env=env_snapshot)
    _ensure_logging(settings)

    suite = load_config(config_path, env=env_snapshot, features_paths=features_paths, overrides=overrides)
    features = load_features(suite.features_paths)
    log_event(log, settings=settings, level=logging.INFO, event="suite_loaded", config=str(config_path),
              resources=len(suite.resources), features=len(features))

    if drivers is None or steps is None:
        built_drivers, built_steps = build_registries(settings)
        drivers = built_drivers if drivers is None else drivers
        steps = built_steps if steps is None else steps

    cancel = cancel or threading.Event()
    manager = ResourceManager.build(suite.resources, drivers, settings=settings)
    with manager, _SignalCancel(cancel):
        manager.ready_all(suite.readiness_timeout)
        steps.close()
        driver = ScenarioDriver(
            manager,
            steps,
            EventFormatter(out),
            settings=settings,
            stop_on_failure=suite.stop_on_failure,
            randomize=suite.randomize,
            seed=suite.seed,
            cancel=cancel,
        )
        summary = driver.run(features)

    log_event(log, settings=settings, level=logging.INFO, event="suite_finished", **summary.as_dict()["scenarios"],
              cancelled=summary.cancelled)
    return summary
