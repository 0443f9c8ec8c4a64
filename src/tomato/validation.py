from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from tomato.config import load_config
from tomato.exception import AmbiguousStep, ConfigError, TomatoError, UndefinedStep
from tomato.feature import discover, parse_feature
from tomato.registry.drivers import DriverRegistry
from tomato.registry.steps import StepRegistry
from tomato.runtime.settings import Settings, load_settings
from tomato.stubs import Stubs

log = logging.getLogger("tomato.validation")


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    loc: str
    msg: str

    def as_dict(self) -> dict:
        return {"code": self.code, "loc": self.loc, "msg": self.msg}


def validate_suite(
    config_path: str | Path,
    *,
    settings: Settings | None = None,
    env: Dict[str, str] | None = None,
    features_paths: Optional[List[str]] = None,
    drivers: Optional[DriverRegistry] = None,
    steps: Optional[StepRegistry] = None,
) -> dict:
    """Check a suite without touching any service.

    This performs:
      1) config schema validation
      2) driver resolution and strict params for every resource (no I/O)
      3) feature parsing and step matching (undefined, ambiguous, bad payloads)
    """
    from tomato.runner import _ensure_logging, build_registries

    env_snapshot = {k: str(v) for k, v in os.environ.items()} if env is None else env
    settings = settings or load_settings(env=env_snapshot)
    _ensure_logging(settings)
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []
    report: dict = {"config": str(config_path)}

    try:
        suite = load_config(config_path, env=env_snapshot, features_paths=features_paths)
    except ConfigError as e:
        errors.append(ValidationIssue(code="config:invalid", loc=str(config_path), msg=str(e)))
        report.update(ok=False, errors=[x.as_dict() for x in errors], warnings=[])
        return report

    if drivers is None or steps is None:
        try:
            built_drivers, built_steps = build_registries(settings)
        except ConfigError as e:
            errors.append(ValidationIssue(code="plugin:invalid", loc="plugins", msg=str(e)))
            report.update(ok=False, errors=[x.as_dict() for x in errors], warnings=[])
            return report
        drivers = built_drivers if drivers is None else drivers
        steps = built_steps if steps is None else steps

    for spec in suite.resources:
        loc = f"resources.{spec.name}"
        try:
            stubs_path = spec.params.get("stubs_path")
            stubs = Stubs.load(stubs_path) if stubs_path else None
            drivers.create(spec, stubs=stubs)
        except TomatoError as e:
            errors.append(ValidationIssue(code="resource:invalid", loc=loc, msg=str(e)))

    scenarios = 0
    try:
        files = discover(suite.features_paths)
    except ConfigError as e:
        errors.append(ValidationIssue(code="feature:missing", loc="features_paths", msg=str(e)))
        files = []
    if not files and not errors:
        warnings.append(ValidationIssue(code="feature:none", loc="features_paths", msg="no feature files found"))

    for path in files:
        try:
            feature = parse_feature(path)
        except ConfigError as e:
            errors.append(ValidationIssue(code="feature:invalid", loc=path, msg=str(e)))
            continue
        if not feature.scenarios:
            warnings.append(ValidationIssue(code="feature:empty", loc=path, msg="feature has no scenarios"))
        for scenario in feature.scenarios:
            scenarios += 1
            for step in scenario.steps:
                loc = f"{path}:{step.line}" if step.line else path
                try:
                    steps.bind(step.text, step.argument)
                except UndefinedStep as e:
                    errors.append(ValidationIssue(code="step:undefined", loc=loc, msg=str(e)))
                except AmbiguousStep as e:
                    errors.append(ValidationIssue(code="step:ambiguous", loc=loc, msg=str(e)))
                except TomatoError as e:
                    errors.append(ValidationIssue(code="step:invalid", loc=loc, msg=str(e)))

    report.update(
        ok=len(errors) == 0,
        errors=[x.as_dict() for x in errors],
        warnings=[x.as_dict() for x in warnings],
        resources=len(suite.resources),
        features=len(files),
        scenarios=scenarios,
    )
    log.debug("validated %s: %d errors, %d warnings", config_path, len(errors), len(warnings))
    return report
