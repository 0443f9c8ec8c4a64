from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from tomato.exception import ConfigError
from tomato.resolution import walk_and_render
from tomato.spec import SuiteSpec

log = logging.getLogger("tomato.config")


def _format_validation_error(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


def load_config(
    path: str | Path,
    *,
    env: Dict[str, str] | None = None,
    features_paths: Optional[List[str]] = None,
    overrides: Dict[str, Any] | None = None,
) -> SuiteSpec:
    """Read a suite YAML file, interpolate ${VAR}s from env and validate it.

    `features_paths` replaces the file's features_paths (the --features.path flag);
    `overrides` are applied on top of the raw mapping before validation.
    """
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"unable to read config {p}: {e}") from e
    try:
        raw = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {p}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"config {p} must be a mapping at the top level")

    env2 = {k: str(v) for k, v in os.environ.items()} if env is None else env
    raw = walk_and_render(raw, env2)
    if features_paths:
        raw.pop("features_path", None)
        raw["features_paths"] = list(features_paths)
    for k, v in (overrides or {}).items():
        if v is not None:
            raw[k] = v

    try:
        spec = SuiteSpec.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"invalid config {p}: {_format_validation_error(e)}") from e

    # Relative feature paths from the file are relative to the config file;
    # --features.path values are relative to the working directory.
    base = Path.cwd() if features_paths else p.resolve().parent
    resolved = [str(fp) if Path(fp).is_absolute() else str(base / fp) for fp in spec.features_paths]
    resources = []
    for r in spec.resources:
        stubs = r.params.get("stubs_path")
        if stubs and not Path(stubs).is_absolute():
            r = r.model_copy(update={"params": {**r.params, "stubs_path": str(p.resolve().parent / stubs)}})
        resources.append(r)
    spec = spec.model_copy(update={"features_paths": resolved, "resources": resources})
    log.debug("loaded config %s resources=%s", p, [r.name for r in spec.resources])
    return spec
