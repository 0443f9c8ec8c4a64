from __future__ import annotations

import os
from typing import List, Mapping

from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "TOMATO_"


def _flag(raw: str | None, default: bool) -> bool:
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Process-level knobs, separate from the suite config.

    Defaults are static; `load_settings(env=...)` reads the TOMATO_* variables
    from an env snapshot so tests never depend on os.environ.
    """

    plugin_paths: List[str] = Field(default_factory=list)
    plugin_strict: bool = True
    log_level: str = "INFO"

    # "text" (default) or "json": one JSON object per structured log line.
    log_format: str = "text"

    # Pause between Open/Ready attempts while waiting for resources.
    poll_interval_ms: int = 300

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, v: str) -> str:
        v = (v or "text").lower()
        if v not in ("text", "json"):
            raise ValueError(f"log_format must be text or json, got {v!r}")
        return v

    @classmethod
    def from_env(cls, env: Mapping[str, str], overrides: dict | None = None) -> "Settings":
        """Build Settings from an explicit env snapshot (does not read os.environ)."""
        def var(key: str) -> str | None:
            return env.get(ENV_PREFIX + key)

        data: dict = {
            "plugin_paths": [p.strip() for p in (var("PLUGIN_PATHS") or "").split(",") if p.strip()],
            "plugin_strict": _flag(var("PLUGIN_STRICT"), True),
        }
        if var("LOG_LEVEL"):
            data["log_level"] = var("LOG_LEVEL")
        if var("LOG_FORMAT"):
            data["log_format"] = var("LOG_FORMAT")
        if var("POLL_INTERVAL_MS"):
            data["poll_interval_ms"] = int(var("POLL_INTERVAL_MS"))
        data.update(overrides or {})
        return cls(**data)

    @property
    def poll_interval(self) -> float:
        return max(self.poll_interval_ms, 1) / 1000.0


def load_settings(overrides: dict | None = None, *, env: Mapping[str, str] | None = None) -> Settings:
    """Settings from an env snapshot (os.environ when omitted) plus explicit overrides."""
    snapshot = {k: str(v) for k, v in os.environ.items()} if env is None else env
    return Settings.from_env(snapshot, overrides)
