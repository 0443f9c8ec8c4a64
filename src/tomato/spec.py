from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.config import ConfigDict

# ---------------------------------------------------------------------------
# Capability tags
# ---------------------------------------------------------------------------

SQL = "database/sql"
HTTP_CLIENT = "http/client"
HTTP_SERVER = "http/server"
QUEUE = "queue"
CACHE = "cache"
SHELL = "shell"
FILESTORE = "filestore"

CAPABILITIES = (SQL, HTTP_CLIENT, HTTP_SERVER, QUEUE, CACHE, SHELL, FILESTORE)

# Older configs named the driver in `type`.
LEGACY_TYPES: Dict[str, tuple[str, str]] = {
    "postgres": (SQL, "postgres"),
    "mysql": (SQL, "mysql"),
    "rabbitmq": (QUEUE, "rabbitmq"),
    "nsq": (QUEUE, "nsq"),
    "wiremock": (HTTP_SERVER, "wiremock"),
    "httpclient": (HTTP_CLIENT, "http"),
    "redis": (CACHE, "redis"),
    "s3": (FILESTORE, "s3"),
}

# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any) -> float:
    """Parse `15s`, `500ms`, `1m30s` or a bare number of seconds into seconds."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raw = str(value or "").strip()
    if not raw:
        raise ValueError("empty duration")
    try:
        return float(raw)
    except ValueError:
        pass
    pos = 0
    total = 0.0
    for m in _DURATION_PART.finditer(raw):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _UNIT_SECONDS[m.group(2)]
        pos = m.end()
    if pos != len(raw) or pos == 0:
        raise ValueError(f"invalid duration: {raw!r}")
    return total


def _param_str(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


# ---------------------------------------------------------------------------
# Suite config
# ---------------------------------------------------------------------------


class ResourceSpec(BaseModel):
    """One configured resource. Immutable once loaded."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    type: str
    driver: Optional[str] = None
    params: Dict[str, str] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("resource name must not be empty")
        return v

    @field_validator("params", mode="before")
    @classmethod
    def _params_as_strings(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, dict):
            return {str(k): _param_str(val) for k, val in v.items()}
        return v

    @model_validator(mode="before")
    @classmethod
    def _legacy_type(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("type") in LEGACY_TYPES:
            data = dict(data)
            tag, driver = LEGACY_TYPES[data["type"]]
            data["type"] = tag
            data.setdefault("driver", driver)
        return data

    @field_validator("type")
    @classmethod
    def _known_type(cls, v: str) -> str:
        if v not in CAPABILITIES:
            raise ValueError(f"unknown resource type {v!r}; expected one of {list(CAPABILITIES)}")
        return v

    @property
    def driver_name(self) -> Optional[str]:
        return self.driver or self.params.get("driver") or None


class SuiteSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    resources: List[ResourceSpec]
    features_paths: List[str] = Field(default_factory=list, alias="features_path")
    stop_on_failure: bool = False
    randomize: bool = False
    seed: Optional[int] = None
    readiness_timeout: float = 15.0

    @field_validator("features_paths", mode="before")
    @classmethod
    def _paths_as_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()]
        return v

    @field_validator("readiness_timeout", mode="before")
    @classmethod
    def _timeout_duration(cls, v: Any) -> Any:
        if v is None or v == "":
            return 15.0
        return parse_duration(v)

    @model_validator(mode="after")
    def _unique_names(self) -> "SuiteSpec":
        seen: set[str] = set()
        for r in self.resources:
            if r.name in seen:
                raise ValueError(f"duplicate resource name: {r.name}")
            seen.add(r.name)
        return self
