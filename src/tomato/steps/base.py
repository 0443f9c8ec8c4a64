from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from tomato.exception import InvalidTable

# Step statuses reported in step_end / scenario_end events.
PASSED = "passed"
FAILED = "failed"
SKIPPED = "skipped"
UNDEFINED = "undefined"
PENDING = "pending"
AMBIGUOUS = "ambiguous"

STATUSES = (PASSED, FAILED, SKIPPED, UNDEFINED, PENDING, AMBIGUOUS)

# Payload kinds a step pattern can require after its captures.
DOCSTRING = "docstring"
TABLE = "table"


@dataclass(frozen=True)
class DocString:
    content: str
    media_type: Optional[str] = None


@dataclass(frozen=True)
class DataTable:
    rows: Tuple[Tuple[str, ...], ...]

    @classmethod
    def from_cells(cls, rows: Sequence[Sequence[str]]) -> "DataTable":
        return cls(rows=tuple(tuple(str(c) for c in r) for r in rows))

    def as_rows(self) -> List[Dict[str, str]]:
        """Header row gives the keys; each following row becomes a row-map.

        Ragged rows raise InvalidTable.
        """
        if not self.rows:
            raise InvalidTable("table has no header row")
        header = self.rows[0]
        out: List[Dict[str, str]] = []
        for i, row in enumerate(self.rows[1:], start=1):
            if len(row) != len(header):
                raise InvalidTable(f"Invalid cells in row {i}: expected {len(header)} cells, got {len(row)}")
            out.append(dict(zip(header, row)))
        return out


def anchor(pattern: str) -> str:
    if not pattern.startswith("^"):
        pattern = "^" + pattern
    if not pattern.endswith("$"):
        pattern = pattern + "$"
    return pattern


@dataclass
class StepPattern:
    """One catalog entry: anchored regex, handler and argument types.

    `types` holds one coercion per capture group (str when shorter); `payload` is
    DOCSTRING or TABLE when the handler takes the step's trailing argument.
    """

    pattern: str
    handler: Callable[..., Any]
    capability: str
    types: Tuple[type, ...] = ()
    payload: Optional[str] = None
    group: str = ""
    description: str = ""
    example: str = ""
    regex: re.Pattern = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.pattern = anchor(self.pattern)
        self.regex = re.compile(self.pattern)

    @property
    def arity(self) -> int:
        return self.regex.groups + (1 if self.payload else 0)

    def coerce(self, captures: Sequence[str]) -> List[Any]:
        out: List[Any] = []
        for i, raw in enumerate(captures):
            typ = self.types[i] if i < len(self.types) else str
            out.append(typ(raw) if typ is not str else raw)
        return out

    def as_dict(self) -> dict:
        return {
            "pattern": self.pattern,
            "capability": self.capability,
            "group": self.group,
            "description": self.description,
            "example": self.example,
            "payload": self.payload,
        }
