"""Centralized exceptions for tomato.

Every error raised by the runner, the registries and the drivers derives from
:class:`TomatoError`. An error keeps its root cause on ``__cause__`` and an
ordered list of context frames (outermost first), so callers add context with
``err.wrap("frame")`` instead of concatenating strings:

    try:
        resource.reset()
    except TomatoError as e:
        raise e.wrap(f"reset {name}")

``str(err)`` renders ``frame: frame: message``.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional

__all__ = [
    "TomatoError",
    "ConfigError",
    "ConnectError",
    "ReadinessTimeout",
    "ResetError",
    "ResourceNotFound",
    "StepAssertion",
    "DriverError",
    "UndefinedStep",
    "AmbiguousStep",
    "InvalidTable",
    "StubNotFound",
]


class TomatoError(RuntimeError):
    """Base error: a message plus ordered context frames."""

    def __init__(self, message: str = "", *, frames: Iterable[str] | None = None):
        super().__init__(message)
        self.message = message
        self.frames: list[str] = list(frames or [])

    def wrap(self, frame: str) -> "TomatoError":
        self.frames.insert(0, frame)
        return self

    @property
    def root_cause(self) -> BaseException:
        cur: BaseException = self
        while cur.__cause__ is not None:
            cur = cur.__cause__
        return cur

    def __str__(self) -> str:
        return ": ".join([*self.frames, self.message]) if self.frames else self.message


class ConfigError(TomatoError, ValueError):
    """Malformed config, unknown type/driver, missing or unknown params."""


class ConnectError(TomatoError):
    """A driver failed to open its connection."""


class ReadinessTimeout(TomatoError):
    """One or more resources did not become ready before the deadline."""

    def __init__(self, lagging: Dict[str, Optional[BaseException]], *, timeout: float):
        self.lagging = dict(lagging)
        self.timeout = timeout
        parts = []
        for name, err in self.lagging.items():
            parts.append(f"{name} ({err})" if err is not None else name)
        super().__init__(f"resources not ready after {timeout:g}s: {', '.join(parts)}")


class ResetError(TomatoError):
    def __init__(self, resource: str, cause: BaseException):
        self.resource = resource
        self.cause = cause
        super().__init__(f"reset {resource}: {cause}")


class ResourceNotFound(TomatoError, KeyError):
    """A step referenced a resource name that is not configured."""


class StepAssertion(TomatoError):
    """Expected-vs-actual mismatch raised by a step handler.

    ``details`` is an ordered mapping rendered below the message, e.g.::

        unable to find rows in table `users`
          expected row : {'name': 'bob'}
          table values : [{'name': 'alice'}]
    """

    def __init__(self, message: str, details: Dict[str, object] | None = None):
        super().__init__(message)
        self.details: Dict[str, object] = dict(details or {})

    def __str__(self) -> str:
        head = super().__str__()
        if not self.details:
            return head
        width = max(len(k) for k in self.details)
        lines = [head]
        for k, v in self.details.items():
            text = str(v).replace("\n", "\n" + " " * (width + 5))
            lines.append(f"  {k.ljust(width)} : {text}")
        return "\n".join(lines)


class DriverError(TomatoError):
    """I/O or protocol failure inside a driver call."""


class UndefinedStep(TomatoError):
    pass


class AmbiguousStep(TomatoError):
    pass


class InvalidTable(TomatoError, ValueError):
    """A DataTable has ragged rows or no header."""


class StubNotFound(TomatoError, KeyError):
    pass
