from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple, Union

from tomato.exception import AmbiguousStep, TomatoError, UndefinedStep
from tomato.steps.base import DOCSTRING, TABLE, DataTable, DocString, StepPattern, anchor

Argument = Union[DocString, DataTable, None]


@dataclass
class BoundStep:
    step: StepPattern
    args: List[Any]

    def invoke(self, ctx: Any) -> Any:
        return self.step.handler(ctx, *self.args)


class StepRegistry:
    """
    Ordered catalog of step patterns; the most recently registered pattern is
    scanned first.

    Supports decorator registration:
        @registry.step(r'"([^"]*)" response code should be (\\d+)', capability="http/client", types=(str, int))
        def response_code(resources, name, code): ...

    Registering the same anchored pattern again with the same handler is a no-op;
    with a different handler it raises AmbiguousStep. The catalog is closed once
    scenario execution begins.
    """

    def __init__(self) -> None:
        self._items: List[StepPattern] = []
        self._closed = False

    def add(
        self,
        pattern: str,
        handler: Callable[..., Any],
        *,
        capability: str,
        types: Tuple[type, ...] = (),
        payload: Optional[str] = None,
        group: str = "",
        description: str = "",
        example: str = "",
    ) -> StepPattern:
        if self._closed:
            raise TomatoError(f"step catalog is closed; cannot register {pattern!r}")
        if payload not in (None, DOCSTRING, TABLE):
            raise ValueError(f"unknown step payload kind: {payload!r}")
        anchored = anchor(pattern)
        for existing in self._items:
            if existing.pattern == anchored:
                if existing.handler is handler:
                    return existing
                raise AmbiguousStep(f"step pattern already registered: {anchored}")
        sp = StepPattern(
            pattern=anchored,
            handler=handler,
            capability=capability,
            types=tuple(types),
            payload=payload,
            group=group,
            description=description,
            example=example,
        )
        self._items.insert(0, sp)
        return sp

    def step(self, pattern: str, **kw: Any):
        def deco(fn):
            self.add(pattern, fn, **kw)
            return fn
        return deco

    def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def list(self, capability: Optional[str] = None) -> list[StepPattern]:
        items = self._items if capability is None else [s for s in self._items if s.capability == capability]
        return list(items)

    def __len__(self) -> int:
        return len(self._items)

    def match(self, text: str) -> Tuple[StepPattern, Tuple[str, ...]]:
        found: List[Tuple[StepPattern, Tuple[str, ...]]] = []
        for sp in self._items:
            m = sp.regex.match(text)
            if m is not None:
                found.append((sp, m.groups()))
        if not found:
            raise UndefinedStep(f"undefined step: {text}")
        if len(found) > 1:
            pats = ", ".join(sp.pattern for sp, _ in found)
            raise AmbiguousStep(f"ambiguous step: {text} matches {pats}")
        return found[0]

    def bind(self, text: str, argument: Argument = None) -> BoundStep:
        """Match `text` and bind captures plus the trailing DocString/DataTable."""
        sp, captures = self.match(text)
        try:
            args = sp.coerce(captures)
        except ValueError as e:
            raise TomatoError(f"invalid step argument in {text!r}: {e}") from e

        if sp.payload == DOCSTRING:
            if not isinstance(argument, DocString):
                raise TomatoError(f"step requires a doc string: {text}")
            args.append(argument.content)
        elif sp.payload == TABLE:
            if not isinstance(argument, DataTable):
                raise TomatoError(f"step requires a data table: {text}")
            args.append(argument.as_rows())
        elif argument is not None:
            kind = "doc string" if isinstance(argument, DocString) else "data table"
            raise TomatoError(f"step does not take a {kind}: {text}")
        return BoundStep(step=sp, args=args)
