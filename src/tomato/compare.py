"""Comparison helpers shared by the step handlers.

JSON rules:
- expected "*" matches any actual value
- both sides must have the same JSON type (int and float are both numbers)
- arrays must have the same length and are compared index by index
- contain: every expected key must exist and match; extra actual keys are fine
- equal: contain in both directions (no extra keys on either side)
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Sequence

WILDCARD = "*"


def _type_name(v: Any) -> str:
    if v is None:
        return "null"
    if isinstance(v, bool):
        return "bool"
    if isinstance(v, (int, float)):
        return "number"
    if isinstance(v, str):
        return "string"
    if isinstance(v, list):
        return "array"
    if isinstance(v, dict):
        return "object"
    return type(v).__name__


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def diff_values(expected: Any, actual: Any, *, exact: bool, path: str = "") -> List[str]:
    """Return a list of mismatch descriptions; empty when `actual` satisfies `expected`."""
    if isinstance(expected, str) and expected == WILDCARD:
        return []
    te, ta = _type_name(expected), _type_name(actual)
    loc = path or "$"
    if te != ta:
        return [f"{loc}: type mismatch (expected {te}, got {ta})"]

    if te == "object":
        out: List[str] = []
        for k, ev in expected.items():
            if k not in actual:
                out.append(f"{_join(path, k)}: key missing")
                continue
            out.extend(diff_values(ev, actual[k], exact=exact, path=_join(path, k)))
        if exact:
            for k in actual:
                if k not in expected:
                    out.append(f"{_join(path, k)}: unexpected key")
        return out

    if te == "array":
        out = []
        if len(expected) != len(actual):
            out.append(f"{loc}: array length mismatch (expected {len(expected)}, got {len(actual)})")
        for i, (ev, av) in enumerate(zip(expected, actual)):
            out.extend(diff_values(ev, av, exact=exact, path=f"{path}[{i}]"))
        return out

    if expected != actual:
        return [f"{loc}: value mismatch (expected {expected!r}, got {actual!r})"]
    return []


def _load(raw: bytes | str, side: str) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{side} is not valid JSON: {e}") from e


def json_diff(expected: bytes | str, actual: bytes | str, *, exact: bool) -> List[str]:
    return diff_values(_load(expected, "expected"), _load(actual, "actual"), exact=exact)


def json_equal(expected: bytes | str, actual: bytes | str) -> List[str]:
    return json_diff(expected, actual, exact=True)


def json_contain(expected: bytes | str, actual: bytes | str) -> List[str]:
    return json_diff(expected, actual, exact=False)


def is_json(raw: bytes | str) -> bool:
    try:
        json.loads(raw)
        return True
    except (TypeError, ValueError):
        return False


def body_diff(expected: str, actual: bytes, *, exact: bool) -> List[str]:
    """JSON compare when `expected` is JSON, plain text otherwise.

    Text equal compares stripped content; text contain is a substring check.
    """
    if is_json(expected):
        return json_diff(expected, actual, exact=exact)
    text = actual.decode("utf-8", errors="replace")
    if exact:
        return [] if text.strip() == expected.strip() else ["body text differs"]
    return [] if expected in text else [f"body does not contain {expected!r}"]


def messages_match(expected: bytes | str, messages: Sequence[bytes], *, exact: bool) -> List[str]:
    """Queue compare: equal needs every message to match, contain needs any.

    Returns the mismatches of the closest failing message (empty on success).
    """
    if not messages:
        return ["no message on queue"]
    exp = _load(expected, "expected")
    diffs: List[List[str]] = []
    for m in messages:
        try:
            act: Any = json.loads(m)
        except (TypeError, ValueError):
            act = m.decode("utf-8", errors="replace") if isinstance(m, (bytes, bytearray)) else m
        d = diff_values(exp, act, exact=exact)
        if not d and not exact:
            return []
        diffs.append(d)
    failing = [d for d in diffs if d]
    if not failing:
        return []
    return min(failing, key=len)


def strip_wildcards(row: Mapping[str, str]) -> Dict[str, str]:
    return {k: v for k, v in row.items() if v != WILDCARD}
