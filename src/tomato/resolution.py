"""Environment interpolation for suite configs.

Tokens:
- ${VAR}

VAR = IDENT. Unresolved variables render as an empty string. Only strings are
rendered; other primitives are returned as-is. A `$` not followed by `{IDENT}`
is left untouched.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping

log = logging.getLogger("tomato.resolution")

_TOKEN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def render_string(value: str, env: Mapping[str, str]) -> str:
    def _sub(m: re.Match) -> str:
        key = m.group(1)
        if key not in env:
            log.debug("unresolved config variable %s; using empty string", key)
            return ""
        return str(env[key])

    return _TOKEN.sub(_sub, value)


def walk_and_render(obj: Any, env: Mapping[str, str]) -> Any:
    """Deep-walk dict/list structures and render every string scalar."""
    if isinstance(obj, str):
        return render_string(obj, env)
    if isinstance(obj, dict):
        return {k: walk_and_render(v, env) for k, v in obj.items()}
    if isinstance(obj, list):
        return [walk_and_render(v, env) for v in obj]
    return obj
