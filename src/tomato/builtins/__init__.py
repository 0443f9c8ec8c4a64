"""Built-in drivers and step handlers.

`register_all(drivers, steps)` wires every built-in into explicit registries;
nothing registers itself on import.
"""

from __future__ import annotations

from tomato.builtins import drivers as _drivers
from tomato.builtins import steps as _steps


def register_all(drivers, steps) -> None:
    _drivers.register_all(drivers)
    _steps.register_all(steps)
