from __future__ import annotations

import importlib

from tomato.exception import DriverError


def require(target: str):
    """Import a driver dependency lazily.

    `require("pika")` returns the module, `require("botocore.config:Config")`
    returns the attribute. A missing package surfaces as a DriverError on first
    use of the resource, so configs that never use a driver need not install it.
    """
    module_name, _, attr = target.partition(":")
    try:
        mod = importlib.import_module(module_name)
        return getattr(mod, attr) if attr else mod
    except (ImportError, AttributeError) as e:
        raise DriverError(f"driver dependency missing: {target}; install it to use this resource") from e
