"""Third-party drivers and steps.

A plugin is anything exposing `register(drivers, steps)`: a module found under
one of TOMATO_PLUGIN_PATHS, or an object behind a `tomato.plugins` entry point
(a module with `register`, or the callable itself).

In strict mode (the default) a plugin that fails to load is a ConfigError;
otherwise it is logged and skipped.
"""

from __future__ import annotations

import importlib.util
import logging
import sys
from importlib.metadata import entry_points
from pathlib import Path
from typing import Iterable, Iterator

from tomato.exception import ConfigError
from tomato.registry.drivers import DriverRegistry
from tomato.registry.steps import StepRegistry

log = logging.getLogger("tomato.plugins")

ENTRY_POINT_GROUP = "tomato.plugins"
MODULE_PREFIX = "tomato_user_plugin_"


def _failed(what: str, exc: BaseException, *, strict: bool) -> None:
    if strict:
        raise ConfigError(f"Failed loading {what}: {exc}") from exc
    log.warning("failed loading %s; continuing", what, exc_info=True)


def _register(obj, drivers: DriverRegistry, steps: StepRegistry) -> None:
    fn = getattr(obj, "register", None)
    if not callable(fn):
        fn = obj if callable(obj) else None
    if fn is None:
        raise TypeError(f"{obj!r} is neither callable nor has register()")
    fn(drivers, steps)


def load_plugins_from_entrypoints(
    drivers: DriverRegistry,
    steps: StepRegistry,
    group: str = ENTRY_POINT_GROUP,
    *,
    strict: bool = True,
) -> None:
    try:
        found = list(entry_points().select(group=group))
    except Exception as e:
        _failed(f"entry points for group={group}", e, strict=strict)
        return
    for ep in found:
        try:
            _register(ep.load(), drivers, steps)
        except Exception as e:
            _failed(f"entry point plugin {ep.name}", e, strict=strict)
            continue
        log.debug("loaded plugin entry point %s", ep.name)


def _plugin_files(root: Path) -> Iterator[Path]:
    if root.is_file():
        yield root
        return
    # _private.py helpers are imported by plugins themselves, never registered
    yield from (p for p in sorted(root.rglob("*.py")) if not p.name.startswith("_"))


def _import_file(py: Path):
    name = MODULE_PREFIX + "_".join(py.with_suffix("").parts[-4:])
    spec = importlib.util.spec_from_file_location(name, py)
    if spec is None or spec.loader is None:
        raise ImportError(f"cannot import {py}")
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)
    return mod


def load_plugins_from_paths(
    paths: Iterable[str],
    drivers: DriverRegistry,
    steps: StepRegistry,
    *,
    strict: bool = True,
) -> None:
    for raw in filter(None, paths):
        root = Path(raw).expanduser().resolve()
        if not root.exists():
            if strict:
                raise ConfigError(f"Plugin path not found: {root}")
            log.warning("plugin path not found; skipping path=%s", root)
            continue
        # plugin files may import their siblings
        base = str(root if root.is_dir() else root.parent)
        if base not in sys.path:
            sys.path.insert(0, base)
        for py in _plugin_files(root):
            try:
                mod = _import_file(py)
                if callable(getattr(mod, "register", None)):
                    mod.register(drivers, steps)
            except Exception as e:
                _failed(f"plugin file: {py}", e, strict=strict)
                continue
            log.debug("loaded plugin file %s", py)


def load_all_plugins(drivers: DriverRegistry, steps: StepRegistry, *, settings) -> None:
    load_plugins_from_entrypoints(drivers, steps, strict=settings.plugin_strict)
    load_plugins_from_paths(settings.plugin_paths, drivers, steps, strict=settings.plugin_strict)
