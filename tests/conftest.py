import sys
from pathlib import Path

SRC = Path(__file__).resolve().parents[1] / "src"
# Run against the working tree even when the package is not installed.
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import pytest

from tomato.registry.drivers import DriverRegistry
from tomato.registry.steps import StepRegistry
from tomato.runtime.settings import Settings


@pytest.fixture()
def temp_dir(tmp_path):
    d = tmp_path / "suite"
    d.mkdir()
    return d


@pytest.fixture()
def settings():
    return Settings(plugin_paths=[], plugin_strict=True, log_level="INFO", poll_interval_ms=10)


@pytest.fixture()
def registries():
    """Built-in drivers and steps plus the in-memory fakes under driver `fake`."""
    from tomato.builtins import register_all

    from fakes import register_fakes

    drivers = DriverRegistry()
    steps = StepRegistry()
    register_all(drivers, steps)
    register_fakes(drivers)
    return drivers, steps
