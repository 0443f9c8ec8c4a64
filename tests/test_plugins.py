from __future__ import annotations

import textwrap

import pytest

from tomato.exception import ConfigError
from tomato.plugins import load_plugins_from_paths
from tomato.registry.drivers import DriverRegistry
from tomato.registry.steps import StepRegistry
from tomato.runner import build_registries
from tomato.spec import CACHE


PLUGIN = textwrap.dedent(
    '''
    from tomato.resources.base import _Base


    class EchoCache(_Base):
        PARAMS = frozenset({"prefix"})

        def set(self, key, value):
            pass

        def get(self, key):
            return self.param("prefix", "") + key

        def exists(self, key):
            return True


    def register(drivers, steps):
        drivers.add("cache", "echo", EchoCache)
        steps.add(r'"([^"]*)" echoes', lambda resources, name: None, capability="cache")
    '''
)


def test_path_plugin_registers_drivers_and_steps(temp_dir):
    (temp_dir / "echo_plugin.py").write_text(PLUGIN, encoding="utf-8")
    (temp_dir / "_private.py").write_text("raise RuntimeError('never imported')\n", encoding="utf-8")
    drivers, steps = DriverRegistry(), StepRegistry()

    load_plugins_from_paths([str(temp_dir)], drivers, steps)

    assert drivers.drivers(CACHE) == ["echo"]
    assert steps.match('"x" echoes')[0].capability == CACHE


def test_broken_plugin_strict_vs_lenient(temp_dir, caplog):
    (temp_dir / "broken.py").write_text("import tomato_definitely_missing\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Failed loading plugin file"):
        load_plugins_from_paths([str(temp_dir)], DriverRegistry(), StepRegistry(), strict=True)

    load_plugins_from_paths([str(temp_dir)], DriverRegistry(), StepRegistry(), strict=False)
    assert "continuing" in caplog.text


def test_missing_plugin_path(temp_dir):
    with pytest.raises(ConfigError, match="Plugin path not found"):
        load_plugins_from_paths([str(temp_dir / "nope")], DriverRegistry(), StepRegistry())


def test_build_registries_loads_configured_plugins(temp_dir, settings):
    (temp_dir / "echo_plugin.py").write_text(PLUGIN, encoding="utf-8")

    drivers, steps = build_registries(settings.model_copy(update={"plugin_paths": [str(temp_dir)]}))

    assert "echo" in drivers.drivers(CACHE)
    assert "redis" in drivers.drivers(CACHE)
