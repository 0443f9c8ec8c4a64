from __future__ import annotations

import pytest

from tomato.resources.base import CAPABILITY_PROTOCOLS, COMMON_PARAMS, iter_protocol_methods
from tomato.spec import CAPABILITIES


@pytest.mark.contract
def test_every_capability_has_a_builtin_driver(registries):
    drivers, _steps = registries
    for cap in CAPABILITIES:
        assert drivers.drivers(cap), f"no driver for {cap}"


@pytest.mark.contract
def test_builtin_drivers_implement_their_capability(registries):
    drivers, _steps = registries
    for cap, proto in CAPABILITY_PROTOCOLS.items():
        methods = list(iter_protocol_methods(proto))
        assert methods, cap
        for name in drivers.drivers(cap):
            cls = drivers.get(cap, name)
            for m in ("open", "ready", "reset", "close", *methods):
                assert callable(getattr(cls, m, None)), f"{cap}:{name} lacks {m}"


@pytest.mark.contract
def test_driver_params_do_not_shadow_common_params(registries):
    drivers, _steps = registries
    for entry in drivers.list():
        cap, name = entry.split(":", 1)
        cls = drivers.get(cap, name)
        assert set(cls.REQUIRED) <= set(cls.PARAMS), entry
        assert not (set(cls.PARAMS) & COMMON_PARAMS), entry


@pytest.mark.contract
def test_every_capability_has_steps(registries):
    _drivers, steps = registries
    for cap in CAPABILITIES:
        assert steps.list(cap), f"no steps for {cap}"
