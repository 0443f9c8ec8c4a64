from __future__ import annotations

from typing import Dict, Optional, Type

from tomato.exception import ConfigError
from tomato.resources.base import COMMON_PARAMS, ResourceInit
from tomato.spec import CAPABILITIES, ResourceSpec
from tomato.stubs import Stubs


class DriverRegistry:
    """
    Two-level table: capability type -> driver name -> driver class.

    Supports decorator registration:
        @registry.register("queue", "rabbitmq")
        class RabbitMQQueue: ...

    And factory instantiation from a resource config:
        res = registry.create(spec, stubs=...)
    """

    def __init__(self) -> None:
        self._items: Dict[str, Dict[str, Type]] = {}

    def add(self, type_: str, driver: str, cls: Type) -> Type:
        if type_ not in CAPABILITIES:
            raise ConfigError(f"unknown capability type {type_!r} for driver {driver!r}")
        self._items.setdefault(type_, {})[driver] = cls
        return cls

    def register(self, type_: str, driver: str):
        def deco(cls):
            return self.add(type_, driver, cls)
        return deco

    def get(self, type_: str, driver: str) -> Type:
        drivers = self._items.get(type_)
        if not drivers:
            raise ConfigError(f"Unknown resource type: {type_}. Loaded: {self.list()}")
        if driver not in drivers:
            raise ConfigError(f"Unknown driver: {type_}:{driver}. Loaded: {self.list()}")
        return drivers[driver]

    def drivers(self, type_: str) -> list[str]:
        return sorted(self._items.get(type_, {}))

    def list(self) -> list[str]:
        return sorted(f"{t}:{d}" for t, ds in self._items.items() for d in ds)

    def resolve_driver(self, spec: ResourceSpec) -> str:
        driver = spec.driver_name
        if driver:
            return driver
        available = self.drivers(spec.type)
        if len(available) == 1:
            return available[0]
        if not available:
            raise ConfigError(f"resource {spec.name}: no drivers registered for type {spec.type}")
        raise ConfigError(
            f"resource {spec.name}: type {spec.type} has multiple drivers {available}; set params.driver"
        )

    def create(self, spec: ResourceSpec, *, stubs: Optional[Stubs] = None):
        """Validate params strictly against the driver and construct it (no I/O)."""
        driver = self.resolve_driver(spec)
        cls = self.get(spec.type, driver)

        allowed = set(COMMON_PARAMS) | set(getattr(cls, "PARAMS", ()))
        unknown = sorted(k for k in spec.params if k not in allowed)
        if unknown:
            raise ConfigError(
                f"resource {spec.name}: unknown params {unknown} for {spec.type}:{driver}; allowed {sorted(allowed)}"
            )
        missing = sorted(k for k in getattr(cls, "REQUIRED", ()) if not spec.params.get(k))
        if missing:
            raise ConfigError(f"resource {spec.name}: missing required params {missing} for {spec.type}:{driver}")

        init = ResourceInit(name=spec.name, type=spec.type, driver=driver, params=dict(spec.params), stubs=stubs)
        try:
            return cls(init)
        except ConfigError:
            raise
        except ValueError as e:
            raise ConfigError(f"resource {spec.name}: {e}") from e
