from __future__ import annotations

import logging
from typing import Optional

from tomato.resources import require
from tomato.resources.base import ResourceInit, _Base

log = logging.getLogger("tomato.builtins.drivers.redis")


class RedisCache(_Base):
    """Key-value cache backed by redis-py; reset is FLUSHDB on the selected db."""

    PARAMS = frozenset({"datasource"})
    REQUIRED = frozenset({"datasource"})

    def __init__(self, init: ResourceInit):
        super().__init__(init)
        self._client = None

    def open(self) -> None:
        if self._client is not None:
            return
        redis = require("redis")
        try:
            self._client = redis.Redis.from_url(self.params["datasource"], decode_responses=True)
        except ValueError as e:
            raise self._fail("open", e) from e

    def _redis(self):
        if self._client is None:
            self.open()
        return self._client

    def ready(self) -> None:
        self._call("ping", lambda c: c.ping())

    def reset(self) -> None:
        self._call("flushdb", lambda c: c.flushdb())

    def close(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            finally:
                self._client = None

    def _call(self, operation: str, fn):
        redis = require("redis")
        try:
            return fn(self._redis())
        except redis.RedisError as e:
            raise self._fail(operation, e) from e

    def set(self, key: str, value: str) -> None:
        self._call("set", lambda c: c.set(key, value))

    def get(self, key: str) -> Optional[str]:
        v = self._call("get", lambda c: c.get(key))
        return None if v is None else str(v)

    def exists(self, key: str) -> bool:
        return bool(self._call("exists", lambda c: c.exists(key)))
