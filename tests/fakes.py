"""In-memory drivers for tests; registered under driver name `fake`."""

from __future__ import annotations

import time
from typing import Any, Dict, List, Mapping, Optional

from tomato.exception import DriverError
from tomato.resources.base import ResourceInit, _Base
from tomato.spec import CACHE, QUEUE, SQL


class _Counting(_Base):
    PARAMS = frozenset({"fail_ready", "fail_reset", "fail_open", "open_delay"})

    def __init__(self, init: ResourceInit):
        super().__init__(init)
        self.calls: List[str] = []
        raw = self.param("fail_ready", "0")
        self._ready_failures = int(raw) if raw.isdigit() else 0

    def open(self) -> None:
        self.calls.append("open")
        delay = self.duration("open_delay")
        if delay:
            time.sleep(delay)
        if self.param("fail_open") == "true":
            raise DriverError("connection refused")

    def ready(self) -> None:
        self.calls.append("ready")
        if self.param("fail_ready") == "always":
            raise DriverError("still starting")
        if self._ready_failures > 0:
            self._ready_failures -= 1
            raise DriverError("still starting")

    def reset(self) -> None:
        self.calls.append("reset")
        if self.param("fail_reset") == "true":
            raise DriverError("truncate failed")
        self.clear()

    def clear(self) -> None:
        return None

    def close(self) -> None:
        self.calls.append("close")


def _matches(row: Mapping[str, Any], cond: Mapping[str, str]) -> bool:
    for k, v in cond.items():
        actual = row.get(k)
        if str(v).upper() == "NULL":
            if actual is not None:
                return False
        elif actual is None or str(actual) != str(v):
            return False
    return True


class FakeSQL(_Counting):
    def __init__(self, init: ResourceInit):
        super().__init__(init)
        self.tables: Dict[str, List[Dict[str, Any]]] = {}

    def clear(self) -> None:
        for rows in self.tables.values():
            rows.clear()

    def insert(self, table: str, rows: List[Dict[str, str]]) -> None:
        target = self.tables.setdefault(table, [])
        for row in rows:
            target.append({k: v for k, v in row.items() if v != "" and v.lower() != "null"})

    def select(self, table: str, cond: Mapping[str, str]) -> List[Dict[str, Any]]:
        return [dict(r) for r in self.tables.get(table, []) if _matches(r, cond)]

    def delete(self, table: str, cond: Mapping[str, str]) -> int:
        rows = self.tables.get(table, [])
        keep = [r for r in rows if not _matches(r, cond)]
        self.tables[table] = keep
        return len(rows) - len(keep)


class FakeQueue(_Counting):
    """Routes published payloads straight into the buffers of listened targets."""

    def __init__(self, init: ResourceInit):
        super().__init__(init)
        self.buffers: Dict[str, List[bytes]] = {}

    def clear(self) -> None:
        self.buffers.clear()

    def listen(self, target: str) -> None:
        self.buffers.setdefault(target, [])

    def publish(self, target: str, payload: bytes) -> None:
        if target in self.buffers:
            self.buffers[target].append(bytes(payload))

    def publish_from_file(self, target: str, stub_name: str) -> None:
        self.publish(target, self.stub(stub_name))

    def fetch(self, target: str) -> List[bytes]:
        if target not in self.buffers:
            raise DriverError(f"queue not exist, please listen to it {target}")
        return list(self.buffers[target])


class FakeCache(_Counting):
    def __init__(self, init: ResourceInit):
        super().__init__(init)
        self.data: Dict[str, str] = {}

    def clear(self) -> None:
        self.data.clear()

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def exists(self, key: str) -> bool:
        return key in self.data


def register_fakes(drivers) -> None:
    drivers.add(SQL, "fake", FakeSQL)
    drivers.add(QUEUE, "fake", FakeQueue)
    drivers.add(CACHE, "fake", FakeCache)
