from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

from tomato.exception import DriverError
from tomato.spec import CACHE, FILESTORE, HTTP_CLIENT, HTTP_SERVER, QUEUE, SHELL, SQL, parse_duration
from tomato.stubs import Stubs

log = logging.getLogger("tomato.resources")

# Params every driver accepts in addition to its own.
COMMON_PARAMS = frozenset({"driver", "stubs_path", "readiness_check"})


@runtime_checkable
class Resource(Protocol):
    """
    Lifecycle contract every driver satisfies.

    open() dials the service, ready() probes it, reset() restores a clean
    baseline between scenarios and close() releases every socket, channel and
    file handle acquired by the driver. Calls come from a single caller.
    """

    name: str
    type: str
    driver: str
    params: Dict[str, str]

    def open(self) -> None: ...
    def ready(self) -> None: ...
    def reset(self) -> None: ...
    def close(self) -> None: ...


@runtime_checkable
class SQLStore(Resource, Protocol):
    def insert(self, table: str, rows: List[Dict[str, str]]) -> None: ...
    def select(self, table: str, cond: Mapping[str, str]) -> List[Dict[str, Any]]: ...
    def delete(self, table: str, cond: Mapping[str, str]) -> int: ...


@runtime_checkable
class HTTPClient(Resource, Protocol):
    def set_request_header(self, key: str, value: str) -> None: ...
    def request(self, method: str, path: str, body: bytes | None = None) -> None: ...
    def request_from_file(self, method: str, path: str, stub_name: str) -> None: ...
    def response(self) -> Tuple[int, Dict[str, str], bytes]: ...


@runtime_checkable
class HTTPServer(Resource, Protocol):
    def set_response(self, method: str, path: str, code: int, body: bytes) -> None: ...
    def set_response_from_file(self, method: str, path: str, code: int, stub_name: str) -> None: ...
    def get_requests_count(self, method: str, path: str) -> int: ...


@runtime_checkable
class Queue(Resource, Protocol):
    def listen(self, target: str) -> None: ...
    def publish(self, target: str, payload: bytes) -> None: ...
    def publish_from_file(self, target: str, stub_name: str) -> None: ...
    def fetch(self, target: str) -> List[bytes]: ...


@runtime_checkable
class Cache(Resource, Protocol):
    def set(self, key: str, value: str) -> None: ...
    def get(self, key: str) -> Optional[str]: ...
    def exists(self, key: str) -> bool: ...


@runtime_checkable
class Shell(Resource, Protocol):
    def exec(self, command: str, *args: str) -> None: ...
    def stdout(self) -> str: ...
    def stderr(self) -> str: ...
    def exit_code(self) -> int: ...


@runtime_checkable
class FileStore(Resource, Protocol):
    def download(self, bucket: str, key: str, output_path: str) -> None: ...
    def upload(self, target: str, payload: bytes) -> int: ...
    def delete(self, target: str) -> None: ...
    def list(self) -> Any: ...


CAPABILITY_PROTOCOLS: Dict[str, type] = {
    SQL: SQLStore,
    HTTP_CLIENT: HTTPClient,
    HTTP_SERVER: HTTPServer,
    QUEUE: Queue,
    CACHE: Cache,
    SHELL: Shell,
    FILESTORE: FileStore,
}


@dataclass
class ResourceInit:
    name: str
    type: str
    driver: str
    params: Dict[str, str]
    stubs: Optional[Stubs] = None


class _Base:
    """Small concrete base for built-in drivers (keeps init consistent).

    Subclasses declare PARAMS (accepted keys) and REQUIRED (mandatory keys); the
    driver registry enforces both before construction.
    """

    PARAMS: frozenset[str] = frozenset()
    REQUIRED: frozenset[str] = frozenset()

    def __init__(self, init: ResourceInit):
        self.name = init.name
        self.type = init.type
        self.driver = init.driver
        self.params = dict(init.params or {})
        self.stubs = init.stubs

    def param(self, key: str, default: str | None = None) -> str | None:
        v = self.params.get(key)
        return default if v is None or v == "" else v

    def duration(self, key: str, default: float | None = None) -> float | None:
        v = self.param(key)
        return default if v is None else parse_duration(v)

    def stub(self, stub_name: str) -> bytes:
        if self.stubs is None:
            raise DriverError(f"{self.name}: no stubs_path configured; cannot load stub {stub_name!r}")
        return self.stubs.get(stub_name)

    def open(self) -> None:
        return None

    def ready(self) -> None:
        return None

    def reset(self) -> None:
        return None

    def close(self) -> None:
        return None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            self.close()
        except Exception:
            log.warning("non-critical resource operation failed; continuing", exc_info=True)

    def _fail(self, operation: str, exc: BaseException) -> DriverError:
        return DriverError(str(exc) or type(exc).__name__, frames=[self.name, operation])


def iter_protocol_methods(proto: type) -> Iterable[str]:
    """Names of the operations a capability Protocol declares beyond the lifecycle."""
    base = set(dir(Resource))
    for name in dir(proto):
        if name.startswith("_") or name in base:
            continue
        if callable(getattr(proto, name, None)):
            yield name
