from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional

from tomato.concurrency import run_with_deadline
from tomato.exception import ConnectError, ReadinessTimeout, ResetError, ResourceNotFound, TomatoError
from tomato.observability import log_event
from tomato.registry.drivers import DriverRegistry
from tomato.runtime.settings import Settings
from tomato.spec import CACHE, FILESTORE, HTTP_CLIENT, HTTP_SERVER, QUEUE, SHELL, SQL, ResourceSpec
from tomato.stubs import Stubs

log = logging.getLogger("tomato.resources.manager")

# Handle states.
UNOPENED = "unopened"
OPEN = "open"
READY = "ready"
CLOSED = "closed"
FAILED = "failed"


class ResourceHandle:
    """Binds a ResourceSpec to a live driver and runs its lifecycle.

    Unopened -> Open -> Ready -> Closed, with Failed absorbing everything but
    close(). open() is idempotent, ready() requires a successful open(),
    reset() requires ready() and close() is idempotent from any state.
    """

    def __init__(self, spec: ResourceSpec, resource: Any) -> None:
        self.spec = spec
        self.resource = resource
        self.state = UNOPENED
        self.last_error: Optional[BaseException] = None
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def type(self) -> str:
        return self.spec.type

    @property
    def readiness_check(self) -> bool:
        return (self.spec.params.get("readiness_check") or "true").strip().lower() != "false"

    def _in_flight(self, what: str) -> None:
        # what ReadinessTimeout reports if the deadline passes mid-call
        if self.last_error is None:
            self.last_error = ConnectError(f"{what} still in progress", frames=[self.name])

    def open(self) -> None:
        # the lock guards state only; driver I/O runs outside it
        with self._lock:
            if self.state in (OPEN, READY):
                return
            if self.state in (CLOSED, FAILED):
                raise ConnectError(f"cannot open a {self.state} resource", frames=[self.name])
            self._in_flight("open")
        try:
            self.resource.open()
        except Exception as e:
            with self._lock:
                self.last_error = e
            raise ConnectError(str(e), frames=[self.name, "open"]) from e
        with self._lock:
            if self.state == UNOPENED:
                self.state = OPEN
                return
            closed_meanwhile = self.state == CLOSED
        if closed_meanwhile:
            self._close_resource()

    def ready(self) -> None:
        with self._lock:
            if self.state == READY:
                return
            if self.state != OPEN:
                raise TomatoError(f"ready called on a {self.state} resource", frames=[self.name])
            self._in_flight("ready")
        if self.readiness_check:
            try:
                self.resource.ready()
            except Exception as e:
                with self._lock:
                    self.last_error = e
                raise
        with self._lock:
            if self.state == OPEN:
                self.state = READY
                self.last_error = None

    def reset(self) -> None:
        if self.state != READY:
            raise ResetError(self.name, TomatoError(f"reset called on a {self.state} resource"))
        try:
            self.resource.reset()
        except Exception as e:
            raise ResetError(self.name, e) from e

    def fail(self) -> None:
        with self._lock:
            if self.state != CLOSED:
                self.state = FAILED

    def _close_resource(self) -> None:
        try:
            self.resource.close()
        except Exception:
            log.warning("resource close after late open failed; continuing resource=%s", self.name, exc_info=True)

    def close(self) -> None:
        with self._lock:
            if self.state == CLOSED:
                return
            self.state = CLOSED
        self.resource.close()


class ResourceManager:
    """Owns the run's resources, keyed by name in declaration order.

    Access patterns:
        db = manager.sql("db")
        mq = manager.queue("mq")

        # Generic
        res = manager.get("db", capability="database/sql")
    """

    def __init__(self, handles: Iterable[ResourceHandle], *, settings: Settings | None = None) -> None:
        self._handles: Dict[str, ResourceHandle] = {}
        for h in handles:
            if h.name in self._handles:
                raise TomatoError(f"duplicate resource name: {h.name}")
            self._handles[h.name] = h
        self.settings = settings or Settings()
        self._closed = False

    @classmethod
    def build(
        cls,
        specs: Iterable[ResourceSpec],
        drivers: DriverRegistry,
        *,
        settings: Settings | None = None,
    ) -> "ResourceManager":
        """Create every resource exactly once, in declaration order, without I/O."""
        handles: List[ResourceHandle] = []
        for spec in specs:
            stubs_path = spec.params.get("stubs_path")
            stubs = Stubs.load(stubs_path) if stubs_path else None
            handles.append(ResourceHandle(spec, drivers.create(spec, stubs=stubs)))
        return cls(handles, settings=settings)

    def names(self) -> list[str]:
        return list(self._handles)

    def handles(self) -> list[ResourceHandle]:
        return list(self._handles.values())

    def handle(self, name: str) -> ResourceHandle:
        if name not in self._handles:
            raise ResourceNotFound(f"{name} not found")
        return self._handles[name]

    def get(self, name: str, *, capability: Optional[str] = None) -> Any:
        h = self.handle(name)
        if capability is not None and h.type != capability:
            raise ResourceNotFound(f"{name} is a {h.type} resource, not {capability}")
        return h.resource

    # Convenience accessors
    def sql(self, name: str):
        return self.get(name, capability=SQL)

    def http_client(self, name: str):
        return self.get(name, capability=HTTP_CLIENT)

    def http_server(self, name: str):
        return self.get(name, capability=HTTP_SERVER)

    def queue(self, name: str):
        return self.get(name, capability=QUEUE)

    def cache(self, name: str):
        return self.get(name, capability=CACHE)

    def shell(self, name: str):
        return self.get(name, capability=SHELL)

    def filestore(self, name: str):
        return self.get(name, capability=FILESTORE)

    def ready_all(self, timeout: float) -> None:
        """Open and probe every resource concurrently until all are ready.

        Raises ReadinessTimeout naming every resource still not ready at the
        deadline, with its last error.
        """
        handles = self.handles()
        stop = threading.Event()
        interval = self.settings.poll_interval

        def _wait(h: ResourceHandle) -> bool:
            attempts = 0
            while not stop.is_set():
                attempts += 1
                try:
                    h.open()
                    h.ready()
                    log_event(log, settings=self.settings, level=logging.INFO, event="resource_ready",
                              resource=h.name, type=h.type, attempts=attempts)
                    return True
                except Exception as e:
                    h.last_error = e
                    log.debug("resource %s not ready (attempt %d): %s", h.name, attempts, e)
                if stop.wait(interval):
                    break
            return False

        _results, pending = run_with_deadline(handles, _wait, timeout=timeout, stop=stop, name="tomato-ready")
        lagging = {h.name: h.last_error for h in handles if h.state != READY}
        if pending or lagging:
            for name, err in lagging.items():
                self._handles[name].fail()
                log_event(log, settings=self.settings, level=logging.ERROR, event="resource_not_ready",
                          resource=name, error=err)
            raise ReadinessTimeout(lagging, timeout=timeout)

    def reset_all(self) -> None:
        """Reset every resource in declaration order; raise the first failure after trying all."""
        first: Optional[ResetError] = None
        for h in self._handles.values():
            try:
                h.reset()
            except ResetError as e:
                log_event(log, settings=self.settings, level=logging.WARNING, event="reset_failed",
                          resource=h.name, error=e.cause)
                if first is None:
                    first = e
        if first is not None:
            raise first

    def close_all(self) -> None:
        if self._closed:
            return
        self._closed = True
        for h in reversed(self.handles()):
            try:
                h.close()
            except Exception:
                log.warning("resource close failed; continuing resource=%s", h.name, exc_info=True)

    def __enter__(self) -> "ResourceManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close_all()
