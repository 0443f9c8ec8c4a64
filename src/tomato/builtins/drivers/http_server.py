from __future__ import annotations

import base64
import logging
import socket
import threading
import time
from collections import Counter
from typing import Dict, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit

from tomato.exception import ConfigError, DriverError
from tomato.resources import require
from tomato.resources.base import ResourceInit, _Base

log = logging.getLogger("tomato.builtins.drivers.http_server")

FALLBACK = ""
UNAVAILABLE = (502, b"response unavailable")
METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")

STARTUP_TIMEOUT = 5.0
STARTUP_POLL = 0.01
SHUTDOWN_TIMEOUT = 5.0


def canonical_path(path: str) -> str:
    """Path with its query pairs sorted, so `?b=2&a=1` and `?a=1&b=2` match."""
    parts = urlsplit(path)
    if not parts.query:
        return parts.path
    pairs = sorted(parse_qsl(parts.query, keep_blank_values=True))
    return f"{parts.path}?{urlencode(pairs)}"


def parse_port(raw: str) -> int:
    value = raw.strip()
    if value.startswith(":"):
        value = value[1:]
    try:
        port = int(value)
    except ValueError as e:
        raise ConfigError(f"unrecognized port format: {raw!r}") from e
    if not 0 <= port <= 65535:
        raise ConfigError(f"port out of range: {port}")
    return port


class GenericHTTPServer(_Base):
    """
    In-process HTTP stub server: one FastAPI catch-all route served by uvicorn
    on a background thread.

    Responses are keyed by (method, canonical path). A response registered with
    an empty path answers any unmatched request of that method; everything else
    gets 502 `response unavailable`. Every received request is counted.

    The listening socket is bound in open(), so `port: ":0"` picks a free port
    and `url` reports it.
    """

    PARAMS = frozenset({"port", "host"})
    REQUIRED = frozenset({"port"})

    def __init__(self, init: ResourceInit):
        super().__init__(init)
        self.host = self.param("host", "127.0.0.1")
        self.port = parse_port(self.params["port"])
        self._responses: Dict[Tuple[str, str], Tuple[int, bytes]] = {}
        self._counts: Counter = Counter()
        self._lock = threading.Lock()
        self._sock: Optional[socket.socket] = None
        self._server = None
        self._thread: Optional[threading.Thread] = None

    def app(self):
        fastapi = require("fastapi")
        Response = require("fastapi.responses:Response")

        async def serve(request):
            await request.body()
            raw = request.url.path + (f"?{request.url.query}" if request.url.query else "")
            code, body = self.lookup(request.method, raw)
            return Response(content=body, status_code=code, media_type="application/json")

        app = fastapi.FastAPI(title=f"tomato stub {self.name}", docs_url=None, redoc_url=None, openapi_url=None)
        app.add_route("/{path:path}", serve, methods=list(METHODS), include_in_schema=False)
        return app

    @property
    def url(self) -> str:
        if self._sock is None:
            raise DriverError("server is not listening", frames=[self.name])
        host, port = self._sock.getsockname()[:2]
        return f"http://{host}:{port}"

    def _bind(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
            sock.listen(128)
        except OSError:
            sock.close()
            raise
        return sock

    def open(self) -> None:
        if self._server is not None:
            return
        uvicorn = require("uvicorn")
        try:
            sock = self._bind()
        except OSError as e:
            raise self._fail("open", e) from e
        config = uvicorn.Config(self.app(), lifespan="off", log_config=None, log_level="warning", access_log=False)
        server = uvicorn.Server(config)
        thread = threading.Thread(
            target=server.run, kwargs={"sockets": [sock]}, name=f"tomato-stub-{self.name}", daemon=True
        )
        self._sock, self._server, self._thread = sock, server, thread
        thread.start()
        deadline = time.monotonic() + STARTUP_TIMEOUT
        while not server.started:
            if not thread.is_alive() or time.monotonic() > deadline:
                self.close()
                raise DriverError("stub server failed to start", frames=[self.name, "open"])
            time.sleep(STARTUP_POLL)
        log.debug("stub server %s listening on %s", self.name, self.url)

    def ready(self) -> None:
        if self._server is None or not self._server.started:
            raise DriverError(f"port {self.port} is not running", frames=[self.name, "ready"])

    def reset(self) -> None:
        with self._lock:
            self._responses.clear()
            self._counts.clear()

    def close(self) -> None:
        server, thread, sock = self._server, self._thread, self._sock
        self._server = self._thread = self._sock = None
        if server is None:
            return
        server.should_exit = True
        try:
            if thread is not None:
                thread.join(timeout=SHUTDOWN_TIMEOUT)
        finally:
            if sock is not None:
                sock.close()

    def lookup(self, method: str, path: str) -> Tuple[int, bytes]:
        key = canonical_path(path)
        with self._lock:
            self._counts[(method.upper(), key)] += 1
            for candidate in ((method.upper(), key), (method.upper(), FALLBACK)):
                if candidate in self._responses:
                    return self._responses[candidate]
        return UNAVAILABLE

    def set_response(self, method: str, path: str, code: int, body: bytes) -> None:
        if self._server is None:
            self.open()
        key = canonical_path(path) if path else FALLBACK
        with self._lock:
            self._responses[((method or "GET").upper(), key)] = (int(code), bytes(body or b""))

    def set_response_from_file(self, method: str, path: str, code: int, stub_name: str) -> None:
        self.set_response(method, path, code, self.stub(stub_name))

    def get_requests_count(self, method: str, path: str) -> int:
        with self._lock:
            return self._counts[((method or "GET").upper(), canonical_path(path))]


class WiremockServer(_Base):
    """HTTP stub server delegating to a remote Wiremock admin API."""

    PARAMS = frozenset({"base_url", "timeout"})
    REQUIRED = frozenset({"base_url"})

    def __init__(self, init: ResourceInit):
        super().__init__(init)
        self.base_url = self.params["base_url"].rstrip("/")
        self._timeout = self.duration("timeout", 10.0)
        # httpx transport override; None dials base_url
        self.transport = None
        self._client = None

    def _http(self):
        httpx = require("httpx")
        if self._client is None:
            self._client = httpx.Client(base_url=self.base_url, timeout=self._timeout, transport=self.transport)
        return self._client

    def _admin(self, method: str, path: str, *, json=None, expect: Tuple[int, ...] = (200,)):
        httpx = require("httpx")
        op = f"{method} {path}"
        try:
            resp = self._http().request(method, path, json=json)
        except httpx.HTTPError as e:
            raise self._fail(op, e) from e
        if resp.status_code not in expect:
            raise DriverError(f"unexpected status {resp.status_code}: {resp.text}", frames=[self.name, op])
        return resp

    def open(self) -> None:
        self._http()

    def ready(self) -> None:
        try:
            self._admin("GET", "/__admin/docs")
        except DriverError:
            self._admin("GET", "/__admin/mappings")

    def reset(self) -> None:
        self._admin("POST", "/__admin/reset")

    def close(self) -> None:
        try:
            if self._client is not None:
                self._client.close()
        finally:
            self._client = None

    def set_response(self, method: str, path: str, code: int, body: bytes) -> None:
        parts = urlsplit(path)
        request = {"method": (method or "GET").upper()}
        if parts.query:
            request["url"] = path
        else:
            request["urlPath"] = parts.path or "/"
        mapping = {
            "request": request,
            "response": {
                "status": int(code),
                "base64Body": base64.b64encode(bytes(body or b"")).decode("ascii"),
                "headers": {"Content-Type": "application/json"},
            },
        }
        self._admin("POST", "/__admin/mappings", json=mapping, expect=(200, 201))

    def set_response_from_file(self, method: str, path: str, code: int, stub_name: str) -> None:
        self.set_response(method, path, code, self.stub(stub_name))

    def get_requests_count(self, method: str, path: str) -> int:
        resp = self._admin(
            "POST",
            "/__admin/requests/count",
            json={"method": (method or "GET").upper(), "url": path},
        )
        return int(resp.json().get("count", 0))
