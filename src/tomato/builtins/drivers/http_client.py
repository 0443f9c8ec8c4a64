from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from tomato.exception import ConfigError, DriverError
from tomato.resources import require
from tomato.resources.base import ResourceInit, _Base

log = logging.getLogger("tomato.builtins.drivers.http_client")

DEFAULT_HEADERS = {"Content-Type": "application/json"}
NO_RESPONSE = "no request has been sent, please send request before checking response"


def parse_headers(raw: str) -> Dict[str, str]:
    """Parse `k1=v1;k2=v2` into a header mapping."""
    out: Dict[str, str] = {}
    for part in raw.split(";"):
        part = part.strip()
        if not part:
            continue
        key, sep, value = part.partition("=")
        if not sep or not key.strip():
            raise ConfigError(f"invalid header {part!r}; expected key=value")
        out[key.strip()] = value.strip()
    return out


class HttpxClient(_Base):
    """
    HTTP client backed by httpx.

    - base_url replaces scheme and host of every request target
    - redirects are not followed; the last response is authoritative
    - transport errors are retried `retries` times with tenacity
    """

    PARAMS = frozenset({"base_url", "timeout", "headers", "retries"})

    def __init__(self, init: ResourceInit):
        super().__init__(init)
        self.base_url = (self.param("base_url", "") or "").rstrip("/")
        self._timeout = self.duration("timeout", 30.0)
        self._retries = int(self.param("retries", "0") or 0)
        self._default_headers = {**DEFAULT_HEADERS, **parse_headers(self.param("headers", "") or "")}
        self._headers = dict(self._default_headers)
        self._client = None
        self._last: Optional[Tuple[int, Dict[str, str], bytes]] = None

    def open(self) -> None:
        httpx = require("httpx")
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout, follow_redirects=False)

    def _http(self):
        if self._client is None:
            self.open()
        return self._client

    def ready(self) -> None:
        if not self.base_url:
            return
        httpx = require("httpx")
        try:
            resp = self._http().get(self.base_url)
        except httpx.HTTPError as e:
            raise self._fail("ready", e) from e
        if resp.status_code == 503:
            raise DriverError("service unavailable (503)", frames=[self.name, "ready"])

    def reset(self) -> None:
        self._last = None
        self._headers = dict(self._default_headers)

    def close(self) -> None:
        try:
            if self._client is not None:
                self._client.close()
        finally:
            self._client = None

    def url(self, path: str) -> str:
        if not self.base_url:
            return path
        base = urlsplit(self.base_url)
        target = urlsplit(path)
        return urlunsplit((base.scheme, base.netloc, target.path or "/", target.query, target.fragment))

    def set_request_header(self, key: str, value: str) -> None:
        self._headers[key] = value

    def request(self, method: str, path: str, body: bytes | None = None) -> None:
        httpx = require("httpx")
        url = self.url(path)
        attempts = max(1, 1 + self._retries)

        def _do_request():
            return self._http().request(method.upper(), url, headers=dict(self._headers), content=body or None)

        try:
            if attempts > 1:
                from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

                resp = retry(
                    stop=stop_after_attempt(attempts),
                    wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
                    retry=retry_if_exception_type(httpx.TransportError),
                    reraise=True,
                )(_do_request)()
            else:
                resp = _do_request()
        except httpx.HTTPError as e:
            raise self._fail(f"{method.upper()} {url}", e) from e

        self._last = (resp.status_code, dict(resp.headers), resp.content)
        log.debug("http %s %s %s -> %d", self.name, method.upper(), url, resp.status_code)

    def request_from_file(self, method: str, path: str, stub_name: str) -> None:
        self.request(method, path, self.stub(stub_name))

    def response(self) -> Tuple[int, Dict[str, str], bytes]:
        if self._last is None:
            raise DriverError(NO_RESPONSE, frames=[self.name])
        return self._last
