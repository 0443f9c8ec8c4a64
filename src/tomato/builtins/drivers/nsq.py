from __future__ import annotations

import asyncio
import logging
import socket
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Dict, List, Optional, Tuple

from tenacity import retry, retry_if_exception_type, stop_after_delay, wait_fixed

from tomato.exception import DriverError
from tomato.resources import require
from tomato.resources.base import ResourceInit, _Base

log = logging.getLogger("tomato.builtins.drivers.nsq")

EPHEMERAL = "#ephemeral"
CHANNEL = "tomato" + EPHEMERAL
READY_TOPIC = "ready_flag"
DEFAULT_WAIT = 0.05
CALL_TIMEOUT = 10.0


class _NotConnected(DriverError):
    pass


def parse_address(raw: str) -> Tuple[str, int]:
    host, _, port = raw.strip().rpartition(":")
    if not host or not port.isdigit():
        raise ValueError(f"nsqd must be host:port, got {raw!r}")
    return host, int(port)


class NSQQueue(_Base):
    """
    NSQ queue backed by pynsq.

    pynsq runs on a tornado IOLoop, so the driver owns one loop thread and
    marshals every Reader/Writer call onto it. Topics and the consumer channel
    are ephemeral; fetch() drains what has been received so far.
    """

    PARAMS = frozenset({"nsqd", "wait_duration"})
    REQUIRED = frozenset({"nsqd"})

    def __init__(self, init: ResourceInit):
        super().__init__(init)
        self.nsqd = self.params["nsqd"]
        self.address = parse_address(self.nsqd)
        self.wait = self.duration("wait_duration", DEFAULT_WAIT)
        self._lock = threading.Lock()
        self._buffers: Dict[str, List[bytes]] = {}
        self._readers: Dict[str, Any] = {}
        self._writer = None
        self._loop = None
        self._thread: Optional[threading.Thread] = None

    # --- loop plumbing -------------------------------------------------

    def _start_loop(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        tornado_ioloop = require("tornado.ioloop")
        started = threading.Event()

        def _run() -> None:
            asyncio.set_event_loop(asyncio.new_event_loop())
            self._loop = tornado_ioloop.IOLoop.current()
            started.set()
            try:
                self._loop.start()
            finally:
                self._loop.close(all_fds=True)

        self._thread = threading.Thread(target=_run, name=f"tomato-nsq-{self.name}", daemon=True)
        self._thread.start()
        started.wait(timeout=CALL_TIMEOUT)

    def _call(self, fn: Callable[[], Any]) -> Any:
        """Run fn on the loop thread and wait for its result."""
        if self._loop is None:
            self._start_loop()
        fut: Future = Future()

        def _invoke() -> None:
            try:
                fut.set_result(fn())
            except Exception as e:
                fut.set_exception(e)

        self._loop.add_callback(_invoke)
        try:
            return fut.result(timeout=CALL_TIMEOUT)
        except FutureTimeout as e:
            raise DriverError("nsq loop did not answer in time", frames=[self.name]) from e

    # --- lifecycle -----------------------------------------------------

    def open(self) -> None:
        try:
            with socket.create_connection(self.address, timeout=5):
                pass
        except OSError as e:
            raise self._fail("open", e) from e
        self._start_loop()

    def ready(self) -> None:
        reader = self._reader(READY_TOPIC)
        try:
            self.publish(READY_TOPIC, b"")
            got = self._drain(READY_TOPIC)
        finally:
            self._call(reader.close)
            with self._lock:
                self._buffers.pop(READY_TOPIC, None)
        if not got:
            raise DriverError("not ready yet", frames=[self.name, "ready"])

    def _close_readers(self) -> None:
        readers, self._readers = self._readers, {}
        for reader in readers.values():
            self._call(reader.close)

    def reset(self) -> None:
        self._close_readers()
        with self._lock:
            self._buffers.clear()

    def close(self) -> None:
        if self._loop is None:
            return
        try:
            self._close_readers()
            writer, self._writer = self._writer, None
            if writer is not None:
                self._call(lambda: [conn.close() for conn in list(writer.conns.values())])
        finally:
            loop, self._loop = self._loop, None
            loop.add_callback(loop.stop)
            if self._thread is not None:
                self._thread.join(timeout=5)
                self._thread = None

    # --- queue operations ----------------------------------------------

    def _on_message(self, target: str):
        def handler(message) -> bool:
            with self._lock:
                self._buffers.setdefault(target, []).append(bytes(message.body))
            return True

        return handler

    def _reader(self, target: str):
        nsq = require("nsq")
        with self._lock:
            self._buffers.setdefault(target, [])
        return self._call(
            lambda: nsq.Reader(
                topic=target + EPHEMERAL,
                channel=CHANNEL,
                message_handler=self._on_message(target),
                nsqd_tcp_addresses=[self.nsqd],
                max_in_flight=100,
            )
        )

    def listen(self, target: str) -> None:
        if target in self._readers:
            return
        self._readers[target] = self._reader(target)
        log.debug("nsq %s listening on %s", self.name, target + EPHEMERAL)

    def _producer(self):
        nsq = require("nsq")
        if self._writer is None:
            self._writer = self._call(lambda: nsq.Writer([self.nsqd]))
        return self._writer

    @retry(
        retry=retry_if_exception_type(_NotConnected),
        stop=stop_after_delay(5),
        wait=wait_fixed(0.1),
        reraise=True,
    )
    def _pub(self, topic: str, payload: bytes) -> None:
        nsq = require("nsq")
        writer = self._producer()
        done: Future = Future()

        def _callback(conn, data) -> None:
            if isinstance(data, nsq.Error):
                done.set_exception(data)
            else:
                done.set_result(data)

        def _send() -> None:
            if not writer.conns:
                done.set_exception(_NotConnected("no open connections", frames=[self.name]))
                return
            writer.pub(topic, payload, callback=_callback)

        self._loop.add_callback(_send)
        try:
            done.result(timeout=CALL_TIMEOUT)
        except FutureTimeout as e:
            raise DriverError("publish timed out", frames=[self.name, f"publish {topic}"]) from e

    def publish(self, target: str, payload: bytes) -> None:
        nsq = require("nsq")
        if self._loop is None:
            self._start_loop()
        try:
            self._pub(target + EPHEMERAL, bytes(payload or b""))
        except nsq.Error as e:
            raise self._fail(f"publish {target}", e) from e
        time.sleep(self.wait)

    def publish_from_file(self, target: str, stub_name: str) -> None:
        self.publish(target, self.stub(stub_name))

    def _drain(self, target: str) -> List[bytes]:
        time.sleep(self.wait)
        with self._lock:
            if target not in self._buffers:
                raise DriverError(f"queue not exist, please listen to it {target}", frames=[self.name])
            out, self._buffers[target] = self._buffers[target], []
        return out

    def fetch(self, target: str) -> List[bytes]:
        return self._drain(target)
