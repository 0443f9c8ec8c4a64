from __future__ import annotations

import logging
import threading
import time
from typing import Dict, List, Optional, Tuple

from tomato.exception import DriverError
from tomato.resources import require
from tomato.resources.base import ResourceInit, _Base

log = logging.getLogger("tomato.builtins.drivers.amqp")

DEFAULT_WAIT = 0.05
DEFAULT_CONNECT_TIMEOUT = 5.0
READY_TARGET = "test:test"
POLL_SLICE = 0.05


def split_target(target: str) -> Tuple[str, str]:
    exchange, _, key = target.partition(":")
    return exchange, key


def queue_name(target: str) -> str:
    exchange, key = split_target(target)
    return f"{exchange}.{key}.tmp.queue"


class _Consumer(threading.Thread):
    """Drains one bound queue into the owning driver's buffer.

    pika connections are not thread-safe, so each consumer dials its own.
    """

    def __init__(self, owner: "RabbitMQQueue", target: str) -> None:
        super().__init__(name=f"tomato-amqp-{owner.name}-{target}", daemon=True)
        self.owner = owner
        self.target = target
        self.stop = threading.Event()
        self.started = threading.Event()
        self.error: Optional[BaseException] = None

    def _on_message(self, ch, method, properties, body) -> None:
        self.owner._append(self.target, body)

    def run(self) -> None:
        pika = require("pika")
        conn = None
        try:
            conn = pika.BlockingConnection(self.owner.parameters())
            ch = conn.channel()
            ch.basic_consume(queue=queue_name(self.target), on_message_callback=self._on_message, auto_ack=True)
            self.started.set()
            while not self.stop.is_set():
                conn.process_data_events(time_limit=POLL_SLICE)
        except Exception as e:
            self.error = e
            if self.started.is_set():
                log.warning("amqp consumer stopped resource=%s target=%s error=%s", self.owner.name, self.target, e)
        finally:
            self.started.set()
            if conn is not None and conn.is_open:
                try:
                    conn.close()
                except Exception:
                    log.warning("non-critical amqp close failed; continuing", exc_info=True)


class RabbitMQQueue(_Base):
    """
    AMQP queue backed by pika.

    Targets are `exchange:key`. Listening declares a durable topic exchange and
    a durable `<exchange>.<key>.tmp.queue`, binds and purges it, then a consumer
    thread appends deliveries to a per-target buffer.
    """

    PARAMS = frozenset({"datasource", "wait_duration", "connect_timeout"})
    REQUIRED = frozenset({"datasource"})

    def __init__(self, init: ResourceInit):
        super().__init__(init)
        self.url = self.params["datasource"]
        self.wait = self.duration("wait_duration", DEFAULT_WAIT)
        self.connect_timeout = self.duration("connect_timeout", DEFAULT_CONNECT_TIMEOUT)
        self._conn = None
        self._lock = threading.Lock()
        self._buffers: Dict[str, List[bytes]] = {}
        self._consumers: Dict[str, _Consumer] = {}

    def parameters(self):
        """URL parameters with socket and blocked-connection timeouts bounded by connect_timeout."""
        pika = require("pika")
        params = pika.URLParameters(self.url)
        params.socket_timeout = self.connect_timeout
        params.blocked_connection_timeout = self.connect_timeout
        return params

    def _connection(self):
        pika = require("pika")
        if self._conn is None or self._conn.is_closed:
            self._conn = pika.BlockingConnection(self.parameters())
        return self._conn

    def _append(self, target: str, body: bytes) -> None:
        with self._lock:
            self._buffers.setdefault(target, []).append(bytes(body))

    def open(self) -> None:
        pika = require("pika")
        try:
            self._connection()
        except pika.exceptions.AMQPError as e:
            raise self._fail("open", e) from e

    def ready(self) -> None:
        self.publish(READY_TARGET, b"")

    def _stop_consumers(self) -> None:
        consumers, self._consumers = self._consumers, {}
        for c in consumers.values():
            c.stop.set()
        for c in consumers.values():
            c.join(timeout=5)

    def reset(self) -> None:
        self._stop_consumers()
        with self._lock:
            self._buffers.clear()

    def close(self) -> None:
        self._stop_consumers()
        conn, self._conn = self._conn, None
        if conn is not None and conn.is_open:
            conn.close()

    def listen(self, target: str) -> None:
        existing = self._consumers.get(target)
        if existing is not None and existing.is_alive():
            return
        pika = require("pika")
        exchange, key = split_target(target)
        name = queue_name(target)
        try:
            ch = self._connection().channel()
            try:
                ch.exchange_declare(exchange=exchange, exchange_type="topic", durable=True)
                ch.queue_declare(queue=name, durable=True)
                ch.queue_bind(queue=name, exchange=exchange, routing_key=key)
                ch.queue_purge(queue=name)
            finally:
                if ch.is_open:
                    ch.close()
        except pika.exceptions.AMQPError as e:
            raise self._fail(f"listen {target}", e) from e

        with self._lock:
            self._buffers[target] = []
        consumer = _Consumer(self, target)
        consumer.start()
        consumer.started.wait(timeout=10)
        if consumer.error is not None:
            raise self._fail(f"listen {target}", consumer.error)
        self._consumers[target] = consumer
        log.debug("amqp %s listening on %s (queue %s)", self.name, target, name)

    def publish(self, target: str, payload: bytes) -> None:
        pika = require("pika")
        exchange, key = split_target(target)
        try:
            ch = self._connection().channel()
            try:
                ch.exchange_declare(exchange=exchange, exchange_type="topic", durable=True)
                ch.basic_publish(
                    exchange=exchange,
                    routing_key=key,
                    body=bytes(payload or b""),
                    properties=pika.BasicProperties(
                        content_type="application/json",
                        delivery_mode=1,
                        timestamp=int(time.time()),
                    ),
                )
            finally:
                if ch.is_open:
                    ch.close()
        except pika.exceptions.AMQPError as e:
            raise self._fail(f"publish {target}", e) from e
        time.sleep(self.wait)

    def publish_from_file(self, target: str, stub_name: str) -> None:
        self.publish(target, self.stub(stub_name))

    def fetch(self, target: str) -> List[bytes]:
        time.sleep(self.wait)
        with self._lock:
            if target not in self._buffers:
                raise DriverError(f"queue not exist, please listen to it {target}", frames=[self.name])
            return list(self._buffers[target])
