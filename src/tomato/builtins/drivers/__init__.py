"""Built-in drivers, one module per backing technology.

Driver modules import their client libraries lazily through `require`, so a
missing optional library only fails the resources that use it.
"""

from __future__ import annotations

from tomato.registry.drivers import DriverRegistry
from tomato.spec import CACHE, FILESTORE, HTTP_CLIENT, HTTP_SERVER, QUEUE, SHELL, SQL


def register_all(registry: DriverRegistry) -> None:
    from tomato.builtins.drivers.amqp import RabbitMQQueue
    from tomato.builtins.drivers.http_client import HttpxClient
    from tomato.builtins.drivers.http_server import GenericHTTPServer, WiremockServer
    from tomato.builtins.drivers.nsq import NSQQueue
    from tomato.builtins.drivers.redis import RedisCache
    from tomato.builtins.drivers.s3 import S3FileStore
    from tomato.builtins.drivers.shell import LocalShell
    from tomato.builtins.drivers.sql import MySQLStore, PostgresStore

    registry.add(SQL, "postgres", PostgresStore)
    registry.add(SQL, "mysql", MySQLStore)
    registry.add(HTTP_CLIENT, "http", HttpxClient)
    registry.add(HTTP_SERVER, "generic", GenericHTTPServer)
    registry.add(HTTP_SERVER, "wiremock", WiremockServer)
    registry.add(QUEUE, "rabbitmq", RabbitMQQueue)
    registry.add(QUEUE, "nsq", NSQQueue)
    registry.add(CACHE, "redis", RedisCache)
    registry.add(SHELL, "local", LocalShell)
    registry.add(FILESTORE, "s3", S3FileStore)
