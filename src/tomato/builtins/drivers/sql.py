from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from typing import Any, Dict, List, Mapping
from urllib.parse import quote

from tomato.resources import require
from tomato.resources.base import ResourceInit, _Base

log = logging.getLogger("tomato.builtins.drivers.sql")

# Go-style MySQL DSN: user:pass@tcp(host:port)/db?params
_MYSQL_DSN = re.compile(r"^(?:(?P<user>[^:@]*)(?::(?P<password>[^@]*))?@)?(?:(?P<proto>\w+)\((?P<addr>[^)]*)\))?/(?P<db>[^?]*)(?:\?(?P<query>.*))?$")

MYSQL_NO_SUCH_TABLE = 1146
DEFAULT_CONNECT_TIMEOUT = 5.0


def normalize_datasource(driver: str, datasource: str) -> str:
    """Map driver-native DSNs onto SQLAlchemy URLs (psycopg / PyMySQL)."""
    ds = datasource.strip()
    if driver == "postgres":
        for prefix in ("postgres://", "postgresql://"):
            if ds.startswith(prefix):
                return "postgresql+psycopg://" + ds[len(prefix):]
        return ds
    if driver == "mysql":
        if ds.startswith("mysql://"):
            return "mysql+pymysql://" + ds[len("mysql://"):]
        if "://" in ds:
            return ds
        m = _MYSQL_DSN.match(ds)
        if m is None:
            raise ValueError(f"unrecognized mysql datasource: {ds}")
        auth = ""
        if m.group("user"):
            auth = quote(m.group("user"), safe="")
            if m.group("password") is not None:
                auth += ":" + quote(m.group("password"), safe="")
            auth += "@"
        addr = m.group("addr") or "localhost:3306"
        return f"mysql+pymysql://{auth}{addr}/{m.group('db')}"
    return ds


def _is_null(value: Any) -> bool:
    return value is None or str(value).upper() == "NULL"


def _whole_seconds(seconds: float) -> int:
    return max(1, int(round(seconds)))


class SQLAlchemyStore(_Base):
    """
    Table store backed by SQLAlchemy Core.

    Values arrive as strings from scenario tables and are bound untyped, so the
    database coerces them to the column type. Subclasses implement truncate().
    """

    PARAMS = frozenset({"datasource", "schema", "connect_timeout"})
    REQUIRED = frozenset({"datasource"})

    # DBAPI connect() keyword bounding the dial, when the driver has one
    CONNECT_TIMEOUT_ARG: str | None = None

    def __init__(self, init: ResourceInit):
        super().__init__(init)
        self.url = normalize_datasource(self.driver, self.params["datasource"])
        self._engine = None

    def engine(self):
        sa = require("sqlalchemy")
        if self._engine is None:
            self._engine = sa.create_engine(
                self.url, pool_pre_ping=True, pool_size=2, max_overflow=2, connect_args=self.connect_args()
            )
        return self._engine

    @contextmanager
    def connect(self):
        # transaction-aware connection (BEGIN/COMMIT)
        with self.engine().begin() as conn:
            yield conn

    def open(self) -> None:
        sa = require("sqlalchemy")
        try:
            self.engine()
        except (sa.exc.ArgumentError, ValueError) as e:
            raise self._fail("open", e) from e

    def ready(self) -> None:
        sa = require("sqlalchemy")
        try:
            with self.engine().connect() as conn:
                conn.execute(sa.text("SELECT 1"))
        except sa.exc.SQLAlchemyError as e:
            raise self._fail("ready", e) from e

    def close(self) -> None:
        if self._engine is not None:
            try:
                self._engine.dispose()
            finally:
                self._engine = None

    def schema(self) -> str:
        raise NotImplementedError

    def connect_args(self) -> Dict[str, Any]:
        if self.CONNECT_TIMEOUT_ARG is None:
            return {}
        return {self.CONNECT_TIMEOUT_ARG: _whole_seconds(self.duration("connect_timeout", DEFAULT_CONNECT_TIMEOUT))}

    def truncate(self, conn, tables: List[str]) -> None:
        raise NotImplementedError

    def reset(self) -> None:
        sa = require("sqlalchemy")
        try:
            with self.connect() as conn:
                rows = conn.execute(
                    sa.text(
                        "SELECT table_name FROM information_schema.tables "
                        "WHERE table_schema = :schema AND table_type = 'BASE TABLE'"
                    ),
                    {"schema": self.schema()},
                ).fetchall()
                tables = sorted(str(r[0]) for r in rows)
                self.truncate(conn, tables)
        except sa.exc.SQLAlchemyError as e:
            raise self._fail("reset", e) from e

    def _quote(self, name: str) -> str:
        return self.engine().dialect.identifier_preparer.quote(name)

    def _table(self, table: str, columns):
        sa = require("sqlalchemy")
        schema, _, name = table.rpartition(".")
        return sa.table(name, *[sa.column(c) for c in columns], schema=schema or None)

    def _where(self, cond: Mapping[str, str]):
        sa = require("sqlalchemy")
        clauses = []
        for k, v in cond.items():
            if _is_null(v):
                clauses.append(sa.column(k).is_(None))
            else:
                clauses.append(sa.column(k) == sa.bindparam(None, v, type_=sa.types.NullType()))
        return clauses

    def insert(self, table: str, rows: List[Dict[str, str]]) -> None:
        sa = require("sqlalchemy")
        try:
            with self.connect() as conn:
                for row in rows:
                    values = {k: v for k, v in row.items() if v != "" and v.lower() != "null"}
                    t = self._table(table, values.keys())
                    stmt = sa.insert(t).values(
                        {k: sa.bindparam(None, v, type_=sa.types.NullType()) for k, v in values.items()}
                    )
                    conn.execute(stmt)
        except sa.exc.SQLAlchemyError as e:
            raise self._fail(f"insert into {table}", e) from e

    def select(self, table: str, cond: Mapping[str, str]) -> List[Dict[str, Any]]:
        sa = require("sqlalchemy")
        t = self._table(table, [])
        stmt = sa.select(sa.text("*")).select_from(t)
        where = self._where(cond)
        if where:
            stmt = stmt.where(sa.and_(*where))
        try:
            with self.engine().connect() as conn:
                res = conn.execute(stmt)
                return [dict(r._mapping) for r in res]
        except sa.exc.SQLAlchemyError as e:
            raise self._fail(f"select from {table}", e) from e

    def delete(self, table: str, cond: Mapping[str, str]) -> int:
        sa = require("sqlalchemy")
        t = self._table(table, cond.keys())
        stmt = sa.delete(t)
        where = self._where(cond)
        if where:
            stmt = stmt.where(sa.and_(*where))
        try:
            with self.connect() as conn:
                return int(conn.execute(stmt).rowcount or 0)
        except sa.exc.SQLAlchemyError as e:
            raise self._fail(f"delete from {table}", e) from e


class PostgresStore(SQLAlchemyStore):
    """PostgreSQL; reset truncates every base table with RESTART IDENTITY CASCADE."""

    CONNECT_TIMEOUT_ARG = "connect_timeout"

    def schema(self) -> str:
        return self.param("schema", "public")

    def truncate(self, conn, tables: List[str]) -> None:
        sa = require("sqlalchemy")
        schema = self._quote(self.schema())
        for t in tables:
            conn.execute(sa.text(f"TRUNCATE TABLE {schema}.{self._quote(t)} RESTART IDENTITY CASCADE"))


class MySQLStore(SQLAlchemyStore):
    """MySQL; reset truncates every base table with foreign key checks disabled."""

    CONNECT_TIMEOUT_ARG = "connect_timeout"

    def schema(self) -> str:
        sa = require("sqlalchemy")
        explicit = self.param("schema")
        if explicit:
            return explicit
        return sa.engine.make_url(self.url).database or ""

    def truncate(self, conn, tables: List[str]) -> None:
        sa = require("sqlalchemy")
        conn.execute(sa.text("SET FOREIGN_KEY_CHECKS=0"))
        try:
            for t in tables:
                try:
                    conn.execute(sa.text(f"TRUNCATE TABLE {self._quote(t)}"))
                except sa.exc.DBAPIError as e:
                    code = e.orig.args[0] if e.orig is not None and e.orig.args else None
                    if code != MYSQL_NO_SUCH_TABLE:
                        raise
                    log.debug("table %s vanished during reset; skipping", t)
        finally:
            conn.execute(sa.text("SET FOREIGN_KEY_CHECKS=1"))
