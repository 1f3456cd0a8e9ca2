"""PostgreSQL-family storage adapters (PostgreSQL, CockroachDB, YugabyteDB).

Uses ``psycopg2`` with a ``ThreadedConnectionPool``; every operation checks
a connection out of the pool, and a transaction keeps its connection until
commit or rollback.

Install the driver::

    pip install omnistore[postgresql]

The driver is import-guarded: without ``psycopg2`` a
:class:`~omnistore.errors.ConfigError` is raised at ``connect()`` time.

Connection strings are libpq URIs. ``cockroachdb://`` and ``yugabytedb://``
are rewritten to ``postgresql://``; the ``pool_size`` query option sizes
the pool and is not passed to libpq.
"""

from __future__ import annotations

import threading
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from omnistore.context import OperationContext
from omnistore.dialect import CockroachDBDialect, PostgreSQLDialect, YugabyteDBDialect
from omnistore.errors import ConfigError, StorageConnectionError
from omnistore.storage.sql import SQLStorage, wait_for


def libpq_dsn(connection_string: str) -> tuple[str, int]:
    """Return ``(dsn, pool_size)`` for psycopg2."""
    parts = urlsplit(connection_string)
    options = dict(parse_qsl(parts.query))
    try:
        pool_size = int(options.pop("pool_size", "5"))
    except ValueError as e:
        raise StorageConnectionError("pool_size must be an integer", cause=e) from e
    if pool_size < 1:
        raise StorageConnectionError("pool_size must be at least 1")
    dsn = urlunsplit(("postgresql", parts.netloc, parts.path, urlencode(options), ""))
    return dsn, pool_size


class PostgreSQLStorage(SQLStorage):
    """PostgreSQL storage adapter."""

    backend_name = "postgresql"
    dialect = PostgreSQLDialect()

    def __init__(self, *, connect_timeout: int = 10):
        super().__init__()
        self._pool: Any = None
        self._connect_timeout = connect_timeout
        # One slot per pooled connection; a checkout waits for a free slot
        self._slots = threading.BoundedSemaphore(5)
        self._holders: dict[int, list[threading.BoundedSemaphore]] = {}

    def _connect(self, connection_string: str, ctx: OperationContext | None) -> None:
        try:
            import psycopg2
            import psycopg2.pool
        except ImportError:
            raise ConfigError(
                "psycopg2 is required for PostgreSQL. Install with: pip install psycopg2-binary"
            ) from None

        self.driver_errors = (psycopg2.Error,)
        dsn, pool_size = libpq_dsn(connection_string)
        try:
            pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=1,
                maxconn=pool_size,
                dsn=dsn,
                connect_timeout=self._connect_timeout,
            )
        except psycopg2.Error as e:
            raise StorageConnectionError(
                f"Failed to connect to {self.backend_name}: {e}", cause=e
            ).with_context(backend=self.backend_name) from e

        conn = pool.getconn()
        try:
            self._ping(conn, ctx)
        except BaseException:
            pool.putconn(conn)
            pool.closeall()
            raise
        pool.putconn(conn)
        self._slots = threading.BoundedSemaphore(pool_size)
        self._pool = pool

    def _disconnect(self) -> None:
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
        self._scanners.clear()

    def _acquire(self, ctx: OperationContext | None = None) -> Any:
        if self._pool is None:
            raise StorageConnectionError("not connected").with_context(backend=self.backend_name)
        # getconn() fails at once when every connection is out; queue here instead
        slots = self._slots
        wait_for(slots, ctx, "acquire_connection")
        try:
            conn = self._pool.getconn()
        except self.driver_errors as e:
            slots.release()
            raise StorageConnectionError(
                f"could not check out a connection: {e}", cause=e
            ).with_context(backend=self.backend_name) from e
        self._holders.setdefault(id(conn), []).append(slots)
        return conn

    def _release(self, conn: Any) -> None:
        stack = self._holders.get(id(conn))
        slots = stack.pop() if stack else None
        if not stack:
            self._holders.pop(id(conn), None)
        try:
            if self._pool is not None:
                self._pool.putconn(conn)
        finally:
            if slots is not None:
                slots.release()


class CockroachDBStorage(PostgreSQLStorage):
    """CockroachDB over the PostgreSQL wire protocol."""

    backend_name = "cockroachdb"
    dialect = CockroachDBDialect()


class YugabyteDBStorage(PostgreSQLStorage):
    """YugabyteDB YSQL over the PostgreSQL wire protocol."""

    backend_name = "yugabytedb"
    dialect = YugabyteDBDialect()


__all__ = ["PostgreSQLStorage", "CockroachDBStorage", "YugabyteDBStorage", "libpq_dsn"]
