"""Generic SQL engine shared by every relational adapter.

One CRUD implementation over DB-API 2.0 connections, parameterized by a
:class:`~omnistore.dialect.Dialect`. Adapters only parse their connection
string, open the driver connection and name the driver's exception base
class.

Connection model:
    By default the adapter owns one connection guarded by a re-entrant
    lock; a transaction holds that lock from ``begin_tx`` until commit or
    rollback. Pooled adapters (PostgreSQL family) override
    ``_acquire``/``_release`` and hand each operation its own connection.

Non-transactional calls commit on success and roll back on failure.
Transactional calls run on the transaction's connection and leave commit
to ``commit_tx``.

Tags:
    sql, engine, dialect, db-api, crud

Doc-Types:
    api-reference
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from omnistore.context import OperationContext, check
from omnistore.dialect import Dialect
from omnistore.errors import BackendError, StorageConnectionError
from omnistore.logging import log_statement
from omnistore.object import Object
from omnistore.scanner import FieldScanner
from omnistore.schema import ColumnData, TableSchema
from omnistore.storage.base import Storage, Transaction


# Cancellation is noticed at this granularity while waiting for a connection
_WAIT_POLL_SECONDS = 0.05


def wait_for(primitive: Any, ctx: OperationContext | None, operation: str) -> None:
    """Acquire a lock or semaphore, giving up when ``ctx`` expires or is cancelled."""
    if ctx is None:
        primitive.acquire()
        return
    while True:
        remaining = ctx.remaining()
        timeout = _WAIT_POLL_SECONDS if remaining is None else min(remaining, _WAIT_POLL_SECONDS)
        if primitive.acquire(timeout=timeout):
            return
        ctx.check(operation)


class SQLStorage(Storage):
    """
    Storage over a DB-API connection and a dialect.

    Subclasses implement :meth:`_open` (return a live connection) and set
    ``dialect`` and ``driver_errors``. Pooled subclasses override
    ``_connect``/``_acquire``/``_release`` instead and never call ``_open``.
    """

    dialect: Dialect
    # Exception base classes raised by the driver; wrapped as BackendError
    driver_errors: tuple[type[BaseException], ...] = ()

    def __init__(self) -> None:
        super().__init__()
        self._conn: Any = None
        self._lock = threading.RLock()
        self._scanners: dict[str, FieldScanner] = {}

    # -- Connection management ---------------------------------------------

    def _open(self, connection_string: str) -> Any:
        """Return an open DB-API connection.

        Single-connection adapters must override this; the PostgreSQL family
        opens a pool in ``_connect`` and leaves it unimplemented.
        """
        raise NotImplementedError

    def _connect(self, connection_string: str, ctx: OperationContext | None) -> None:
        conn = self._open(connection_string)
        try:
            self._ping(conn, ctx)
        except BaseException:
            self._close_quietly(conn)
            raise
        self._conn = conn

    def _ping(self, conn: Any, ctx: OperationContext | None) -> None:
        check(ctx, "connect")
        try:
            cursor = conn.cursor()
            try:
                cursor.execute(self.dialect.ping())
                cursor.fetchall()
            finally:
                cursor.close()
            # end the implicit transaction opened by the ping
            conn.rollback()
        except self.driver_errors as e:
            raise StorageConnectionError(
                f"liveness check failed for {self.backend_name}: {e}", cause=e
            ).with_context(backend=self.backend_name) from e

    def _close_quietly(self, conn: Any) -> None:
        try:
            conn.close()
        except self.driver_errors as e:
            self._log.warning("close_failed", error=str(e))

    def _disconnect(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._close_quietly(self._conn)
                self._conn = None
            self._scanners.clear()

    def _acquire(self, ctx: OperationContext | None = None) -> Any:
        wait_for(self._lock, ctx, "acquire_connection")
        if self._conn is None:
            self._lock.release()
            raise StorageConnectionError("not connected").with_context(backend=self.backend_name)
        return self._conn

    def _release(self, conn: Any) -> None:  # noqa: ARG002
        self._lock.release()

    @contextmanager
    def _session(
        self, tx: Transaction | None, ctx: OperationContext | None = None
    ) -> Iterator[tuple[Any, bool]]:
        """Yield ``(connection, autocommit)`` for one operation."""
        if tx is not None:
            yield tx.handle, False
            return
        conn = self._acquire(ctx)
        try:
            yield conn, True
        finally:
            self._release(conn)

    # -- Statement execution -----------------------------------------------

    def _execute(
        self,
        operation: str,
        statement: str,
        params: list[Any],
        *,
        tx: Transaction | None,
        ctx: OperationContext | None,
        fetch: bool = False,
    ) -> tuple[int, list[Any]]:
        """Run one statement; return ``(rowcount, rows)``."""
        check(ctx, operation)
        log_statement(self._log, statement, params, operation=operation)
        with self._session(tx, ctx) as (conn, autocommit):
            try:
                cursor = conn.cursor()
                try:
                    cursor.execute(statement, params)
                    rows = cursor.fetchall() if fetch else []
                    rowcount = cursor.rowcount
                finally:
                    cursor.close()
                if autocommit:
                    conn.commit()
            except self.driver_errors as e:
                if autocommit:
                    self._rollback_quietly(conn)
                raise BackendError(f"{operation} failed: {e}", cause=e).with_context(
                    operation=operation, backend=self.backend_name
                ) from e
        return rowcount, rows

    def _rollback_quietly(self, conn: Any) -> None:
        try:
            conn.rollback()
        except self.driver_errors as e:
            self._log.warning("rollback_failed", error=str(e))

    def scanner(self, table: TableSchema) -> FieldScanner:
        # alter_table swaps in a new TableSchema, which invalidates the cached scanner
        scanner = self._scanners.get(table.name)
        if scanner is None or scanner.table is not table:
            scanner = FieldScanner(table, self.dialect)
            self._scanners[table.name] = scanner
        return scanner

    # -- Schema ------------------------------------------------------------

    def _table_exists(self, table: TableSchema, ctx: OperationContext | None) -> bool:
        query, params = self.dialect.table_exists(table.name)
        _, rows = self._execute("create_tables", query, params, tx=None, ctx=ctx, fetch=True)
        return bool(rows)

    def _create_table(self, table: TableSchema, ctx: OperationContext | None) -> bool:
        if self._table_exists(table, ctx):
            return False
        self._execute("create_tables", self.dialect.create_table(table), [], tx=None, ctx=ctx)
        for statement in self.dialect.create_indexes(table):
            self._execute("create_tables", statement, [], tx=None, ctx=ctx)
        return True

    def _alter_table(
        self, table: TableSchema, column: ColumnData, ctx: OperationContext | None
    ) -> None:
        self._execute("alter_table", self.dialect.add_column(table.name, column), [], tx=None, ctx=ctx)

    # -- CRUD --------------------------------------------------------------

    def _insert(
        self, table: TableSchema, obj: Object, tx: Transaction | None, ctx: OperationContext | None
    ) -> None:
        scanner = self.scanner(table)
        columns, params = scanner.bind_insert(obj)
        missing = scanner.missing_required(obj)
        if not missing:
            self._execute("insert", self.dialect.upsert(table, columns), params, tx=tx, ctx=ctx)
            return
        # NOT NULL is checked on the proposed row before ON CONFLICT resolves,
        # so a partial object is written as an update of the existing row.
        if not self._merge_existing(table, columns, params, tx, ctx):
            raise scanner.missing_required_error(obj, missing)

    def _merge_existing(
        self,
        table: TableSchema,
        columns: list[str],
        params: list[Any],
        tx: Transaction | None,
        ctx: OperationContext | None,
    ) -> bool:
        """Write the bound non-key columns into an existing row; False if there is none."""
        key = table.primary_key
        key_param = params[columns.index(key)]
        names = [c for c in columns if c != key]
        if not names:
            _, rows = self._execute(
                "insert", self.dialect.select_one(table, key), [key_param], tx=tx, ctx=ctx, fetch=True
            )
            return bool(rows)
        values = [p for c, p in zip(columns, params) if c != key]
        rowcount, _ = self._execute(
            "insert", self.dialect.update(table, names), values + [key_param], tx=tx, ctx=ctx
        )
        return rowcount > 0

    def _update(
        self, table: TableSchema, obj: Object, tx: Transaction | None, ctx: OperationContext | None
    ) -> bool:
        scanner = self.scanner(table)
        columns, params = scanner.bind_update(obj)
        params.append(scanner.lookup_param(scanner.key, obj.id))
        rowcount, _ = self._execute(
            "update", self.dialect.update(table, columns), params, tx=tx, ctx=ctx
        )
        return rowcount > 0

    def _find(
        self,
        table: TableSchema,
        key: str,
        value: str,
        tx: Transaction | None,
        ctx: OperationContext | None,
    ) -> Object | None:
        scanner = self.scanner(table)
        params = [scanner.lookup_param(key, value)]
        _, rows = self._execute(
            "find_by_key", self.dialect.select_one(table, key), params, tx=tx, ctx=ctx, fetch=True
        )
        if not rows:
            return None
        return scanner.scan_row(rows[0])

    def _delete(
        self, table: TableSchema, obj_id: str, tx: Transaction | None, ctx: OperationContext | None
    ) -> bool:
        scanner = self.scanner(table)
        params = [scanner.lookup_param(scanner.key, obj_id)]
        rowcount, _ = self._execute("delete_by_id", self.dialect.delete(table), params, tx=tx, ctx=ctx)
        return rowcount > 0

    # -- Transactions ------------------------------------------------------

    def _begin(self, ctx: OperationContext | None) -> Any:
        # The acquired connection stays reserved until commit/rollback
        return self._acquire(ctx)

    def _commit(self, handle: Any) -> None:
        try:
            handle.commit()
        except self.driver_errors as e:
            self._rollback_quietly(handle)
            raise BackendError(f"commit failed: {e}", cause=e) from e
        finally:
            self._release(handle)

    def _rollback(self, handle: Any) -> None:
        try:
            handle.rollback()
        except self.driver_errors as e:
            raise BackendError(f"rollback failed: {e}", cause=e) from e
        finally:
            self._release(handle)


__all__ = ["SQLStorage", "wait_for"]
