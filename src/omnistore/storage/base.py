"""Storage capability contract.

Manifesto:
    Every backend, relational or not, answers the same calls with the same
    semantics: connect with an active liveness check, idempotent table
    creation, upsert-style insert, partial update, key lookup, delete and
    (where the backend can) transactions. Callers switch backends by
    changing a connection string, nothing else.

Architecture::

    Storage (ABC)                       public template methods
      │  connect / create_tables / alter_table / insert / update /
      │  upsert / find_by_id / find_by_key / delete_by_id / *_tx
      │
      │  validation order: arguments → connection → schema → table/field
      │                    → ctx.check() → backend hook
      ▼
    backend hooks (_connect, _create_table, _insert, _update, _find,
                   _delete, _begin, _commit, _rollback, _alter_table)
      ├── SQLStorage ──► SQLiteStorage, PostgreSQLStorage, MySQLStorage,
      │                  OracleStorage, DB2Storage
      ├── ScyllaStorage      (NonTransactional)
      └── S3Storage          (NonTransactional)

State machine::

    UNCONNECTED ──connect──► CONNECTED ──create_tables──► SCHEMA_BOUND
         ▲                       ▲                              │
         └────── disconnect ─────┴──── reset_connection ────────┘

    CRUD before SCHEMA_BOUND raises SchemaNotInitializedError; anything
    before CONNECTED raises NotConnectedError.

Features:
    - **InsertResult:** ``(snapshot, created)``; ``created`` reports that the
      write succeeded, and is True for both fresh rows and overwrites
    - **Immutable schema snapshot:** bound at create_tables, swapped under a
      lock by alter_table
    - **Transaction handles:** validated (nil, finished, foreign) before use
    - **NonTransactional:** one consistent TransactionError for every
      transactional call on backends without transactions

Tags:
    storage, contract, adapter-pattern, crud, transactions

Doc-Types:
    api-reference
"""

from __future__ import annotations

import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, NamedTuple

from omnistore.context import OperationContext, check
from omnistore.errors import (
    NotConnectedError,
    SchemaNotInitializedError,
    StoreError,
    TransactionError,
    UnknownFieldError,
    UnknownTableError,
    ValidationError,
)
from omnistore.logging import get_logger
from omnistore.object import Object
from omnistore.schema import ColumnData, Schema, TableSchema


class StorageState(str, Enum):
    UNCONNECTED = "unconnected"
    CONNECTED = "connected"
    SCHEMA_BOUND = "schema_bound"


class InsertResult(NamedTuple):
    """Result of insert/upsert: JSON snapshot of the written object and the success flag."""

    snapshot: bytes
    created: bool


@dataclass(eq=False)
class Transaction:
    """Handle returned by ``begin_tx``; only valid on the storage that issued it."""

    storage: Storage
    handle: Any
    tx_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    finished: bool = False


class Storage(ABC):
    """
    Abstract base class for storage adapters.

    Subclasses implement the backend hooks; the public methods here own
    argument validation, state checks, schema resolution and logging.
    """

    backend_name: ClassVar[str] = "storage"
    supports_transactions: ClassVar[bool] = True

    def __init__(self) -> None:
        self._state = StorageState.UNCONNECTED
        self._schema: Schema | None = None
        self._schema_lock = threading.Lock()
        self._connection_string: str | None = None
        # A fresh proxy per instance picks up the logging config in force now
        self._log = get_logger(__name__).bind(backend=self.backend_name)

    # -- Introspection -----------------------------------------------------

    @property
    def state(self) -> StorageState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is not StorageState.UNCONNECTED

    @property
    def schema(self) -> Schema | None:
        """Currently bound schema snapshot (None before create_tables)."""
        return self._schema

    # -- Backend hooks -----------------------------------------------------

    @abstractmethod
    def _connect(self, connection_string: str, ctx: OperationContext | None) -> None:
        """Open the backend handle and verify liveness."""
        ...

    @abstractmethod
    def _disconnect(self) -> None:
        ...

    @abstractmethod
    def _create_table(self, table: TableSchema, ctx: OperationContext | None) -> bool:
        """Create ``table`` unless it exists; return True when created."""
        ...

    @abstractmethod
    def _alter_table(
        self, table: TableSchema, column: ColumnData, ctx: OperationContext | None
    ) -> None:
        ...

    @abstractmethod
    def _insert(
        self, table: TableSchema, obj: Object, tx: Transaction | None, ctx: OperationContext | None
    ) -> None:
        ...

    @abstractmethod
    def _update(
        self, table: TableSchema, obj: Object, tx: Transaction | None, ctx: OperationContext | None
    ) -> bool:
        ...

    @abstractmethod
    def _find(
        self,
        table: TableSchema,
        key: str,
        value: str,
        tx: Transaction | None,
        ctx: OperationContext | None,
    ) -> Object | None:
        ...

    @abstractmethod
    def _delete(
        self, table: TableSchema, obj_id: str, tx: Transaction | None, ctx: OperationContext | None
    ) -> bool:
        ...

    def _begin(self, ctx: OperationContext | None) -> Any:
        raise self._unsupported_tx()

    def _commit(self, handle: Any) -> None:
        raise self._unsupported_tx()

    def _rollback(self, handle: Any) -> None:
        raise self._unsupported_tx()

    # -- Lifecycle ---------------------------------------------------------

    def connect(self, connection_string: str, *, ctx: OperationContext | None = None) -> None:
        """Parse ``connection_string``, open the backend and probe it."""
        if not isinstance(connection_string, str) or not connection_string.strip():
            raise ValidationError("connection string must not be empty", field="connection_string")
        check(ctx, "connect")
        if self.is_connected:
            self._disconnect()
            self._state = StorageState.UNCONNECTED
        self._connect(connection_string, ctx)
        self._connection_string = connection_string
        with self._schema_lock:
            self._schema = None
        self._state = StorageState.CONNECTED
        self._log.info("storage_connected")

    def disconnect(self) -> None:
        """Release the backend handle and bound schema. Idempotent."""
        if not self.is_connected:
            return
        self._disconnect()
        with self._schema_lock:
            self._schema = None
        self._state = StorageState.UNCONNECTED
        self._log.info("storage_disconnected")

    def reset_connection(self, *, ctx: OperationContext | None = None) -> None:
        """Close and reopen the backend handle, dropping the bound schema.

        The storage ends up CONNECTED; call ``create_tables`` again before
        CRUD. Does nothing when the storage was never connected.
        """
        if self._connection_string is None:
            return
        check(ctx, "reset_connection")
        if self.is_connected:
            self._disconnect()
        self._state = StorageState.UNCONNECTED
        with self._schema_lock:
            self._schema = None
        self._connect(self._connection_string, ctx)
        self._state = StorageState.CONNECTED
        self._log.info("storage_reset")

    def __enter__(self) -> Storage:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()

    # -- Schema ------------------------------------------------------------

    def create_tables(self, schema: Schema, *, ctx: OperationContext | None = None) -> None:
        """Create every table in ``schema`` that does not exist yet and bind a snapshot."""
        if not isinstance(schema, Schema):
            raise ValidationError("schema must not be empty", field="schema")
        self._require_connected()
        snapshot = schema.freeze()
        for table in snapshot.tables.values():
            check(ctx, "create_tables")
            created = self._guard("create_tables", table.name, None, lambda: self._create_table(table, ctx))
            self._log.info("table_created" if created else "table_skipped", table=table.name)
        with self._schema_lock:
            self._schema = snapshot
        self._state = StorageState.SCHEMA_BOUND

    def alter_table(
        self,
        table: str,
        column_name: str,
        data_type: str,
        nullable: bool = True,
        *,
        ctx: OperationContext | None = None,
    ) -> None:
        """Add exactly one column to an existing table."""
        if not table or not column_name or not data_type:
            raise ValidationError("table name, column name, and data type must not be empty")
        column = ColumnData(column_name, data_type, nullable=nullable)
        table_schema = self._resolve(table)
        if column_name in table_schema.columns:
            raise ValidationError(
                f"column {column_name} already exists in table {table}", field=column_name
            )
        check(ctx, "alter_table")
        self._guard("alter_table", table, None, lambda: self._alter_table(table_schema, column, ctx))
        with self._schema_lock:
            self._schema = self._schema.with_column(table, column)
        self._log.info("column_added", table=table, column=column_name)

    # -- CRUD --------------------------------------------------------------

    def insert(self, obj: Object, *, ctx: OperationContext | None = None) -> InsertResult:
        """Insert or overwrite ``obj`` keyed on its id."""
        return self._write("insert", obj, None, ctx)

    def upsert(self, obj: Object, *, ctx: OperationContext | None = None) -> InsertResult:
        """Alias of :meth:`insert`."""
        return self._write("upsert", obj, None, ctx)

    def update(self, obj: Object, *, ctx: OperationContext | None = None) -> bool:
        """Update the present fields of ``obj``; False when no row matched."""
        return self._modify(obj, None, ctx)

    def find_by_id(
        self, table: str, obj_id: str, *, ctx: OperationContext | None = None
    ) -> Object | None:
        return self._lookup(table, None, obj_id, None, ctx)

    def find_by_key(
        self, table: str, key: str, value: str, *, ctx: OperationContext | None = None
    ) -> Object | None:
        """First object whose ``key`` column equals ``value`` (coerced to the column type)."""
        return self._lookup(table, key, value, None, ctx)

    def delete_by_id(self, table: str, obj_id: str, *, ctx: OperationContext | None = None) -> bool:
        """Delete one object; False when it did not exist."""
        return self._remove(table, obj_id, None, ctx)

    # -- Transactions ------------------------------------------------------

    def begin_tx(self, *, ctx: OperationContext | None = None) -> Transaction:
        if not self.supports_transactions:
            raise self._unsupported_tx()
        self._require_connected()
        check(ctx, "begin_tx")
        handle = self._guard("begin_tx", None, None, lambda: self._begin(ctx))
        tx = Transaction(storage=self, handle=handle)
        self._log.debug("transaction_started", tx_id=tx.tx_id)
        return tx

    def commit_tx(self, tx: Transaction | None) -> None:
        self._check_tx(tx)
        try:
            self._guard("commit_tx", None, None, lambda: self._commit(tx.handle))
        finally:
            tx.finished = True
        self._log.debug("transaction_committed", tx_id=tx.tx_id)

    def rollback_tx(self, tx: Transaction | None) -> None:
        self._check_tx(tx)
        try:
            self._guard("rollback_tx", None, None, lambda: self._rollback(tx.handle))
        finally:
            tx.finished = True
        self._log.debug("transaction_rolled_back", tx_id=tx.tx_id)

    @contextmanager
    def transaction(self, *, ctx: OperationContext | None = None) -> Iterator[Transaction]:
        """Commit on success, roll back on exception."""
        tx = self.begin_tx(ctx=ctx)
        try:
            yield tx
        except Exception:
            if not tx.finished:
                self.rollback_tx(tx)
            raise
        if not tx.finished:
            self.commit_tx(tx)

    def insert_tx(
        self, tx: Transaction | None, obj: Object, *, ctx: OperationContext | None = None
    ) -> InsertResult:
        self._check_tx(tx)
        return self._write("insert", obj, tx, ctx)

    def upsert_tx(
        self, tx: Transaction | None, obj: Object, *, ctx: OperationContext | None = None
    ) -> InsertResult:
        self._check_tx(tx)
        return self._write("upsert", obj, tx, ctx)

    def update_tx(
        self, tx: Transaction | None, obj: Object, *, ctx: OperationContext | None = None
    ) -> bool:
        self._check_tx(tx)
        return self._modify(obj, tx, ctx)

    def find_by_id_tx(
        self, tx: Transaction | None, table: str, obj_id: str, *, ctx: OperationContext | None = None
    ) -> Object | None:
        self._check_tx(tx)
        return self._lookup(table, None, obj_id, tx, ctx)

    def find_by_key_tx(
        self,
        tx: Transaction | None,
        table: str,
        key: str,
        value: str,
        *,
        ctx: OperationContext | None = None,
    ) -> Object | None:
        self._check_tx(tx)
        return self._lookup(table, key, value, tx, ctx)

    def delete_by_id_tx(
        self, tx: Transaction | None, table: str, obj_id: str, *, ctx: OperationContext | None = None
    ) -> bool:
        self._check_tx(tx)
        return self._remove(table, obj_id, tx, ctx)

    # -- Shared flow -------------------------------------------------------

    def _write(
        self, operation: str, obj: Object, tx: Transaction | None, ctx: OperationContext | None
    ) -> InsertResult:
        table = self._prepare_object(obj)
        check(ctx, operation)
        self._guard(operation, table.name, obj.id, lambda: self._insert(table, obj, tx, ctx))
        self._log.debug("object_written", table=table.name, object_id=obj.id)
        return InsertResult(obj.to_json(), True)

    def _modify(self, obj: Object, tx: Transaction | None, ctx: OperationContext | None) -> bool:
        table = self._prepare_object(obj)
        check(ctx, "update")
        return self._guard("update", table.name, obj.id, lambda: self._update(table, obj, tx, ctx))

    def _lookup(
        self,
        table: str,
        key: str | None,
        value: str,
        tx: Transaction | None,
        ctx: OperationContext | None,
    ) -> Object | None:
        operation = "find_by_id" if key is None else "find_by_key"
        validate_find_params(table, "id" if key is None else key, value)
        table_schema = self._resolve(table)
        if key is None:
            key = table_schema.primary_key
        elif key not in table_schema.columns:
            raise UnknownFieldError(key, table)
        check(ctx, operation)
        return self._guard(operation, table, value, lambda: self._find(table_schema, key, value, tx, ctx))

    def _remove(
        self, table: str, obj_id: str, tx: Transaction | None, ctx: OperationContext | None
    ) -> bool:
        if not table or not isinstance(obj_id, str) or not obj_id:
            raise ValidationError("table name and id must not be empty")
        table_schema = self._resolve(table)
        check(ctx, "delete_by_id")
        return self._guard(
            "delete_by_id", table, obj_id, lambda: self._delete(table_schema, obj_id, tx, ctx)
        )

    def _guard(self, operation: str, table: str | None, object_id: str | None, call: Any) -> Any:
        """Run a hook, filling in missing operation context on StoreErrors."""
        try:
            return call()
        except StoreError as e:
            if e.context.operation is None:
                e.with_context(operation=operation)
            if e.context.backend is None:
                e.with_context(backend=self.backend_name)
            if table is not None and e.context.table is None:
                e.with_context(table=table)
            if object_id is not None and e.context.object_id is None:
                e.with_context(object_id=object_id)
            raise

    # -- Validation --------------------------------------------------------

    def _require_connected(self) -> None:
        if not self.is_connected:
            raise NotConnectedError().with_context(backend=self.backend_name)

    def _require_schema(self) -> Schema:
        self._require_connected()
        schema = self._schema
        if schema is None:
            raise SchemaNotInitializedError().with_context(backend=self.backend_name)
        return schema

    def _resolve(self, table: str) -> TableSchema:
        table_schema = self._require_schema().get_table(table)
        if table_schema is None:
            raise UnknownTableError(table).with_context(backend=self.backend_name)
        return table_schema

    def _prepare_object(self, obj: Object) -> TableSchema:
        if not isinstance(obj, Object):
            raise ValidationError("object must not be empty", field="object")
        if not obj.table_name:
            raise ValidationError("object table name must not be empty", field="table_name")
        if not isinstance(obj.id, str) or not obj.id:
            raise ValidationError("object id must not be empty", field="id")
        return self._resolve(obj.table_name)

    def _check_tx(self, tx: Transaction | None) -> None:
        if not self.supports_transactions:
            raise self._unsupported_tx()
        if tx is None:
            raise TransactionError("transaction is nil").with_context(backend=self.backend_name)
        if not isinstance(tx, Transaction) or tx.storage is not self:
            raise TransactionError("transaction belongs to another storage").with_context(
                backend=self.backend_name
            )
        if tx.finished:
            raise TransactionError("transaction already finished").with_context(
                backend=self.backend_name, tx_id=tx.tx_id
            )

    def _unsupported_tx(self) -> TransactionError:
        return TransactionError(
            f"{self.backend_name} does not support transactions"
        ).with_context(backend=self.backend_name)


class NonTransactional:
    """Mixin for backends without transactions.

    ``begin_tx`` and every ``*_tx`` method raise the same TransactionError;
    nothing silently falls back to the non-transactional path.
    """

    supports_transactions: ClassVar[bool] = False


def validate_find_params(table: str, key: str, value: str) -> None:
    """Reject empty lookup arguments before touching the backend."""
    if not table or not key or not isinstance(value, str) or not value:
        raise ValidationError("table name, key, and value must not be empty")


__all__ = [
    "Storage",
    "StorageState",
    "InsertResult",
    "Transaction",
    "NonTransactional",
    "validate_find_params",
]
