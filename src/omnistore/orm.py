"""ORM façade: one call path over a schema and a chosen storage.

Manifesto:
    Application code holds an ``ORM`` bound to its schema and never needs
    to know which adapter sits underneath. Swapping SQLite for S3 or
    PostgreSQL is a different ``with_storage()`` argument, nothing more.

Architecture::

    ORM(schema) ──with_storage(storage)──► ORM
        │  connect / create_tables / alter_table / reset_connection
        │  insert / upsert / update / find_by_id / find_by_key / delete_by_id
        │  begin_tx / commit_tx / rollback_tx / transaction / *_tx
        ▼
    Storage (any adapter)

Guardrails:
    ❌ ``ORM(schema).insert(obj)`` with no storage bound
    ✅ ``ORM(schema).with_storage(open_storage(url))``

Tags:
    orm, facade, storage

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from omnistore.context import OperationContext
from omnistore.errors import NotConnectedError
from omnistore.object import Object
from omnistore.schema import Schema
from omnistore.storage.base import InsertResult, Storage, Transaction


class ORM:
    """Binds a :class:`Schema` to a :class:`Storage` and delegates every call."""

    def __init__(self, schema: Schema, storage: Storage | None = None):
        self.schema = schema
        self._storage = storage

    def with_storage(self, storage: Storage) -> ORM:
        """Attach ``storage`` and return self for chaining."""
        self._storage = storage
        return self

    @property
    def storage(self) -> Storage:
        if self._storage is None:
            raise NotConnectedError("no storage configured for ORM")
        return self._storage

    def _key_for(self, table: str) -> str:
        table_schema = self.schema.get_table(table)
        return table_schema.primary_key if table_schema is not None else "id"

    # -- Lifecycle ---------------------------------------------------------

    def connect(self, connection_string: str, *, ctx: OperationContext | None = None) -> None:
        self.storage.connect(connection_string, ctx=ctx)

    def disconnect(self) -> None:
        self.storage.disconnect()

    def reset_connection(self, *, ctx: OperationContext | None = None) -> None:
        self.storage.reset_connection(ctx=ctx)

    def create_tables(self, *, ctx: OperationContext | None = None) -> None:
        """Materialize the bound schema."""
        self.storage.create_tables(self.schema, ctx=ctx)

    def alter_table(
        self,
        table: str,
        column_name: str,
        data_type: str,
        nullable: bool = True,
        *,
        ctx: OperationContext | None = None,
    ) -> None:
        self.storage.alter_table(table, column_name, data_type, nullable, ctx=ctx)
        # keep the façade's view in step with the storage snapshot
        bound = self.storage.schema
        if bound is not None:
            self.schema = bound

    # -- CRUD --------------------------------------------------------------

    def insert(self, obj: Object, *, ctx: OperationContext | None = None) -> InsertResult:
        return self.storage.insert(obj, ctx=ctx)

    def upsert(self, obj: Object, *, ctx: OperationContext | None = None) -> InsertResult:
        return self.storage.upsert(obj, ctx=ctx)

    def update(self, obj: Object, *, ctx: OperationContext | None = None) -> bool:
        return self.storage.update(obj, ctx=ctx)

    def find_by_id(
        self, table: str, obj_id: str, *, ctx: OperationContext | None = None
    ) -> Object | None:
        return self.find_by_key(table, self._key_for(table), obj_id, ctx=ctx)

    def find_by_key(
        self, table: str, key: str, value: str, *, ctx: OperationContext | None = None
    ) -> Object | None:
        return self.storage.find_by_key(table, key, value, ctx=ctx)

    def delete_by_id(self, table: str, obj_id: str, *, ctx: OperationContext | None = None) -> bool:
        return self.storage.delete_by_id(table, obj_id, ctx=ctx)

    # -- Transactions ------------------------------------------------------

    def begin_tx(self, *, ctx: OperationContext | None = None) -> Transaction:
        return self.storage.begin_tx(ctx=ctx)

    def commit_tx(self, tx: Transaction | None) -> None:
        self.storage.commit_tx(tx)

    def rollback_tx(self, tx: Transaction | None) -> None:
        self.storage.rollback_tx(tx)

    @contextmanager
    def transaction(self, *, ctx: OperationContext | None = None) -> Iterator[Transaction]:
        with self.storage.transaction(ctx=ctx) as tx:
            yield tx

    def insert_tx(
        self, tx: Transaction | None, obj: Object, *, ctx: OperationContext | None = None
    ) -> InsertResult:
        return self.storage.insert_tx(tx, obj, ctx=ctx)

    def upsert_tx(
        self, tx: Transaction | None, obj: Object, *, ctx: OperationContext | None = None
    ) -> InsertResult:
        return self.storage.upsert_tx(tx, obj, ctx=ctx)

    def update_tx(
        self, tx: Transaction | None, obj: Object, *, ctx: OperationContext | None = None
    ) -> bool:
        return self.storage.update_tx(tx, obj, ctx=ctx)

    def find_by_id_tx(
        self, tx: Transaction | None, table: str, obj_id: str, *, ctx: OperationContext | None = None
    ) -> Object | None:
        return self.storage.find_by_key_tx(tx, table, self._key_for(table), obj_id, ctx=ctx)

    def find_by_key_tx(
        self,
        tx: Transaction | None,
        table: str,
        key: str,
        value: str,
        *,
        ctx: OperationContext | None = None,
    ) -> Object | None:
        return self.storage.find_by_key_tx(tx, table, key, value, ctx=ctx)

    def delete_by_id_tx(
        self, tx: Transaction | None, table: str, obj_id: str, *, ctx: OperationContext | None = None
    ) -> bool:
        return self.storage.delete_by_id_tx(tx, table, obj_id, ctx=ctx)


__all__ = ["ORM"]
