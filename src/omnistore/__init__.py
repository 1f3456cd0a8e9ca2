"""
omnistore - one storage contract over SQL databases, ScyllaDB and S3.

Modules
-------
schema      Schema / TableSchema / ColumnData and the TypeTag vocabulary
object      Object: table name, id and a field map, with typed getters
scanner     Value codecs and the per-table FieldScanner
dialect     SQL dialect strategies (SQLite, PostgreSQL family, MySQL family,
            Oracle, DB2, CQL)
storage     Storage contract, SQL engine and every adapter
orm         ORM façade binding a schema to a storage
introspect  Reverse-engineer a Schema from a live database
errors      StoreError hierarchy
context     OperationContext (deadline / cancellation)
settings    StoreSettings (OMNISTORE_* environment)
logging     structlog configuration

Example:
    >>> from omnistore import ORM, Object, Schema, TableSchema, ColumnData, open_storage
    >>> users = TableSchema("users")
    >>> users.add_column(ColumnData("id", "TEXT", primary_key=True))
    >>> users.add_column(ColumnData("email", "TEXT", unique=True, nullable=False))
    >>> schema = Schema("app")
    >>> schema.add_table(users)
    >>> orm = ORM(schema).with_storage(open_storage("sqlite:///:memory:"))
    >>> orm.create_tables()
    >>> orm.insert(Object("users", "u1", {"email": "a@b.com"})).created
    True
"""

__version__ = "0.1.0"

from omnistore.context import OperationContext, new_context
from omnistore.errors import (
    BackendError,
    ConfigError,
    ErrorCategory,
    NotConnectedError,
    OperationCancelledError,
    OperationTimeoutError,
    SchemaError,
    SchemaNotInitializedError,
    StorageConnectionError,
    StoreError,
    TransactionError,
    UnknownFieldError,
    UnknownTableError,
    UnsupportedOperationError,
    ValidationError,
)
from omnistore.object import Object
from omnistore.orm import ORM
from omnistore.schema import ColumnData, Schema, TableSchema, TypeTag
from omnistore.storage import (
    InsertResult,
    Storage,
    StorageState,
    Transaction,
    get_storage,
    open_storage,
    storage_for_url,
)

__all__ = [
    "__version__",
    # Model
    "Schema",
    "TableSchema",
    "ColumnData",
    "TypeTag",
    "Object",
    # Storage
    "Storage",
    "StorageState",
    "InsertResult",
    "Transaction",
    "get_storage",
    "storage_for_url",
    "open_storage",
    "ORM",
    # Context
    "OperationContext",
    "new_context",
    # Errors
    "StoreError",
    "ErrorCategory",
    "StorageConnectionError",
    "NotConnectedError",
    "SchemaError",
    "SchemaNotInitializedError",
    "UnknownTableError",
    "UnknownFieldError",
    "ValidationError",
    "TransactionError",
    "BackendError",
    "UnsupportedOperationError",
    "ConfigError",
    "OperationTimeoutError",
    "OperationCancelledError",
]
