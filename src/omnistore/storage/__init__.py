"""Storage adapters: one capability contract over SQL, wide-column and object stores.

Manifesto:
    Application code talks to a ``Storage``; the backend is a connection
    string. Relational adapters share one SQL engine and differ only in
    their dialect and driver. ScyllaDB and S3 implement the same contract
    natively and refuse transactions explicitly.

    Drivers other than sqlite3 and boto3 are **import-guarded**: they are
    only required at ``connect()`` time. Install the matching extra::

        pip install omnistore[postgresql]   # psycopg2-binary
        pip install omnistore[mysql]        # mysql-connector-python
        pip install omnistore[oracle]       # oracledb
        pip install omnistore[db2]          # ibm-db
        pip install omnistore[scylla]       # cassandra-driver

Architecture::

    Storage (base.py)                Contract, validation, state machine
        |-- SQLStorage (sql.py)      DB-API engine + Dialect
        |     |-- SQLiteStorage      stdlib sqlite3
        |     |-- PostgreSQLStorage  psycopg2 pool (+ CockroachDB, YugabyteDB)
        |     |-- MySQLStorage       mysql.connector (+ TiDB)
        |     |-- OracleStorage      oracledb
        |     |-- DB2Storage         ibm_db_dbi
        |-- ScyllaStorage            cassandra-driver
        |-- S3Storage                boto3

    StorageRegistry (registry.py)    backend name / URL scheme -> adapter

Guardrails:
    ❌ ``storage.insert_tx(None, obj)`` expecting a plain insert
    ✅ non-transactional backends raise TransactionError on every ``*_tx``
    ❌ ``SQLiteStorage()`` hard-coded in application code
    ✅ ``open_storage(settings.url)``

Tags:
    storage, adapters, multi-backend, import-guarded, registry-pattern

Doc-Types:
    package-overview, architecture-map, module-index
"""

from .base import InsertResult, NonTransactional, Storage, StorageState, Transaction
from .db2 import DB2Storage
from .mysql import MySQLStorage, TiDBStorage
from .oracle import OracleStorage
from .postgresql import CockroachDBStorage, PostgreSQLStorage, YugabyteDBStorage
from .registry import (
    StorageRegistry,
    get_storage,
    open_storage,
    open_storage_from_settings,
    storage_for_url,
    storage_registry,
)
from .s3 import S3Storage
from .scylla import ScyllaStorage
from .sql import SQLStorage
from .sqlite import SQLiteStorage
from .types import BackendType, ConnectionConfig, parse_connection_string

__all__ = [
    # Contract
    "Storage",
    "StorageState",
    "InsertResult",
    "Transaction",
    "NonTransactional",
    "SQLStorage",
    # Adapters
    "SQLiteStorage",
    "PostgreSQLStorage",
    "CockroachDBStorage",
    "YugabyteDBStorage",
    "MySQLStorage",
    "TiDBStorage",
    "OracleStorage",
    "DB2Storage",
    "ScyllaStorage",
    "S3Storage",
    # Registry
    "StorageRegistry",
    "storage_registry",
    "get_storage",
    "storage_for_url",
    "open_storage",
    "open_storage_from_settings",
    # Types
    "BackendType",
    "ConnectionConfig",
    "parse_connection_string",
]
