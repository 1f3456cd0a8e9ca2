"""SQLite storage adapter.

Accepted connection strings::

    sqlite:///relative/or/absolute.db
    sqlite:///:memory:
    :memory:
    file:shared?mode=memory&cache=shared
    /plain/path/app.db
"""

from __future__ import annotations

import sqlite3
from typing import Any

from omnistore.dialect import SQLiteDialect
from omnistore.errors import StorageConnectionError
from omnistore.storage.sql import SQLStorage


def sqlite_path(connection_string: str) -> str:
    """Strip the ``sqlite://`` scheme; everything else is passed to sqlite3 as-is."""
    for prefix in ("sqlite:///", "sqlite://"):
        if connection_string.startswith(prefix):
            return connection_string[len(prefix):] or ":memory:"
    return connection_string


class SQLiteStorage(SQLStorage):
    """
    SQLite storage over the built-in sqlite3 module.

    One connection, shared across threads under the engine lock.
    """

    backend_name = "sqlite"
    dialect = SQLiteDialect()
    driver_errors = (sqlite3.Error,)

    def __init__(self, *, timeout: float = 5.0):
        super().__init__()
        self._timeout = timeout
        self.path: str | None = None

    def _open(self, connection_string: str) -> Any:
        path = sqlite_path(connection_string)
        uri = path.startswith("file:")
        try:
            conn = sqlite3.connect(
                path,
                timeout=self._timeout,
                check_same_thread=False,
                uri=uri,
            )
        except sqlite3.Error as e:
            raise StorageConnectionError(
                f"Failed to connect to SQLite: {e}", cause=e
            ).with_context(backend=self.backend_name) from e
        self.path = path
        return conn


__all__ = ["SQLiteStorage", "sqlite_path"]
