"""Reverse-engineer a :class:`~omnistore.schema.Schema` from a live database.

Two parsers over a DB-API connection:

- ``SQLiteSchemaParser``: ``sqlite_master`` plus ``PRAGMA table_info``,
  ``index_list`` and ``index_info``.
- ``InformationSchemaParser``: MySQL-family ``information_schema``
  (``COLUMN_KEY`` PRI/UNI/MUL, ``EXTRA`` auto_increment, ``STATISTICS``).

Both return unfrozen schemas, so the result can be edited before being
handed to ``create_tables``.

Example:
    >>> import sqlite3
    >>> conn = sqlite3.connect(":memory:")
    >>> _ = conn.execute("CREATE TABLE users (id TEXT PRIMARY KEY, age INTEGER)")
    >>> SQLiteSchemaParser(conn).parse_table("main", "users").primary_key
    'id'
"""

from __future__ import annotations

from typing import Any

from omnistore.errors import UnknownTableError
from omnistore.logging import get_logger
from omnistore.schema import ColumnData, Schema, TableSchema, TypeTag

logger = get_logger(__name__)


def _query(conn: Any, statement: str, params: tuple[Any, ...] = ()) -> list[tuple[Any, ...]]:
    cursor = conn.cursor()
    try:
        cursor.execute(statement, params)
        return [tuple(row) for row in cursor.fetchall()]
    finally:
        cursor.close()


# Native catalog types that TypeTag.parse does not know by name
_NATIVE_TAGS = {
    "BIGINT": TypeTag.INTEGER,
    "SMALLINT": TypeTag.INTEGER,
    "MEDIUMINT": TypeTag.INTEGER,
    "TINYINT": TypeTag.INTEGER,
    "DOUBLE": TypeTag.REAL,
    "DECIMAL": TypeTag.REAL,
    "NUMERIC": TypeTag.REAL,
    "BOOL": TypeTag.BOOLEAN,
    "LONGBLOB": TypeTag.BLOB,
    "MEDIUMBLOB": TypeTag.BLOB,
    "VARBINARY": TypeTag.BLOB,
    "BINARY": TypeTag.BLOB,
}


def native_tag(data_type: str | None) -> TypeTag:
    """Map a catalog type (``bigint``, ``tinyint(1)``, ``varchar(255)``) to a TypeTag."""
    text = (data_type or "TEXT").strip().upper()
    if text == "TINYINT(1)":
        return TypeTag.BOOLEAN
    return _NATIVE_TAGS.get(text.split("(", 1)[0].strip(), TypeTag.parse(text))


def _quoted(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _sql_literal(value: Any) -> Any:
    """Unquote a ``'text'`` default as reported by the catalog."""
    if isinstance(value, str) and len(value) >= 2 and value[0] == value[-1] == "'":
        return value[1:-1].replace("''", "'")
    return value


class SQLiteSchemaParser:
    """Schema parser for SQLite (which has no information_schema)."""

    def __init__(self, conn: Any):
        self.conn = conn

    def table_names(self, database: str = "main") -> list[str]:  # noqa: ARG002
        rows = _query(
            self.conn,
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name",
        )
        return [row[0] for row in rows]

    def parse_schema(self, database: str = "main") -> Schema:
        schema = Schema(database)
        for name in self.table_names(database):
            schema.add_table(self._parse(name))
        logger.debug("schema_parsed", database=database, tables=len(schema.tables))
        return schema

    def parse_table(self, database: str, table: str) -> TableSchema:
        if table not in self.table_names(database):
            raise UnknownTableError(table)
        return self._parse(table)

    def _parse(self, table: str) -> TableSchema:
        indexes = []
        for _seq, name, unique, *_ in _query(self.conn, f"PRAGMA index_list({_quoted(table)})"):
            index_columns = [
                row[2] for row in _query(self.conn, f"PRAGMA index_info({_quoted(name)})")
            ]
            indexes.append((name, bool(unique), index_columns))

        unique_columns = {cols[0] for _, unique, cols in indexes if unique and len(cols) == 1}
        indexed_columns = {col for _, _, cols in indexes for col in cols}

        schema = TableSchema(table)
        for _cid, name, data_type, notnull, default, pk in _query(
            self.conn, f"PRAGMA table_info({_quoted(table)})"
        ):
            schema.add_column(
                ColumnData(
                    name,
                    native_tag(data_type),
                    nullable=not notnull,
                    primary_key=bool(pk),
                    unique=name in unique_columns and not pk,
                    index=name in indexed_columns and name not in unique_columns and not pk,
                    auto_increment=bool(pk) and (data_type or "").upper() == "INTEGER",
                    default=_sql_literal(default),
                )
            )

        # auto indexes back UNIQUE/PRIMARY KEY constraints and are not named by the user
        for name, unique, _ in indexes:
            if name.startswith("sqlite_autoindex_"):
                continue
            if name not in schema.indexes:
                schema.indexes.append(name)
            if unique and name not in schema.unique_keys:
                schema.unique_keys.append(name)
        return schema


class InformationSchemaParser:
    """
    Schema parser for databases exposing a MySQL-style ``information_schema``.

    ``paramstyle`` is the driver's placeholder (``%s`` for mysql.connector).
    """

    def __init__(self, conn: Any, paramstyle: str = "%s"):
        self.conn = conn
        self.placeholder = paramstyle

    def table_names(self, database: str) -> list[str]:
        rows = _query(
            self.conn,
            "SELECT table_name FROM information_schema.tables "
            f"WHERE table_schema = {self.placeholder} AND table_type = 'BASE TABLE' "
            "ORDER BY table_name",
            (database,),
        )
        return [row[0] for row in rows]

    def database_names(self) -> list[str]:
        rows = _query(
            self.conn,
            "SELECT DISTINCT table_schema FROM information_schema.tables "
            "WHERE table_type = 'BASE TABLE' ORDER BY table_schema",
        )
        return [row[0] for row in rows]

    def parse_schema(self, database: str) -> Schema:
        schema = Schema(database)
        for name in self.table_names(database):
            schema.add_table(self._parse(database, name))
        logger.debug("schema_parsed", database=database, tables=len(schema.tables))
        return schema

    def parse_table(self, database: str, table: str) -> TableSchema:
        if table not in self.table_names(database):
            raise UnknownTableError(table)
        return self._parse(database, table)

    def _parse(self, database: str, table: str) -> TableSchema:
        p = self.placeholder
        schema = TableSchema(table)
        columns = _query(
            self.conn,
            "SELECT column_name, data_type, is_nullable, column_default, column_key, "
            "extra, column_comment FROM information_schema.columns "
            f"WHERE table_schema = {p} AND table_name = {p} ORDER BY ordinal_position",
            (database, table),
        )
        for name, data_type, is_nullable, default, key, extra, comment in columns:
            key = (key or "").upper()
            schema.add_column(
                ColumnData(
                    name,
                    native_tag(data_type),
                    nullable=(is_nullable or "").upper() == "YES",
                    primary_key=key == "PRI",
                    unique=key == "UNI",
                    index=key == "MUL",
                    auto_increment="AUTO_INCREMENT" in (extra or "").upper(),
                    default=_sql_literal(default),
                    comment=comment or "",
                )
            )

        statistics = _query(
            self.conn,
            "SELECT index_name, non_unique FROM information_schema.statistics "
            f"WHERE table_schema = {p} AND table_name = {p} ORDER BY index_name, seq_in_index",
            (database, table),
        )
        for name, non_unique in statistics:
            if name == "PRIMARY":
                continue
            if name not in schema.indexes:
                schema.indexes.append(name)
            if not int(non_unique) and name not in schema.unique_keys:
                schema.unique_keys.append(name)
        return schema


__all__ = ["SQLiteSchemaParser", "InformationSchemaParser", "native_tag"]
