"""SQL dialect strategies used by the generic SQL engine.

The generic engine in :mod:`omnistore.storage.sql` never writes
backend-specific SQL itself. It asks a ``Dialect`` for placeholders,
identifier quoting, native column types, the upsert statement and the
bind/scan conversions, so one CRUD implementation serves every SQL family.

Manifesto:
    SQLite, PostgreSQL, MySQL, Oracle and DB2 disagree on placeholders,
    identifier case, boolean storage, upsert syntax and row limiting.
    Putting those differences behind one interface keeps adapters down to
    connection handling.

    - **One interface:** Dialect protocol for all statement generation
    - **Zero coupling:** Dialects never import a database driver
    - **Registry:** get_dialect(name) chooses the right dialect

Architecture::

    ┌──────────┐ ┌──────────────┐ ┌─────────────┐ ┌──────────┐ ┌──────────┐
    │ SQLite   │ │ PostgreSQL   │ │ MySQL       │ │ Oracle   │ │  DB2     │
    │ ?        │ │ %s           │ │ %s          │ │ :1, :2   │ │ ?        │
    │ "quoted" │ │ "quoted"     │ │ `quoted`    │ │ "UPPER"  │ │ "UPPER"  │
    │ ON CONFL │ │ ON CONFLICT  │ │ ON DUP KEY  │ │ MERGE    │ │ MERGE    │
    │ bool 0/1 │ │ BOOLEAN      │ │ BOOLEAN     │ │ NUMBER(1)│ │ SMALLINT │
    └──────────┘ └──────────────┘ └─────────────┘ └──────────┘ └──────────┘
         CockroachDB / YugabyteDB reuse PostgreSQL, TiDB reuses MySQL,
         CQLDialect serves ScyllaDB / Cassandra.

Examples:
    >>> d = get_dialect("oracle")
    >>> d.placeholders(3)
    ':1, :2, :3'
    >>> d.quote("users")
    '"USERS"'

Guardrails:
    ❌ DON'T: Write backend-specific SQL in the engine or adapters
    ✅ DO: Add a Dialect method and implement it per family

    ❌ DON'T: Interpolate values into statements
    ✅ DO: Interpolate only validated identifiers; bind every value

Tags:
    dialect, sql, cql, abstraction, portability, multi-backend

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

import datetime as dt
import json
import uuid
from typing import Any, Protocol, runtime_checkable

from omnistore.errors import ConfigError, ValidationError
from omnistore.scanner import Bool, Bytes, Int, Null, Real, Text, Value, to_value
from omnistore.schema import ColumnData, TableSchema, TypeTag


@runtime_checkable
class Dialect(Protocol):
    """Statement-generation and value-conversion contract.

    Statement methods take *unquoted* schema names and return complete
    statements with placeholders; values are always bound, never inlined.
    """

    @property
    def name(self) -> str:
        """Dialect name (e.g. ``'sqlite'``)."""
        ...

    def placeholder(self, index: int) -> str:
        """Single positional placeholder (0-based index)."""
        ...

    def placeholders(self, count: int) -> str:
        ...

    def quote(self, identifier: str) -> str:
        """Quoted, case-folded identifier."""
        ...

    def column_type(self, column: ColumnData) -> str:
        """Native type for a column's abstract type tag."""
        ...

    def bind(self, value: Value, column: ColumnData) -> Any:
        """Tagged value -> driver bind parameter."""
        ...

    def scan(self, raw: Any, column: ColumnData) -> Value:
        """Raw driver column -> tagged value."""
        ...

    def create_table(self, table: TableSchema) -> str:
        ...

    def create_indexes(self, table: TableSchema) -> list[str]:
        ...

    def add_column(self, table: str, column: ColumnData) -> str:
        ...

    def upsert(self, table: TableSchema, columns: list[str]) -> str:
        """Insert-or-update keyed on the table's primary key."""
        ...

    def select_one(self, table: TableSchema, key: str) -> str:
        ...

    def update(self, table: TableSchema, columns: list[str]) -> str:
        ...

    def delete(self, table: TableSchema) -> str:
        ...

    def table_exists(self, table: str) -> tuple[str, list[Any]]:
        """Query returning a row when ``table`` exists, plus its parameters."""
        ...

    def ping(self) -> str:
        """Liveness probe statement."""
        ...


def parse_datetime(text: str) -> dt.datetime:
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return dt.datetime.fromisoformat(text)


# =========================================================================
# Shared implementation
# =========================================================================


class SQLDialect:
    """Behaviour shared by the SQL families; subclasses override what differs.

    Defaults follow ANSI SQL with ``?`` placeholders and double-quoted,
    case-preserving identifiers.
    """

    dialect_name = "sql"
    # Bind temporal/UUID text as native objects
    native_temporal = True
    native_boolean = True
    uppercase_identifiers = False

    TYPES: dict[TypeTag, str] = {
        TypeTag.TEXT: "TEXT",
        TypeTag.VARCHAR: "TEXT",
        TypeTag.CHAR: "TEXT",
        TypeTag.CLOB: "TEXT",
        TypeTag.XML: "TEXT",
        TypeTag.INTEGER: "BIGINT",
        TypeTag.INT: "BIGINT",
        TypeTag.REAL: "DOUBLE PRECISION",
        TypeTag.FLOAT: "DOUBLE PRECISION",
        TypeTag.BOOLEAN: "BOOLEAN",
        TypeTag.BLOB: "BLOB",
        TypeTag.JSON: "TEXT",
        TypeTag.DATETIME: "TIMESTAMP",
        TypeTag.TIMESTAMP: "TIMESTAMP",
        TypeTag.DATE: "DATE",
        TypeTag.TIME: "TIME",
        TypeTag.UUID: "CHAR(36)",
    }
    # Type for text columns that carry a key, unique constraint or index
    KEYED_TEXT = "VARCHAR(255)"

    @property
    def name(self) -> str:
        return self.dialect_name

    # -- Placeholders ------------------------------------------------------

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "?"

    def placeholders(self, count: int) -> str:
        return ", ".join(self.placeholder(i) for i in range(count))

    # -- Identifiers -------------------------------------------------------

    def fold(self, identifier: str) -> str:
        return identifier.upper() if self.uppercase_identifiers else identifier

    def quote(self, identifier: str) -> str:
        return f'"{self.fold(identifier)}"'

    def _cols(self, columns: list[str]) -> str:
        return ", ".join(self.quote(c) for c in columns)

    # -- Types -------------------------------------------------------------

    def column_type(self, column: ColumnData) -> str:
        keyed = column.primary_key or column.unique or column.index
        if keyed and column.data_type in (
            TypeTag.TEXT, TypeTag.VARCHAR, TypeTag.CHAR, TypeTag.CLOB, TypeTag.XML
        ):
            return self.KEYED_TEXT
        return self.TYPES.get(column.data_type, self.TYPES[TypeTag.TEXT])

    def boolean_literal(self, value: bool) -> str:
        if self.native_boolean:
            return "TRUE" if value else "FALSE"
        return "1" if value else "0"

    def render_default(self, column: ColumnData) -> str:
        """``DEFAULT`` clause for a column, or an empty string."""
        value = column.default
        if value is None:
            return ""
        if isinstance(value, bool):
            return f"DEFAULT {self.boolean_literal(value)}"
        if isinstance(value, (int, float)):
            return f"DEFAULT {value}"
        if not isinstance(value, str):
            value = json.dumps(value)
        escaped = value.replace("'", "''")
        return f"DEFAULT '{escaped}'"

    def column_definition(self, column: ColumnData) -> str:
        parts = [self.quote(column.name), self.column_type(column)]
        default = self.render_default(column)
        if default:
            parts.append(default)
        if not column.nullable:
            parts.append("NOT NULL")
        if column.unique and not column.primary_key:
            parts.append("UNIQUE")
        if column.primary_key:
            parts.append("PRIMARY KEY")
        return " ".join(parts)

    # -- Value conversion --------------------------------------------------

    def bind(self, value: Value, column: ColumnData) -> Any:
        match value:
            case Null():
                return None
            case Bool(v):
                return v if self.native_boolean else int(v)
            case Text(v) if self.native_temporal:
                return self._bind_temporal(v, column)
            case Text(v) | Int(v) | Real(v) | Bytes(v):
                return v
        raise TypeError(f"not a Value: {value!r}")

    def _bind_temporal(self, text: str, column: ColumnData) -> Any:
        try:
            match column.data_type:
                case TypeTag.DATETIME | TypeTag.TIMESTAMP:
                    return parse_datetime(text)
                case TypeTag.DATE:
                    return dt.date.fromisoformat(text)
                case TypeTag.TIME:
                    return dt.time.fromisoformat(text)
        except ValueError as e:
            raise ValidationError(
                f"field {column.name}: {text!r} is not an ISO {column.data_type.value}",
                field=column.name,
                value=text,
                cause=e,
            ) from e
        return text

    def scan(self, raw: Any, column: ColumnData) -> Value:
        return to_value(column, raw)

    # -- DDL ---------------------------------------------------------------

    def create_table(self, table: TableSchema) -> str:
        columns = ",\n  ".join(self.column_definition(c) for c in table.ordered_columns())
        return f"CREATE TABLE {self.quote(table.name)} (\n  {columns}\n)"

    def index_name(self, table: str, column: str) -> str:
        return f"idx_{table}_{column}"

    def create_indexes(self, table: TableSchema) -> list[str]:
        return [
            f"CREATE INDEX {self.quote(self.index_name(table.name, c.name))} "
            f"ON {self.quote(table.name)} ({self.quote(c.name)})"
            for c in table.ordered_columns()
            if c.index and not c.primary_key and not c.unique
        ]

    def add_column(self, table: str, column: ColumnData) -> str:
        return f"ALTER TABLE {self.quote(table)} ADD COLUMN {self.column_definition(column)}"

    # -- DML ---------------------------------------------------------------

    def insert(self, table: TableSchema, columns: list[str]) -> str:
        return (
            f"INSERT INTO {self.quote(table.name)} ({self._cols(columns)}) "
            f"VALUES ({self.placeholders(len(columns))})"
        )

    def upsert(self, table: TableSchema, columns: list[str]) -> str:
        key = table.primary_key
        updates = [c for c in columns if c != key]
        base = self.insert(table, columns)
        if not updates:
            return f"{base} ON CONFLICT ({self.quote(key)}) DO NOTHING"
        sets = ", ".join(f"{self.quote(c)} = excluded.{self.quote(c)}" for c in updates)
        return f"{base} ON CONFLICT ({self.quote(key)}) DO UPDATE SET {sets}"

    def limit_one(self) -> str:
        return "LIMIT 1"

    def select_one(self, table: TableSchema, key: str) -> str:
        return (
            f"SELECT {self._cols(table.column_order)} FROM {self.quote(table.name)} "
            f"WHERE {self.quote(key)} = {self.placeholder(0)} {self.limit_one()}"
        )

    def update(self, table: TableSchema, columns: list[str]) -> str:
        sets = ", ".join(
            f"{self.quote(c)} = {self.placeholder(i)}" for i, c in enumerate(columns)
        )
        return (
            f"UPDATE {self.quote(table.name)} SET {sets} "
            f"WHERE {self.quote(table.primary_key)} = {self.placeholder(len(columns))}"
        )

    def delete(self, table: TableSchema) -> str:
        return (
            f"DELETE FROM {self.quote(table.name)} "
            f"WHERE {self.quote(table.primary_key)} = {self.placeholder(0)}"
        )

    # -- Introspection -----------------------------------------------------

    def table_exists(self, table: str) -> tuple[str, list[Any]]:
        return (
            "SELECT table_name FROM information_schema.tables "
            f"WHERE table_name = {self.placeholder(0)}",
            [self.fold(table)],
        )

    def ping(self) -> str:
        return "SELECT 1"


# =========================================================================
# Concrete Dialect Implementations
# =========================================================================


class SQLiteDialect(SQLDialect):
    """SQLite: ``?`` placeholders, 0/1 booleans, everything textual stored as TEXT.

    JSON and temporal columns are declared ``TEXT`` so SQLite's type
    affinity never turns a stored document into a number.
    """

    dialect_name = "sqlite"
    native_temporal = False
    native_boolean = False

    TYPES = {
        **SQLDialect.TYPES,
        TypeTag.INTEGER: "INTEGER",
        TypeTag.INT: "INTEGER",
        TypeTag.REAL: "REAL",
        TypeTag.FLOAT: "REAL",
        TypeTag.BOOLEAN: "INTEGER",
        TypeTag.DATETIME: "TEXT",
        TypeTag.TIMESTAMP: "TEXT",
        TypeTag.DATE: "TEXT",
        TypeTag.TIME: "TEXT",
        TypeTag.UUID: "TEXT",
    }
    KEYED_TEXT = "TEXT"

    def table_exists(self, table: str) -> tuple[str, list[Any]]:
        return "SELECT name FROM sqlite_master WHERE type='table' AND name = ?", [table]


class PostgreSQLDialect(SQLDialect):
    """PostgreSQL: ``%s`` placeholders (psycopg2), JSONB, native BOOLEAN/UUID."""

    dialect_name = "postgresql"

    TYPES = {
        **SQLDialect.TYPES,
        TypeTag.BLOB: "BYTEA",
        TypeTag.JSON: "JSONB",
        TypeTag.UUID: "UUID",
    }
    KEYED_TEXT = "TEXT"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def table_exists(self, table: str) -> tuple[str, list[Any]]:
        return (
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = current_schema() AND table_name = %s",
            [table],
        )


class CockroachDBDialect(PostgreSQLDialect):
    """CockroachDB speaks the PostgreSQL wire protocol and upsert syntax."""

    dialect_name = "cockroachdb"


class YugabyteDBDialect(PostgreSQLDialect):
    """YugabyteDB YSQL is PostgreSQL-compatible."""

    dialect_name = "yugabytedb"


class MySQLDialect(SQLDialect):
    """MySQL: ``%s`` placeholders, backtick quoting, ``ON DUPLICATE KEY UPDATE``."""

    dialect_name = "mysql"

    TYPES = {
        **SQLDialect.TYPES,
        TypeTag.REAL: "DOUBLE",
        TypeTag.FLOAT: "DOUBLE",
        TypeTag.BLOB: "LONGBLOB",
        TypeTag.JSON: "JSON",
        TypeTag.CLOB: "LONGTEXT",
        TypeTag.DATETIME: "DATETIME(6)",
        TypeTag.TIMESTAMP: "DATETIME(6)",
        TypeTag.TIME: "TIME(6)",
    }

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def quote(self, identifier: str) -> str:
        return f"`{identifier}`"

    def render_default(self, column: ColumnData) -> str:
        clause = super().render_default(column)
        # TEXT/BLOB/JSON columns only take expression defaults
        native = self.column_type(column)
        if clause and native in ("TEXT", "LONGTEXT", "LONGBLOB", "JSON"):
            return f"DEFAULT ({clause[len('DEFAULT '):]})"
        return clause

    def upsert(self, table: TableSchema, columns: list[str]) -> str:
        key = table.primary_key
        updates = [c for c in columns if c != key]
        sets = [f"{self.quote(c)} = VALUES({self.quote(c)})" for c in updates or [key]]
        if any(table.columns[c].unique for c in updates):
            # ON DUPLICATE KEY also fires on other unique keys. When the row
            # hit is not ours, the key is set to NULL, which strict mode
            # rejects instead of overwriting that row.
            quoted = self.quote(key)
            sets.insert(0, f"{quoted} = IF({quoted} = VALUES({quoted}), {quoted}, NULL)")
        return f"{self.insert(table, columns)} ON DUPLICATE KEY UPDATE {', '.join(sets)}"

    def table_exists(self, table: str) -> tuple[str, list[Any]]:
        return (
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = DATABASE() AND table_name = %s",
            [table],
        )


class TiDBDialect(MySQLDialect):
    """TiDB is MySQL wire- and syntax-compatible."""

    dialect_name = "tidb"


class OracleDialect(SQLDialect):
    """Oracle: ``:1`` numbered binds, uppercase identifiers, ``MERGE`` upserts.

    Booleans are stored as ``NUMBER(1)`` with 0/1.
    """

    dialect_name = "oracle"
    native_boolean = False
    uppercase_identifiers = True

    TYPES = {
        **SQLDialect.TYPES,
        TypeTag.TEXT: "VARCHAR2(4000)",
        TypeTag.VARCHAR: "VARCHAR2(4000)",
        TypeTag.CHAR: "VARCHAR2(4000)",
        TypeTag.CLOB: "CLOB",
        TypeTag.XML: "CLOB",
        TypeTag.JSON: "CLOB",
        TypeTag.INTEGER: "NUMBER(19)",
        TypeTag.INT: "NUMBER(19)",
        TypeTag.REAL: "BINARY_DOUBLE",
        TypeTag.FLOAT: "BINARY_DOUBLE",
        TypeTag.BOOLEAN: "NUMBER(1)",
        TypeTag.BLOB: "BLOB",
        TypeTag.TIME: "VARCHAR2(32)",
        TypeTag.UUID: "VARCHAR2(36)",
    }
    KEYED_TEXT = "VARCHAR2(255)"

    def placeholder(self, index: int) -> str:
        return f":{index + 1}"

    def _bind_temporal(self, text: str, column: ColumnData) -> Any:
        if column.data_type is TypeTag.TIME:
            return text
        if column.data_type is TypeTag.DATE:
            # DATE carries a time component; bind a datetime
            value = super()._bind_temporal(text, column)
            return dt.datetime.combine(value, dt.time())
        return super()._bind_temporal(text, column)

    def add_column(self, table: str, column: ColumnData) -> str:
        return f"ALTER TABLE {self.quote(table)} ADD ({self.column_definition(column)})"

    def upsert(self, table: TableSchema, columns: list[str]) -> str:
        key = table.primary_key
        source = ", ".join(f"{self.placeholder(i)} AS c{i}" for i in range(len(columns)))
        values = ", ".join(f"src.c{i}" for i in range(len(columns)))
        statement = (
            f"MERGE INTO {self.quote(table.name)} tgt "
            f"USING (SELECT {source} FROM DUAL) src "
            f"ON (tgt.{self.quote(key)} = src.c{columns.index(key)})"
        )
        updates = [c for c in columns if c != key]
        if updates:
            sets = ", ".join(f"tgt.{self.quote(c)} = src.c{columns.index(c)}" for c in updates)
            statement += f" WHEN MATCHED THEN UPDATE SET {sets}"
        return (
            f"{statement} WHEN NOT MATCHED THEN INSERT ({self._cols(columns)}) VALUES ({values})"
        )

    def limit_one(self) -> str:
        return "FETCH FIRST 1 ROWS ONLY"

    def table_exists(self, table: str) -> tuple[str, list[Any]]:
        return "SELECT TABLE_NAME FROM USER_TABLES WHERE TABLE_NAME = :1", [self.fold(table)]

    def ping(self) -> str:
        return "SELECT 1 FROM DUAL"


class DB2Dialect(SQLDialect):
    """IBM DB2: ``?`` (qmark) placeholders, uppercase identifiers, typed ``MERGE``.

    Compatible with ``ibm_db_dbi``. Parameter markers inside ``VALUES`` need
    a ``CAST`` so DB2 can type them.
    """

    dialect_name = "db2"
    native_boolean = False
    uppercase_identifiers = True

    TYPES = {
        **SQLDialect.TYPES,
        TypeTag.TEXT: "VARCHAR(4000)",
        TypeTag.VARCHAR: "VARCHAR(4000)",
        TypeTag.CHAR: "VARCHAR(4000)",
        TypeTag.CLOB: "CLOB",
        TypeTag.XML: "CLOB",
        TypeTag.JSON: "CLOB",
        TypeTag.REAL: "DOUBLE",
        TypeTag.FLOAT: "DOUBLE",
        TypeTag.BOOLEAN: "SMALLINT",
    }

    @staticmethod
    def _nullable_unique(column: ColumnData) -> bool:
        return column.unique and column.nullable and not column.primary_key

    def column_definition(self, column: ColumnData) -> str:
        # UNIQUE constraints need NOT NULL columns (SQL0542N); see create_indexes
        definition = super().column_definition(column)
        if self._nullable_unique(column):
            definition = definition.removesuffix(" UNIQUE")
        return definition

    def create_indexes(self, table: TableSchema) -> list[str]:
        statements = super().create_indexes(table)
        for c in table.ordered_columns():
            if self._nullable_unique(c):
                statements.append(
                    f"CREATE UNIQUE INDEX {self.quote(f'uq_{table.name}_{c.name}')} "
                    f"ON {self.quote(table.name)} ({self.quote(c.name)}) EXCLUDE NULL KEYS"
                )
        return statements

    def upsert(self, table: TableSchema, columns: list[str]) -> str:
        key = table.primary_key
        casts =", ".join(
            f"CAST(? AS {self.column_type(table.columns[c])})" for c in columns
        )
        src_cols = ", ".join(f"c{i}" for i in range(len(columns)))
        values = ", ".join(f"src.c{i}" for i in range(len(columns)))
        statement = (
            f"MERGE INTO {self.quote(table.name)} AS tgt "
            f"USING (VALUES ({casts})) AS src({src_cols}) "
            f"ON tgt.{self.quote(key)} = src.c{columns.index(key)}"
        )
        updates = [c for c in columns if c != key]
        if updates:
            sets = ", ".join(f"tgt.{self.quote(c)} = src.c{columns.index(c)}" for c in updates)
            statement += f" WHEN MATCHED THEN UPDATE SET {sets}"
        return (
            f"{statement} WHEN NOT MATCHED THEN INSERT ({self._cols(columns)}) VALUES ({values})"
        )

    def limit_one(self) -> str:
        return "FETCH FIRST 1 ROWS ONLY"

    def table_exists(self, table: str) -> tuple[str, list[Any]]:
        return (
            "SELECT TABNAME FROM SYSCAT.TABLES "
            "WHERE TABSCHEMA = CURRENT SCHEMA AND TABNAME = ?",
            [self.fold(table)],
        )

    def ping(self) -> str:
        return "SELECT 1 FROM SYSIBM.SYSDUMMY1"


class CQLDialect(SQLDialect):
    """CQL for ScyllaDB / Cassandra.

    CQL has no NOT NULL, DEFAULT or UNIQUE; unique and indexed columns get
    secondary indexes instead. Inserts are native upserts.
    """

    dialect_name = "cql"

    TYPES = {
        TypeTag.TEXT: "text",
        TypeTag.VARCHAR: "text",
        TypeTag.CHAR: "text",
        TypeTag.CLOB: "text",
        TypeTag.XML: "text",
        TypeTag.INTEGER: "bigint",
        TypeTag.INT: "bigint",
        TypeTag.REAL: "double",
        TypeTag.FLOAT: "double",
        TypeTag.BOOLEAN: "boolean",
        TypeTag.BLOB: "blob",
        TypeTag.JSON: "text",
        TypeTag.DATETIME: "timestamp",
        TypeTag.TIMESTAMP: "timestamp",
        TypeTag.DATE: "date",
        TypeTag.TIME: "time",
        TypeTag.UUID: "uuid",
    }
    KEYED_TEXT = "text"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def _bind_temporal(self, text: str, column: ColumnData) -> Any:
        if column.data_type is TypeTag.UUID:
            try:
                return uuid.UUID(text)
            except ValueError as e:
                raise ValidationError(
                    f"field {column.name}: {text!r} is not a UUID", field=column.name, cause=e
                ) from e
        return super()._bind_temporal(text, column)

    def column_definition(self, column: ColumnData) -> str:
        definition = f"{self.quote(column.name)} {self.column_type(column)}"
        if column.primary_key:
            definition += " PRIMARY KEY"
        return definition

    def create_table(self, table: TableSchema) -> str:
        columns = ", ".join(self.column_definition(c) for c in table.ordered_columns())
        return f"CREATE TABLE IF NOT EXISTS {self.quote(table.name)} ({columns})"

    def create_indexes(self, table: TableSchema) -> list[str]:
        return [
            f"CREATE INDEX IF NOT EXISTS {self.index_name(table.name, c.name)} "
            f"ON {self.quote(table.name)} ({self.quote(c.name)})"
            for c in table.ordered_columns()
            if (c.index or c.unique) and not c.primary_key
        ]

    def add_column(self, table: str, column: ColumnData) -> str:
        return (
            f"ALTER TABLE {self.quote(table)} ADD "
            f"{self.quote(column.name)} {self.column_type(column)}"
        )

    def upsert(self, table: TableSchema, columns: list[str]) -> str:
        return self.insert(table, columns)

    def select_one(self, table: TableSchema, key: str) -> str:
        statement = (
            f"SELECT {self._cols(table.column_order)} FROM {self.quote(table.name)} "
            f"WHERE {self.quote(key)} = %s LIMIT 1"
        )
        if key != table.primary_key:
            statement += " ALLOW FILTERING"
        return statement

    def update(self, table: TableSchema, columns: list[str]) -> str:
        return super().update(table, columns) + " IF EXISTS"

    def delete(self, table: TableSchema) -> str:
        return super().delete(table) + " IF EXISTS"

    def table_exists(self, table: str, keyspace: str = "") -> tuple[str, list[Any]]:
        return (
            "SELECT table_name FROM system_schema.tables "
            "WHERE keyspace_name = %s AND table_name = %s",
            [keyspace, table],
        )

    def ping(self) -> str:
        return "SELECT release_version FROM system.local"


# =========================================================================
# Registry / Factory
# =========================================================================

# Pre-instantiated singletons (dialects are stateless)
_DIALECTS: dict[str, Dialect] = {
    "sqlite": SQLiteDialect(),
    "postgresql": PostgreSQLDialect(),
    "postgres": PostgreSQLDialect(),  # alias
    "cockroachdb": CockroachDBDialect(),
    "cockroach": CockroachDBDialect(),  # alias
    "yugabytedb": YugabyteDBDialect(),
    "yugabyte": YugabyteDBDialect(),  # alias
    "mysql": MySQLDialect(),
    "tidb": TiDBDialect(),
    "oracle": OracleDialect(),
    "db2": DB2Dialect(),
    "cql": CQLDialect(),
}

_ALIASES = {"postgres", "cockroach", "yugabyte"}


def get_dialect(db_type: str) -> Dialect:
    """Get a dialect by database type name.

    Raises:
        ConfigError: If ``db_type`` is not recognised.

    Example:
        >>> get_dialect("postgresql").placeholders(2)
        '%s, %s'
    """
    key = db_type.lower()
    if key not in _DIALECTS:
        raise ConfigError(
            f"Unknown dialect '{db_type}'. Supported: {sorted(set(_DIALECTS) - _ALIASES)}"
        )
    return _DIALECTS[key]


def register_dialect(name: str, dialect: Dialect) -> None:
    """Register a custom dialect implementation (lower-cased key)."""
    _DIALECTS[name.lower()] = dialect


__all__ = [
    "Dialect",
    "SQLDialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "CockroachDBDialect",
    "YugabyteDBDialect",
    "MySQLDialect",
    "TiDBDialect",
    "OracleDialect",
    "DB2Dialect",
    "CQLDialect",
    "get_dialect",
    "register_dialect",
    "parse_datetime",
]
