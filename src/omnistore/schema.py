"""
Schema model: databases, tables and columns described at runtime.

A ``Schema`` is assembled once by the caller and handed to
``Storage.create_tables``, which binds an immutable snapshot of it for the
lifetime of the connection. Every adapter derives DDL, parameter binding
order and decoding from the same description.

Manifesto:
    - **Order is authoritative:** ``TableSchema.column_order`` is the
      positional order used for every bind and scan; it is never reordered
    - **One primary key:** Exactly one key per table, flagged explicitly or
      falling back to a column named ``id``
    - **Safe identifiers:** Table and column names are validated so they can
      be interpolated into generated SQL/CQL
    - **Immutable once bound:** ``freeze()`` produces the snapshot adapters
      hold; ``with_column()`` produces a new one for alter_table

Architecture:
    ::

        Schema(database_name)
          └── tables: {name: TableSchema}
                 ├── column_order: [id, email, age]
                 └── columns: {name: ColumnData(type, nullable, pk, ...)}

Examples:
    >>> users = TableSchema("users")
    >>> users.add_column(ColumnData("id", TypeTag.TEXT, nullable=False, primary_key=True))
    >>> users.add_column(ColumnData("email", "text", unique=True))
    >>> users.add_column(ColumnData("age", "integer"))
    >>> schema = Schema("app")
    >>> schema.add_table(users)
    >>> schema.get_table("users").primary_key
    'id'

Tags:
    schema, data-model, ddl, type-tags

Doc-Types:
    - API Reference
    - Data Model
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterator

from omnistore.errors import SchemaError, ValidationError

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class TypeTag(str, Enum):
    """Abstract column type vocabulary shared by every adapter."""

    TEXT = "TEXT"
    VARCHAR = "VARCHAR"
    CHAR = "CHAR"
    INTEGER = "INTEGER"
    INT = "INT"
    REAL = "REAL"
    FLOAT = "FLOAT"
    BOOLEAN = "BOOLEAN"
    BLOB = "BLOB"
    JSON = "JSON"
    DATETIME = "DATETIME"
    TIMESTAMP = "TIMESTAMP"
    DATE = "DATE"
    TIME = "TIME"
    UUID = "UUID"
    CLOB = "CLOB"
    XML = "XML"

    @classmethod
    def parse(cls, value: str | TypeTag) -> TypeTag:
        """Case-insensitive lookup; size suffixes are ignored and unknown tags map to TEXT.

        >>> TypeTag.parse("varchar(255)")
        <TypeTag.VARCHAR: 'VARCHAR'>
        >>> TypeTag.parse("geometry")
        <TypeTag.TEXT: 'TEXT'>
        """
        if isinstance(value, TypeTag):
            return value
        name = str(value).strip().upper().split("(", 1)[0].strip()
        try:
            return cls(name)
        except ValueError:
            return cls.TEXT

    @property
    def is_integer(self) -> bool:
        return self in (TypeTag.INTEGER, TypeTag.INT)

    @property
    def is_real(self) -> bool:
        return self in (TypeTag.REAL, TypeTag.FLOAT)

    @property
    def is_text(self) -> bool:
        """Everything carried as a string at the storage boundary, JSON excluded."""
        return self not in (
            TypeTag.INTEGER,
            TypeTag.INT,
            TypeTag.REAL,
            TypeTag.FLOAT,
            TypeTag.BOOLEAN,
            TypeTag.BLOB,
            TypeTag.JSON,
        )


def validate_identifier(name: str, kind: str = "identifier") -> str:
    """Return ``name`` unchanged or raise ValidationError."""
    if not isinstance(name, str) or not IDENTIFIER_RE.match(name):
        raise ValidationError(f"invalid {kind} name: {name!r}", field=kind, value=name)
    return name


@dataclass(frozen=True)
class ColumnData:
    """
    One column definition.

    ``data_type`` accepts a TypeTag or any string; strings are parsed with
    ``TypeTag.parse``. ``comment`` carries no semantics.
    """

    name: str
    data_type: TypeTag = TypeTag.TEXT
    nullable: bool = True
    primary_key: bool = False
    unique: bool = False
    index: bool = False
    auto_increment: bool = False
    default: Any = None
    comment: str = ""

    def __post_init__(self) -> None:
        validate_identifier(self.name, "column")
        object.__setattr__(self, "data_type", TypeTag.parse(self.data_type))
        if self.primary_key and self.nullable:
            object.__setattr__(self, "nullable", False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "data_type": self.data_type.value,
            "nullable": self.nullable,
            "primary_key": self.primary_key,
            "unique": self.unique,
            "index": self.index,
            "auto_increment": self.auto_increment,
            "default": self.default,
            "comment": self.comment,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ColumnData:
        return cls(
            name=data["name"],
            data_type=data.get("data_type", "TEXT"),
            nullable=data.get("nullable", True),
            primary_key=data.get("primary_key", False),
            unique=data.get("unique", False),
            index=data.get("index", False),
            auto_increment=data.get("auto_increment", False),
            default=data.get("default"),
            comment=data.get("comment", ""),
        )


@dataclass
class TableSchema:
    """
    Ordered column definitions for one table.

    Attributes:
        name: Table name
        columns: Column name -> ColumnData
        column_order: Canonical bind/scan order
        indexes: Names of secondary indexes created for indexed columns
        unique_keys: Names of unique columns
        comment: Free text, not interpreted
    """

    name: str
    columns: dict[str, ColumnData] = field(default_factory=dict)
    column_order: list[str] = field(default_factory=list)
    indexes: list[str] = field(default_factory=list)
    unique_keys: list[str] = field(default_factory=list)
    comment: str = ""
    frozen: bool = field(default=False, compare=False)

    def __post_init__(self) -> None:
        validate_identifier(self.name, "table")
        if set(self.columns) != set(self.column_order) or len(self.column_order) != len(
            set(self.column_order)
        ):
            raise SchemaError(f"table {self.name}: column order does not match columns")

    def add_column(self, column: ColumnData) -> None:
        """Append a column; re-adding a name replaces it in place."""
        if self.frozen:
            raise SchemaError(f"table {self.name} is bound and cannot be modified")
        if column.name not in self.columns:
            self.column_order.append(column.name)
        self.columns[column.name] = column
        if column.unique and column.name not in self.unique_keys:
            self.unique_keys.append(column.name)
        if column.index:
            index_name = f"idx_{self.name}_{column.name}"
            if index_name not in self.indexes:
                self.indexes.append(index_name)

    def get_column(self, name: str) -> ColumnData | None:
        return self.columns.get(name)

    def ordered_columns(self) -> Iterator[ColumnData]:
        for name in self.column_order:
            yield self.columns[name]

    @property
    def primary_key(self) -> str:
        """Name of the key column.

        Raises:
            SchemaError: More than one flagged key, or none and no ``id`` column.
        """
        flagged = [c.name for c in self.ordered_columns() if c.primary_key]
        if len(flagged) > 1:
            raise SchemaError(f"table {self.name} has multiple primary keys: {flagged}")
        if flagged:
            return flagged[0]
        if "id" in self.columns:
            return "id"
        raise SchemaError(f"table {self.name} has no primary key")

    @property
    def auto_increment_fields(self) -> list[str]:
        return [c.name for c in self.ordered_columns() if c.auto_increment]

    def validate(self) -> None:
        if not self.column_order:
            raise SchemaError(f"table {self.name} has no columns")
        _ = self.primary_key

    def copy(self, frozen: bool | None = None) -> TableSchema:
        """Copy of this table; a frozen copy flags the ``id`` fallback key explicitly."""
        table = TableSchema(
            name=self.name,
            columns=dict(self.columns),
            column_order=list(self.column_order),
            indexes=list(self.indexes),
            unique_keys=list(self.unique_keys),
            comment=self.comment,
        )
        table.frozen = self.frozen if frozen is None else frozen
        if table.frozen:
            key = table.primary_key
            if not table.columns[key].primary_key:
                # DDL renders PRIMARY KEY / NOT NULL from the column flags
                table.columns[key] = replace(table.columns[key], primary_key=True)
        return table

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "primary_key": self.primary_key,
            "comment": self.comment,
            "columns": [c.to_dict() for c in self.ordered_columns()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TableSchema:
        table = cls(name=data["name"], comment=data.get("comment", ""))
        for column in data.get("columns", []):
            table.add_column(ColumnData.from_dict(column))
        return table


@dataclass
class Schema:
    """Database name plus the tables it holds."""

    database_name: str = ""
    tables: dict[str, TableSchema] = field(default_factory=dict)
    frozen: bool = field(default=False, compare=False)

    def add_table(self, table: TableSchema) -> None:
        """Register a table; an existing table with the same name is replaced."""
        if self.frozen:
            raise SchemaError("schema is bound and cannot be modified")
        if not isinstance(table, TableSchema):
            raise ValidationError("table must be a TableSchema", value=table)
        self.tables[table.name] = table

    def get_table(self, name: str) -> TableSchema | None:
        return self.tables.get(name)

    def table_names(self) -> list[str]:
        return list(self.tables)

    def validate(self) -> None:
        for table in self.tables.values():
            table.validate()

    def freeze(self) -> Schema:
        """Validated, immutable snapshot; the caller's schema is not touched."""
        self.validate()
        snapshot = Schema(
            database_name=self.database_name,
            tables={name: t.copy(frozen=True) for name, t in self.tables.items()},
        )
        snapshot.frozen = True
        return snapshot

    def with_column(self, table_name: str, column: ColumnData) -> Schema:
        """New frozen snapshot with ``column`` appended to ``table_name``."""
        table = self.get_table(table_name)
        if table is None:
            raise SchemaError(f"table {table_name} not found in schema")
        if column.name in table.columns:
            raise SchemaError(f"column {column.name} already exists in table {table_name}")
        altered = table.copy(frozen=False)
        altered.add_column(column)
        tables = {name: t.copy(frozen=False) for name, t in self.tables.items()}
        tables[table_name] = altered
        return Schema(database_name=self.database_name, tables=tables).freeze()

    def to_dict(self) -> dict[str, Any]:
        return {
            "database_name": self.database_name,
            "tables": {name: t.to_dict() for name, t in self.tables.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Schema:
        schema = cls(database_name=data.get("database_name", ""))
        for table in data.get("tables", {}).values():
            schema.add_table(TableSchema.from_dict(table))
        return schema


__all__ = [
    "TypeTag",
    "ColumnData",
    "TableSchema",
    "Schema",
    "validate_identifier",
    "IDENTIFIER_RE",
]
