"""
Generic field scanner: generic values <-> backend bind/scan representations.

Every column is handled by one ``Codec`` picked by its (type tag, nullable)
pair. A codec turns the Python value found in ``Object.fields`` into a
tagged ``Value`` and back. The dialect then turns a ``Value`` into the
driver's bind parameter and a raw driver column into a ``Value``, so the
backend-specific part (0/1 booleans, native timestamps, LOB handles) stays
in the dialect.

Architecture:
    ::

        Object.fields["age"] = 30
              │ Codec(INTEGER, nullable).encode
              ▼
        Int(30) ──── dialect.bind ────► driver parameter
                                              │
        driver row column ── to_value ──► Int(30)
              │ Codec.decode
              ▼
        fields["age"] = 30

    ``Null`` is the absent value of a nullable column and is distinct from
    a zero value until it collapses back to ``None`` in the field map.

Value rules:
    - INTEGER/INT: ``int`` (``bool`` is rejected)
    - REAL/FLOAT: ``int`` or ``float``, stored as float
    - BOOLEAN: ``bool``
    - BLOB: ``bytes``/``bytearray``/``memoryview``
    - JSON: ``str``/``bytes`` are taken as encoded documents, anything
      else goes through ``json.dumps``; reads return the stored text
    - everything else is text; ``datetime``/``date``/``time``/``UUID``
      are accepted and rendered as ISO/canonical strings

Tags:
    scanner, codec, tagged-union, type-mapping

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import datetime as dt
import json
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Sequence, Union

from omnistore.errors import UnknownFieldError, ValidationError
from omnistore.object import Object
from omnistore.schema import ColumnData, TableSchema, TypeTag

if TYPE_CHECKING:
    from omnistore.dialect import Dialect


# =============================================================================
# Tagged value union
# =============================================================================


@dataclass(frozen=True)
class Null:
    pass


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Int:
    value: int


@dataclass(frozen=True)
class Real:
    value: float


@dataclass(frozen=True)
class Bool:
    value: bool


@dataclass(frozen=True)
class Bytes:
    value: bytes


Value = Union[Null, Text, Int, Real, Bool, Bytes]

NULL = Null()

EMPTY_VALUES: tuple[Any, ...] = (None, "", b"")


def is_empty(value: Any) -> bool:
    """True for values an insert treats as "field omitted" on nullable columns."""
    return any(value is e or (type(value) is type(e) and value == e) for e in EMPTY_VALUES)


# =============================================================================
# Codecs
# =============================================================================


def _mismatch(column: ColumnData, value: Any, expected: str) -> ValidationError:
    return ValidationError(
        f"field {column.name}: expected {expected} for {column.data_type.value} column, "
        f"got {type(value).__name__}",
        field=column.name,
        value=value,
    )


def _encode_int(column: ColumnData, value: Any) -> Value:
    if isinstance(value, bool) or not isinstance(value, int):
        raise _mismatch(column, value, "int")
    return Int(value)


def _encode_real(column: ColumnData, value: Any) -> Value:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise _mismatch(column, value, "float")
    return Real(float(value))


def _encode_bool(column: ColumnData, value: Any) -> Value:
    if not isinstance(value, bool):
        raise _mismatch(column, value, "bool")
    return Bool(value)


def _encode_blob(column: ColumnData, value: Any) -> Value:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise _mismatch(column, value, "bytes")
    return Bytes(bytes(value))


def _encode_json(column: ColumnData, value: Any) -> Value:
    if isinstance(value, str):
        return Text(value)
    if isinstance(value, (bytes, bytearray)):
        return Text(bytes(value).decode("utf-8"))
    try:
        return Text(json.dumps(value))
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"field {column.name}: value is not JSON serializable", field=column.name, cause=e
        ) from e


def _encode_text(column: ColumnData, value: Any) -> Value:
    match value:
        case str():
            return Text(value)
        case dt.datetime() | dt.date() | dt.time():
            return Text(value.isoformat())
        case uuid.UUID():
            return Text(str(value))
        case _:
            raise _mismatch(column, value, "str")


def _decode(value: Value) -> Any:
    match value:
        case Null():
            return None
        case Text(v) | Int(v) | Real(v) | Bool(v) | Bytes(v):
            return v
    raise TypeError(f"not a Value: {value!r}")


@dataclass(frozen=True)
class Codec:
    """Encode/decode pair for one (type tag, nullable) combination."""

    tag: TypeTag
    nullable: bool
    _encode: Callable[[ColumnData, Any], Value]

    def encode(self, column: ColumnData, value: Any) -> Value:
        if value is None:
            if not self.nullable:
                raise ValidationError(
                    f"field {column.name} is not nullable", field=column.name
                )
            return NULL
        return self._encode(column, value)

    def decode(self, value: Value) -> Any:
        return _decode(value)


def _encoder_for(tag: TypeTag) -> Callable[[ColumnData, Any], Value]:
    if tag.is_integer:
        return _encode_int
    if tag.is_real:
        return _encode_real
    if tag is TypeTag.BOOLEAN:
        return _encode_bool
    if tag is TypeTag.BLOB:
        return _encode_blob
    if tag is TypeTag.JSON:
        return _encode_json
    return _encode_text


_CODECS: dict[tuple[TypeTag, bool], Codec] = {
    (tag, nullable): Codec(tag, nullable, _encoder_for(tag))
    for tag in TypeTag
    for nullable in (True, False)
}


def codec_for(column: ColumnData) -> Codec:
    return _CODECS[(column.data_type, column.nullable)]


def encode_value(column: ColumnData, value: Any) -> Value:
    return codec_for(column).encode(column, value)


def decode_value(column: ColumnData, value: Value) -> Any:
    return codec_for(column).decode(value)


# =============================================================================
# Raw driver values -> Value
# =============================================================================


def _read_lob(raw: Any) -> Any:
    # oracledb / ibm_db LOB handles
    read = getattr(raw, "read", None)
    return read() if callable(read) else raw


def to_value(column: ColumnData, raw: Any) -> Value:
    """Normalize a raw column value returned by a driver into a ``Value``."""
    if raw is None:
        return NULL
    raw = _read_lob(raw)
    tag = column.data_type
    if tag.is_integer:
        return Int(int(raw))
    if tag.is_real:
        return Real(float(raw))
    if tag is TypeTag.BOOLEAN:
        if isinstance(raw, str):
            return Bool(raw.strip().lower() in ("1", "t", "true"))
        return Bool(bool(raw))
    if tag is TypeTag.BLOB:
        if isinstance(raw, str):
            return Bytes(raw.encode("utf-8"))
        return Bytes(bytes(raw))
    if tag is TypeTag.JSON:
        if isinstance(raw, (bytes, bytearray, memoryview)):
            return Text(bytes(raw).decode("utf-8"))
        if isinstance(raw, str):
            return Text(raw)
        return Text(json.dumps(raw))
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return Text(bytes(raw).decode("utf-8"))
    if tag is TypeTag.DATE and isinstance(raw, dt.datetime):
        return Text(raw.date().isoformat())
    if isinstance(raw, (dt.datetime, dt.date, dt.time)):
        return Text(raw.isoformat())
    return Text(str(raw))


def coerce_text(column: ColumnData, text: str) -> Value:
    """Coerce a string lookup value to the column's type."""
    tag = column.data_type
    try:
        if tag.is_integer:
            return Int(int(text.strip()))
        if tag.is_real:
            return Real(float(text.strip()))
    except ValueError as e:
        raise ValidationError(
            f"value {text!r} cannot be used as {tag.value} for {column.name}",
            field=column.name,
            value=text,
            cause=e,
        ) from e
    if tag is TypeTag.BOOLEAN:
        lowered = text.strip().lower()
        if lowered in ("1", "t", "true"):
            return Bool(True)
        if lowered in ("0", "f", "false"):
            return Bool(False)
        raise ValidationError(
            f"value {text!r} cannot be used as BOOLEAN for {column.name}",
            field=column.name,
            value=text,
        )
    if tag is TypeTag.BLOB:
        return Bytes(text.encode("utf-8"))
    return Text(text)


# =============================================================================
# FieldScanner
# =============================================================================


class FieldScanner:
    """
    Per-table binder and row decoder.

    Column lists and parameter lists produced here follow the table's
    canonical column order, so they line up with SELECT lists built from
    ``columns``.

    Raises:
        ValueError: The table has no columns (programmer error).
    """

    def __init__(self, table: TableSchema, dialect: Dialect | None = None):
        if not table.column_order:
            raise ValueError(f"table {table.name} has no columns")
        self.table = table
        self.dialect = dialect
        self.key = table.primary_key

    @property
    def columns(self) -> list[str]:
        return list(self.table.column_order)

    def column(self, name: str) -> ColumnData:
        column = self.table.get_column(name)
        if column is None:
            raise UnknownFieldError(name, self.table.name)
        return column

    def check_fields(self, obj: Object) -> None:
        for name in obj.fields:
            if name not in self.table.columns:
                raise UnknownFieldError(name, self.table.name)

    def encode(self, name: str, value: Any) -> Value:
        return encode_value(self.column(name), value)

    def param(self, name: str, value: Value) -> Any:
        """Value -> driver bind parameter."""
        if self.dialect is None:
            return _decode(value)
        return self.dialect.bind(value, self.column(name))

    def bind_insert(self, obj: Object) -> tuple[list[str], list[Any]]:
        """Columns and parameters for an insert/upsert.

        The key column takes ``obj.id``. Empty values on nullable columns
        are dropped so the column is omitted rather than set to NULL.
        """
        self.check_fields(obj)
        names: list[str] = []
        params: list[Any] = []
        for column in self.table.ordered_columns():
            if column.name == self.key:
                names.append(column.name)
                params.append(self.param(column.name, coerce_text(column, obj.id)))
                continue
            if column.name in obj.fields:
                value = obj.fields[column.name]
                if column.nullable and is_empty(value):
                    continue
            else:
                continue
            names.append(column.name)
            params.append(self.param(column.name, encode_value(column, value)))
        return names, params

    def missing_required(self, obj: Object) -> list[str]:
        """Required columns ``obj`` leaves out.

        A column is required when it is not the key, not nullable, and has
        neither a default nor auto-increment. Such an object can only be
        merged into a row that already exists.
        """
        return [
            column.name
            for column in self.table.ordered_columns()
            if column.name != self.key
            and not column.nullable
            and column.default is None
            and not column.auto_increment
            and column.name not in obj.fields
        ]

    def missing_required_error(self, obj: Object, missing: list[str]) -> ValidationError:
        return ValidationError(
            f"{self.table.name} {obj.id} does not exist and required fields are missing: "
            f"{', '.join(missing)}",
            field=missing[0],
        )

    def bind_update(self, obj: Object) -> tuple[list[str], list[Any]]:
        """Columns and parameters for a partial update of the present non-key fields."""
        self.check_fields(obj)
        names: list[str] = []
        params: list[Any] = []
        for column in self.table.ordered_columns():
            if column.name == self.key or column.name not in obj.fields:
                continue
            names.append(column.name)
            params.append(self.param(column.name, encode_value(column, obj.fields[column.name])))
        if not names:
            raise ValidationError(
                f"no fields to update for {self.table.name} id {obj.id}", field="fields"
            )
        return names, params

    def lookup_param(self, key: str, value: str) -> Any:
        return self.param(key, coerce_text(self.column(key), value))

    def normalize(self, fields: dict[str, Any]) -> dict[str, Any]:
        """Validate and round-trip a field map through the codecs."""
        out = {}
        for name, value in fields.items():
            column = self.column(name)
            out[name] = decode_value(column, encode_value(column, value))
        return out

    def scan_row(self, row: Sequence[Any], columns: Sequence[str] | None = None) -> Object:
        """Decode one row, positionally aligned with ``columns`` (default: all)."""
        names = list(columns) if columns is not None else self.columns
        fields: dict[str, Any] = {}
        for name, raw in zip(names, row):
            column = self.column(name)
            if self.dialect is not None:
                value = self.dialect.scan(raw, column)
            else:
                value = to_value(column, raw)
            fields[name] = decode_value(column, value)
        obj_id = fields.get(self.key)
        return Object(self.table.name, "" if obj_id is None else str(obj_id), fields)


__all__ = [
    "Value",
    "Null",
    "Text",
    "Int",
    "Real",
    "Bool",
    "Bytes",
    "NULL",
    "Codec",
    "codec_for",
    "encode_value",
    "decode_value",
    "to_value",
    "coerce_text",
    "is_empty",
    "FieldScanner",
]
