"""
Generic record exchanged with every Storage adapter.

An ``Object`` names its table, carries its primary key as a string and holds
a field map whose runtime types follow the table's column type tags. Objects
are transient: persistence lives only in the backend.

Examples:
    >>> user = Object("users", "u1", {"email": "a@b.com"})
    >>> user.set_field("age", 30)
    >>> user.get_int("age")
    30
    >>> user.get_str("age") is None
    True
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from typing import Any

from omnistore.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Object:
    table_name: str = ""
    id: str = ""
    fields: dict[str, Any] = field(default_factory=dict)

    def get_field(self, name: str) -> tuple[Any, bool]:
        """Return ``(value, present)``."""
        if name in self.fields:
            return self.fields[name], True
        return None, False

    def set_field(self, name: str, value: Any) -> None:
        self.fields[name] = value

    def has_field(self, name: str) -> bool:
        return name in self.fields

    # ── Typed accessors ──────────────────────────────────────────
    # Each returns None when the field is absent or cannot be read as the type.

    def get_str(self, name: str) -> str | None:
        value = self.fields.get(name)
        if isinstance(value, str):
            return value
        if value is not None:
            logger.debug("unexpected_field_type", field=name, type=type(value).__name__)
        return None

    def get_int(self, name: str) -> int | None:
        """Integer value, accepting numeric strings, bytes and floats (truncated)."""
        value = self.fields.get(name)
        match value:
            case bool():
                return None
            case int():
                return value
            case float():
                return int(value)
            case str() | bytes():
                text = value.decode() if isinstance(value, bytes) else value
                try:
                    return int(text.strip())
                except ValueError:
                    logger.debug("field_conversion_failed", field=name, target="int")
                    return None
            case _:
                return None

    def get_float(self, name: str) -> float | None:
        value = self.fields.get(name)
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return float(value)
        return None

    def get_bool(self, name: str) -> bool | None:
        value = self.fields.get(name)
        return value if isinstance(value, bool) else None

    def get_bytes(self, name: str) -> bytes | None:
        value = self.fields.get(name)
        return bytes(value) if isinstance(value, (bytes, bytearray)) else None

    def get_json(self, name: str) -> Any:
        """Decode a JSON column; stored documents come back as text."""
        value = self.fields.get(name)
        if isinstance(value, (str, bytes)):
            return json.loads(value)
        return value

    # ── Serialization ────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        return {"table_name": self.table_name, "id": self.id, "fields": dict(self.fields)}

    def to_json(self) -> bytes:
        """Compact JSON snapshot; bytes become base64 text, other values use str()."""
        return json.dumps(self.to_dict(), default=_json_default, separators=(",", ":")).encode()

    def copy(self) -> Object:
        return Object(self.table_name, self.id, dict(self.fields))


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return str(value)


__all__ = ["Object"]
