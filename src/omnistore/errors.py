"""
Structured error types for omnistore.

Every failure raised by a storage adapter is a ``StoreError`` subclass that
carries a category, a retry flag, a structured ``ErrorContext`` and the
chained driver exception (``cause``). "Not found" is never an error: lookups
return ``None`` and update/delete return ``False``.

Manifesto:
    - **One taxonomy for every backend:** SQLite, PostgreSQL, S3 and Scylla
      all raise the same classes for the same conditions
    - **Explicit retry semantics:** Each error knows if it's retryable
    - **Rich context:** Errors carry operation, backend and table
    - **Error chaining:** Driver exceptions are preserved as ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                         StoreError                            │
        │        (category, retryable, context, cause)                  │
        ├──────────────────────────────────────────────────────────────┤
        │  StorageConnectionError   SchemaError        ValidationError  │
        │  (CONNECTION, retry)      (SCHEMA)           (VALIDATION)     │
        │       │                       │                               │
        │  NotConnectedError       SchemaNotInitializedError            │
        │                          UnknownTableError                    │
        │                          UnknownFieldError                    │
        │                                                               │
        │  TransactionError        BackendError        ConfigError      │
        │  (TRANSACTION)           (BACKEND)           (CONFIG)         │
        │                               │                               │
        │                          UnsupportedOperationError            │
        │                                                               │
        │  OperationTimeoutError   OperationCancelledError              │
        │  (TIMEOUT, retry)        (CANCELLED)                          │
        └──────────────────────────────────────────────────────────────┘

Validation order:
    Every CRUD call checks its arguments first (``ValidationError``), then
    the connection (``StorageConnectionError``), then the bound schema
    (``SchemaError``), and only then talks to the backend
    (``BackendError``).

Guardrails:
    ❌ DON'T: Let raw driver exceptions escape an adapter
    ✅ DO: Wrap them in BackendError with cause=

    ❌ DON'T: Raise for a missing row or object
    ✅ DO: Return None / False

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Error categories used for classification and retry decisions.

    Attributes:
        CONNECTION: Not connected, failed liveness probe, bad connection string
        SCHEMA: Schema not bound, unknown table or field, invalid schema
        VALIDATION: Bad arguments or field values
        TRANSACTION: Bad or unsupported transaction handle
        BACKEND: Failure reported by the backend driver
        CONFIG: Unknown backend, missing driver, invalid settings
        TIMEOUT: Operation deadline exceeded
        CANCELLED: Operation cancelled by the caller
        INTERNAL: Bugs, unexpected state
    """

    CONNECTION = "CONNECTION"
    SCHEMA = "SCHEMA"
    VALIDATION = "VALIDATION"
    TRANSACTION = "TRANSACTION"
    BACKEND = "BACKEND"
    CONFIG = "CONFIG"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to a StoreError.

    Only the fields that are set show up in ``to_dict()``; anything that
    does not have a dedicated field goes into ``metadata``.

    Attributes:
        operation: Storage operation name (``insert``, ``find_by_key``...)
        backend: Adapter name (``sqlite``, ``s3``...)
        table: Table the operation targeted
        key: Lookup column for key-based operations
        object_id: Primary key value involved
        metadata: Additional key-value pairs
    """

    operation: str | None = None
    backend: str | None = None
    table: str | None = None
    key: str | None = None
    object_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["operation", "backend", "table", "key", "object_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class StoreError(Exception):
    """
    Base exception for all omnistore errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers
    may override both per instance.

    Examples:
        >>> err = BackendError("insert failed").with_context(table="users")
        >>> err.context.table
        'users'
        >>> err.to_dict()["category"]
        'BACKEND'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> StoreError:
        """
        Add context to this error (fluent API).

        Usage:
            raise BackendError("delete failed", cause=exc).with_context(
                operation="delete_by_id", table="users", object_id="u1"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONNECTION ERRORS
# =============================================================================


class StorageConnectionError(StoreError):
    """Connection could not be established or was lost."""

    default_category = ErrorCategory.CONNECTION
    default_retryable = True


class NotConnectedError(StorageConnectionError):
    """Operation attempted before connect() or after disconnect()."""

    default_retryable = False

    def __init__(self, message: str = "not connected", **kwargs: Any):
        super().__init__(message, **kwargs)


# =============================================================================
# SCHEMA ERRORS
# =============================================================================


class SchemaError(StoreError):
    """Schema is missing, invalid, or does not know a table or field."""

    default_category = ErrorCategory.SCHEMA
    default_retryable = False


class SchemaNotInitializedError(SchemaError):
    """CRUD attempted before create_tables() bound a schema."""

    def __init__(self, message: str = "schema not initialized", **kwargs: Any):
        super().__init__(message, **kwargs)


class UnknownTableError(SchemaError):
    """Table is not part of the bound schema."""

    def __init__(self, table: str, **kwargs: Any):
        self.table = table
        super().__init__(f"table {table} not found in schema", **kwargs)


class UnknownFieldError(SchemaError):
    """Field is not a column of the table."""

    def __init__(self, field_name: str, table: str, **kwargs: Any):
        self.field = field_name
        self.table = table
        super().__init__(f"field {field_name} not found in table {table} schema", **kwargs)


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(StoreError):
    """
    Argument or field value validation error.

    Never retryable - the input must be fixed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


# =============================================================================
# TRANSACTION / BACKEND ERRORS
# =============================================================================


class TransactionError(StoreError):
    """Nil, finished, foreign, or unsupported transaction handle."""

    default_category = ErrorCategory.TRANSACTION
    default_retryable = False


class BackendError(StoreError):
    """Failure reported by the underlying driver, wrapped with operation context."""

    default_category = ErrorCategory.BACKEND
    default_retryable = False


class UnsupportedOperationError(BackendError):
    """The backend has no way to perform the requested operation."""

    pass


# =============================================================================
# CONFIGURATION / CONTEXT ERRORS
# =============================================================================


class ConfigError(StoreError):
    """Unknown backend, missing driver package, or invalid settings."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class OperationTimeoutError(StoreError):
    """The operation's deadline passed before it completed."""

    default_category = ErrorCategory.TIMEOUT
    default_retryable = True


class OperationCancelledError(StoreError):
    """The caller cancelled the operation."""

    default_category = ErrorCategory.CANCELLED
    default_retryable = False


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, StoreError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, StoreError):
        return error.category
    if isinstance(error, ConnectionError):
        return ErrorCategory.CONNECTION
    if isinstance(error, TimeoutError):
        return ErrorCategory.TIMEOUT
    if isinstance(error, (ValueError, TypeError)):
        return ErrorCategory.VALIDATION
    return ErrorCategory.INTERNAL


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "StoreError",
    # Connection
    "StorageConnectionError",
    "NotConnectedError",
    # Schema
    "SchemaError",
    "SchemaNotInitializedError",
    "UnknownTableError",
    "UnknownFieldError",
    # Validation
    "ValidationError",
    # Transaction / backend
    "TransactionError",
    "BackendError",
    "UnsupportedOperationError",
    # Config / context
    "ConfigError",
    "OperationTimeoutError",
    "OperationCancelledError",
    # Utilities
    "is_retryable",
    "categorize_error",
]
