"""Storage adapter registry and factory.

Manifesto:
    Callers should never hard-code adapter class names. The registry maps
    backend names (and URL schemes) to adapter classes; ``open_storage()``
    turns a connection string into a connected adapter.

Features:
    - ``StorageRegistry`` singleton with pre-registered defaults
    - ``register()`` for custom / third-party adapters
    - ``get_storage()``: name -> unconnected adapter
    - ``storage_for_url()``: URL scheme -> unconnected adapter
    - ``open_storage()``: URL -> connected adapter

Tags:
    storage, registry, factory, singleton

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any

from omnistore.context import OperationContext
from omnistore.errors import ConfigError
from omnistore.settings import get_settings

from .base import Storage
from .db2 import DB2Storage
from .mysql import MySQLStorage, TiDBStorage
from .oracle import OracleStorage
from .postgresql import CockroachDBStorage, PostgreSQLStorage, YugabyteDBStorage
from .s3 import S3Storage
from .scylla import ScyllaStorage
from .sqlite import SQLiteStorage
from .types import BackendType


class StorageRegistry:
    """
    Registry for storage adapter factories.

    Pre-registered adapters:
    - ``sqlite`` :class:`SQLiteStorage`
    - ``postgresql`` / ``postgres`` :class:`PostgreSQLStorage`
    - ``cockroachdb`` / ``cockroach`` :class:`CockroachDBStorage`
    - ``yugabytedb`` / ``yugabyte`` :class:`YugabyteDBStorage`
    - ``mysql`` / ``mariadb`` :class:`MySQLStorage`
    - ``tidb`` :class:`TiDBStorage`
    - ``oracle`` :class:`OracleStorage`
    - ``db2`` :class:`DB2Storage`
    - ``scylla`` / ``scylladb`` / ``cassandra`` :class:`ScyllaStorage`
    - ``s3`` :class:`S3Storage`
    """

    def __init__(self):
        self._factories: dict[str, type[Storage]] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        self._factories["sqlite"] = SQLiteStorage
        self._factories["postgresql"] = PostgreSQLStorage
        self._factories["postgres"] = PostgreSQLStorage  # Alias
        self._factories["cockroachdb"] = CockroachDBStorage
        self._factories["cockroach"] = CockroachDBStorage  # Alias
        self._factories["yugabytedb"] = YugabyteDBStorage
        self._factories["yugabyte"] = YugabyteDBStorage  # Alias
        self._factories["mysql"] = MySQLStorage
        self._factories["mariadb"] = MySQLStorage  # Alias
        self._factories["tidb"] = TiDBStorage
        self._factories["oracle"] = OracleStorage
        self._factories["db2"] = DB2Storage
        self._factories["scylla"] = ScyllaStorage
        self._factories["scylladb"] = ScyllaStorage  # Alias
        self._factories["cassandra"] = ScyllaStorage  # Alias
        self._factories["s3"] = S3Storage

    def register(self, name: str, storage_class: type[Storage]) -> None:
        """Register an adapter factory."""
        self._factories[name.lower()] = storage_class

    def create(self, name: str, **kwargs: Any) -> Storage:
        """Create an unconnected adapter by name."""
        name = name.lower()
        if name not in self._factories:
            raise ConfigError(f"Unknown storage backend: {name}")
        return self._factories[name](**kwargs)

    def list_backends(self) -> list[str]:
        """List registered backend names."""
        return sorted(self._factories.keys())


# Global registry
storage_registry = StorageRegistry()


def get_storage(backend: BackendType | str, **kwargs: Any) -> Storage:
    """
    Get an unconnected storage adapter by backend name.

    Usage:
        storage = get_storage(BackendType.SQLITE)
        storage = get_storage("s3", client=boto3.client("s3"))
    """
    name = backend.value if isinstance(backend, BackendType) else backend
    return storage_registry.create(name, **kwargs)


def backend_for_url(url: str) -> str:
    """Backend name implied by a connection string.

    ``sqlite://`` URLs, ``file:`` URIs, ``:memory:`` and bare paths are SQLite.
    ``postgresql+psycopg2://`` style driver suffixes are ignored.
    """
    if url == ":memory:" or url.startswith("file:"):
        return "sqlite"
    scheme, sep, _ = url.partition("://")
    if not sep:
        return "sqlite"
    return scheme.split("+", 1)[0].lower()


def storage_for_url(url: str, **kwargs: Any) -> Storage:
    """Unconnected adapter selected by the URL scheme."""
    return storage_registry.create(backend_for_url(url), **kwargs)


def open_storage(url: str, *, ctx: OperationContext | None = None, **kwargs: Any) -> Storage:
    """Adapter for ``url``, connected and probed."""
    storage = storage_for_url(url, **kwargs)
    storage.connect(url, ctx=ctx)
    return storage


def open_storage_from_settings(**kwargs: Any) -> Storage:
    """Connect the adapter named by ``OMNISTORE_BACKEND`` to ``OMNISTORE_URL``.

    The URL scheme wins when it names a backend; ``backend`` covers
    scheme-less URLs such as Scylla's ``host1,host2/keyspace``.
    """
    settings = get_settings()
    url = settings.url
    name = backend_for_url(url) if "://" in url else settings.backend
    storage = storage_registry.create(name, **kwargs)
    storage.connect(url)
    return storage


__all__ = [
    "StorageRegistry",
    "storage_registry",
    "get_storage",
    "backend_for_url",
    "storage_for_url",
    "open_storage",
    "open_storage_from_settings",
]
