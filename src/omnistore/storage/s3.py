"""S3-compatible object storage backend.

Works with AWS S3, MinIO, LocalStack, and other S3-compatible services.
There is no query language and no transaction support, so the adapter maps
every (table, id) pair to a deterministic key and stores one JSON document
per object.

Key layout::

    <prefix>/_schema.json                       bound schema
    <prefix>/tables/<table>/_metadata.json      table definition
    <prefix>/tables/<table>/objects/<id>        one object document

Object document::

    {
      "id": "u1",
      "table_name": "users",
      "fields": {"id": "u1", "email": "a@b.com", "age": 30},
      "created_at": "2025-01-01T10:00:00Z",
      "updated_at": null
    }

Connection string::

    s3://bucket/prefix?region=us-east-1
    s3://bucket/prefix?region=us-east-1&endpoint=http://localhost:9000

Lookups by a non-key column list every key under the table's objects prefix
and decode candidates until one matches: O(table size) per call, first
match wins. Values are compared as strings (``true``/``false`` for booleans,
integral floats without a fraction).
"""

from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime, timezone
from typing import Any, Callable

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from omnistore.context import OperationContext, check
from omnistore.errors import (
    BackendError,
    StorageConnectionError,
    UnsupportedOperationError,
)
from omnistore.logging import get_logger, log_statement
from omnistore.object import Object
from omnistore.scanner import FieldScanner, coerce_text, decode_value
from omnistore.schema import ColumnData, Schema, TableSchema, TypeTag
from omnistore.settings import get_settings
from omnistore.storage.base import NonTransactional, Storage, Transaction
from omnistore.storage.types import parse_connection_string

logger = get_logger(__name__)

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def stringify(value: Any) -> str:
    """String form used for scan equality."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


class CorruptDocumentError(ValueError):
    """A stored document could not be decoded."""


class S3Storage(NonTransactional, Storage):
    """
    S3-compatible object storage adapter.

    ``client`` may be passed in (any object with the boto3 S3 client
    interface); otherwise one is built from the connection string.
    """

    backend_name = "s3"

    def __init__(self, *, client: Any = None, client_factory: Callable[..., Any] | None = None):
        super().__init__()
        self._injected_client = client
        self._client_factory = client_factory or boto3.client
        self.client: Any = None
        self.bucket = ""
        self.prefix = ""
        self.region = ""
        self.endpoint_url: str | None = None

    # -- Keys --------------------------------------------------------------

    def _key(self, *parts: str) -> str:
        return "/".join([self.prefix, *parts]) if self.prefix else "/".join(parts)

    def schema_key(self) -> str:
        return self._key("_schema.json")

    def table_metadata_key(self, table: str) -> str:
        return self._key("tables", table, "_metadata.json")

    def objects_prefix(self, table: str) -> str:
        return self._key("tables", table, "objects") + "/"

    def object_key(self, table: str, obj_id: str) -> str:
        return self._key("tables", table, "objects", obj_id)

    # -- Connection --------------------------------------------------------

    def _connect(self, connection_string: str, ctx: OperationContext | None) -> None:
        config = parse_connection_string(connection_string)
        if config.scheme != "s3":
            raise StorageConnectionError(
                f"invalid scheme: expected s3, got {config.scheme}"
            ).with_context(backend=self.backend_name)
        if not config.hosts or not config.host:
            raise StorageConnectionError("s3 connection string must name a bucket").with_context(
                backend=self.backend_name
            )

        self.bucket = config.host
        self.prefix = config.database.strip("/")
        self.region = config.options.get("region") or get_settings().s3_region
        self.endpoint_url = config.options.get("endpoint")

        if self._injected_client is not None:
            client = self._injected_client
        else:
            client_kwargs: dict[str, Any] = {
                "service_name": "s3",
                "region_name": self.region,
                "config": Config(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"} if self.endpoint_url else None,
                ),
            }
            if self.endpoint_url:
                client_kwargs["endpoint_url"] = self.endpoint_url
            client = self._client_factory(**client_kwargs)

        check(ctx, "connect")
        log_statement(self._log, "HeadBucket", self.bucket)
        try:
            client.head_bucket(Bucket=self.bucket)
        except (ClientError, BotoCoreError) as e:
            raise StorageConnectionError(
                f"failed to access bucket {self.bucket}: {e}", cause=e
            ).with_context(backend=self.backend_name) from e

        self.client = client
        logger.info(
            "s3_storage_connected",
            bucket=self.bucket,
            prefix=self.prefix,
            endpoint=self.endpoint_url,
            region=self.region,
        )

    def _disconnect(self) -> None:
        self.client = None

    # -- Raw object access -------------------------------------------------

    def _call(self, operation: str, method: str, **kwargs: Any) -> Any:
        log_statement(self._log, method, kwargs.get("Key") or kwargs.get("Prefix"))
        try:
            return getattr(self.client, method)(Bucket=self.bucket, **kwargs)
        except (ClientError, BotoCoreError) as e:
            raise BackendError(f"{operation} failed: {method}: {e}", cause=e).with_context(
                operation=operation, backend=self.backend_name, key=kwargs.get("Key")
            ) from e

    def _exists(self, operation: str, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] in _MISSING_CODES:
                return False
            raise BackendError(f"{operation} failed: HeadObject: {e}", cause=e).with_context(
                operation=operation, backend=self.backend_name, key=key
            ) from e
        except BotoCoreError as e:
            raise BackendError(f"{operation} failed: HeadObject: {e}", cause=e).with_context(
                operation=operation, backend=self.backend_name, key=key
            ) from e

    def _get_document(self, operation: str, key: str) -> dict[str, Any] | None:
        """Fetch and parse a JSON document; None when the key does not exist.

        Raises:
            CorruptDocumentError: The body is not a JSON object.
        """
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            body = response["Body"].read()
        except ClientError as e:
            if e.response["Error"]["Code"] in _MISSING_CODES:
                return None
            raise BackendError(f"{operation} failed: GetObject: {e}", cause=e).with_context(
                operation=operation, backend=self.backend_name, key=key
            ) from e
        except BotoCoreError as e:
            raise BackendError(f"{operation} failed: GetObject: {e}", cause=e).with_context(
                operation=operation, backend=self.backend_name, key=key
            ) from e
        try:
            document = json.loads(body)
        except ValueError as e:
            raise CorruptDocumentError(f"{key}: {e}") from e
        if not isinstance(document, dict):
            raise CorruptDocumentError(f"{key}: expected a JSON object")
        return document

    def _put_document(self, operation: str, key: str, document: dict[str, Any]) -> None:
        body = json.dumps(document, indent=2).encode("utf-8")
        self._call(operation, "put_object", Key=key, Body=body, ContentType="application/json")

    def _read_object_document(self, operation: str, key: str) -> dict[str, Any] | None:
        try:
            return self._get_document(operation, key)
        except CorruptDocumentError as e:
            raise BackendError(f"{operation} failed: corrupt object {key}", cause=e).with_context(
                operation=operation, backend=self.backend_name, key=key
            ) from e

    # -- Field encoding ----------------------------------------------------

    @staticmethod
    def _to_json_value(column: ColumnData, value: Any) -> Any:
        if column.data_type is TypeTag.BLOB and isinstance(value, bytes):
            return base64.b64encode(value).decode("ascii")
        return value

    @staticmethod
    def _from_json_value(column: ColumnData, value: Any) -> Any:
        if value is None:
            return None
        if column.data_type is TypeTag.BLOB and isinstance(value, str):
            try:
                return base64.b64decode(value, validate=True)
            except binascii.Error as e:
                raise CorruptDocumentError(f"field {column.name}: invalid base64") from e
        if column.data_type.is_integer and isinstance(value, float) and value.is_integer():
            return int(value)
        if column.data_type.is_real and isinstance(value, int) and not isinstance(value, bool):
            return float(value)
        return value

    def _decode_object(self, table: TableSchema, document: dict[str, Any]) -> Object:
        stored = document.get("fields") or {}
        if not isinstance(stored, dict):
            raise CorruptDocumentError("fields is not an object")
        fields = {
            name: self._from_json_value(table.columns[name], stored.get(name))
            for name in table.column_order
        }
        obj_id = document.get("id")
        if obj_id is None:
            obj_id = fields.get(table.primary_key)
        return Object(table.name, str(obj_id), fields)

    # -- Schema ------------------------------------------------------------

    def create_tables(self, schema: Schema, *, ctx: OperationContext | None = None) -> None:
        """Create table metadata documents, then persist the schema document."""
        super().create_tables(schema, ctx=ctx)
        check(ctx, "create_tables")
        self._put_document("create_tables", self.schema_key(), self._schema.to_dict())

    def _create_table(self, table: TableSchema, ctx: OperationContext | None) -> bool:
        key = self.table_metadata_key(table.name)
        if self._exists("create_tables", key):
            return False
        check(ctx, "create_tables")
        metadata = {**table.to_dict(), "created_at": utc_now()}
        self._put_document("create_tables", key, metadata)
        return True

    def _alter_table(
        self, table: TableSchema, column: ColumnData, ctx: OperationContext | None
    ) -> None:
        raise UnsupportedOperationError(
            f"alter_table is not supported by the s3 backend: cannot add column "
            f"{column.name} to stored objects of table {table.name}"
        )

    # -- CRUD --------------------------------------------------------------

    def _insert(
        self, table: TableSchema, obj: Object, tx: Transaction | None, ctx: OperationContext | None
    ) -> None:
        scanner = FieldScanner(table)
        names, values = scanner.bind_insert(obj)
        key = self.object_key(table.name, obj.id)
        existing = self._read_object_document("insert", key)
        if existing is None:
            missing = scanner.missing_required(obj)
            if missing:
                raise scanner.missing_required_error(obj, missing)
        check(ctx, "insert")

        fields = dict(existing.get("fields") or {}) if existing else {}
        for name, value in zip(names, values):
            fields[name] = self._to_json_value(table.columns[name], value)
        document = {
            "id": obj.id,
            "table_name": table.name,
            "fields": fields,
            "created_at": existing.get("created_at") if existing else utc_now(),
            "updated_at": utc_now() if existing else None,
        }
        self._put_document("insert", key, document)
        logger.debug("s3_object_written", bucket=self.bucket, key=key)

    def _update(
        self, table: TableSchema, obj: Object, tx: Transaction | None, ctx: OperationContext | None
    ) -> bool:
        names, values = FieldScanner(table).bind_update(obj)
        key = self.object_key(table.name, obj.id)
        existing = self._read_object_document("update", key)
        if existing is None:
            return False
        check(ctx, "update")
        fields = dict(existing.get("fields") or {})
        for name, value in zip(names, values):
            fields[name] = self._to_json_value(table.columns[name], value)
        existing["fields"] = fields
        existing["updated_at"] = utc_now()
        self._put_document("update", key, existing)
        return True

    def _find(
        self,
        table: TableSchema,
        key: str,
        value: str,
        tx: Transaction | None,
        ctx: OperationContext | None,
    ) -> Object | None:
        column = table.columns[key]
        target = stringify(decode_value(column, coerce_text(column, value)))

        if key == table.primary_key:
            document = self._read_object_document("find_by_key", self.object_key(table.name, value))
            if document is None:
                return None
            try:
                return self._decode_object(table, document)
            except CorruptDocumentError as e:
                raise BackendError(f"find_by_key failed: {e}", cause=e) from e

        paginator = self.client.get_paginator("list_objects_v2")
        pages = paginator.paginate(Bucket=self.bucket, Prefix=self.objects_prefix(table.name))
        try:
            for page in pages:
                for entry in page.get("Contents", []):
                    check(ctx, "find_by_key")
                    candidate = self._scan_candidate(table, entry["Key"], key, target)
                    if candidate is not None:
                        return candidate
        except (ClientError, BotoCoreError) as e:
            raise BackendError(f"find_by_key failed: ListObjectsV2: {e}", cause=e).with_context(
                operation="find_by_key", backend=self.backend_name, table=table.name
            ) from e
        return None

    def _scan_candidate(
        self, table: TableSchema, object_key: str, key: str, target: str
    ) -> Object | None:
        try:
            document = self._get_document("find_by_key", object_key)
            if document is None:
                # deleted between list and get
                return None
            obj = self._decode_object(table, document)
        except CorruptDocumentError as e:
            logger.warning("s3_object_skipped", bucket=self.bucket, key=object_key, error=str(e))
            return None
        if stringify(obj.fields.get(key)) == target:
            return obj
        return None

    def _delete(
        self, table: TableSchema, obj_id: str, tx: Transaction | None, ctx: OperationContext | None
    ) -> bool:
        key = self.object_key(table.name, obj_id)
        if not self._exists("delete_by_id", key):
            return False
        check(ctx, "delete_by_id")
        self._call("delete_by_id", "delete_object", Key=key)
        logger.info("s3_object_deleted", bucket=self.bucket, key=key)
        return True


__all__ = ["S3Storage", "stringify", "utc_now"]
