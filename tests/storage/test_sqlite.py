"""
Storage contract tests against the SQLite adapter.

SQLite runs in-process, so these tests exercise the full generic SQL
engine end to end: validation order, CRUD, transactions, alter_table and
connection lifecycle.
"""

import json
import threading

import pytest

from omnistore.context import OperationContext, new_context
from omnistore.errors import (
    BackendError,
    NotConnectedError,
    OperationCancelledError,
    OperationTimeoutError,
    SchemaNotInitializedError,
    StorageConnectionError,
    TransactionError,
    UnknownFieldError,
    UnknownTableError,
    ValidationError,
)
from omnistore.object import Object
from omnistore.storage.base import StorageState
from omnistore.storage.sqlite import SQLiteStorage, sqlite_path


def user(obj_id="u1", **fields):
    fields.setdefault("email", f"{obj_id}@example.com")
    return Object("users", obj_id, fields)


# =============================================================================
# Connection lifecycle
# =============================================================================


class TestLifecycle:
    def test_sqlite_path(self):
        assert sqlite_path("sqlite:///:memory:") == ":memory:"
        assert sqlite_path("sqlite:///data/app.db") == "data/app.db"
        assert sqlite_path("sqlite://") == ":memory:"
        assert sqlite_path("/tmp/app.db") == "/tmp/app.db"

    def test_connect_file(self, tmp_path, app_schema):
        path = tmp_path / "app.db"
        storage = SQLiteStorage()
        storage.connect(f"sqlite:///{path}")
        assert storage.state is StorageState.CONNECTED
        storage.create_tables(app_schema)
        assert storage.state is StorageState.SCHEMA_BOUND
        storage.insert(user())
        storage.disconnect()

        reopened = SQLiteStorage()
        reopened.connect(str(path))
        reopened.create_tables(app_schema)
        assert reopened.find_by_id("users", "u1").get_str("email") == "u1@example.com"
        reopened.disconnect()

    def test_connect_empty_string(self):
        with pytest.raises(ValidationError):
            SQLiteStorage().connect("  ")

    def test_connect_unopenable_path(self, tmp_path):
        with pytest.raises(StorageConnectionError):
            SQLiteStorage().connect(str(tmp_path / "missing" / "dir" / "app.db"))

    def test_disconnect_is_idempotent(self, sqlite_store):
        sqlite_store.disconnect()
        sqlite_store.disconnect()
        assert sqlite_store.state is StorageState.UNCONNECTED
        assert sqlite_store.schema is None

    def test_operations_after_disconnect(self, sqlite_store):
        sqlite_store.disconnect()
        with pytest.raises(NotConnectedError):
            sqlite_store.find_by_id("users", "u1")

    def test_reset_connection_drops_schema(self, sqlite_store):
        sqlite_store.reset_connection()
        assert sqlite_store.state is StorageState.CONNECTED
        assert sqlite_store.schema is None
        with pytest.raises(SchemaNotInitializedError):
            sqlite_store.insert(user())

    def test_reset_never_connected_is_noop(self):
        storage = SQLiteStorage()
        storage.reset_connection()
        assert storage.state is StorageState.UNCONNECTED

    def test_context_manager_disconnects(self, app_schema):
        with SQLiteStorage() as storage:
            storage.connect(":memory:")
            storage.create_tables(app_schema)
        assert storage.state is StorageState.UNCONNECTED

    def test_create_tables_twice_keeps_data(self, sqlite_store, app_schema):
        sqlite_store.insert(user())
        sqlite_store.create_tables(app_schema)
        assert sqlite_store.find_by_id("users", "u1") is not None

    def test_bound_schema_is_a_snapshot(self, sqlite_store, app_schema):
        assert sqlite_store.schema is not app_schema
        assert sqlite_store.schema.table_names() == app_schema.table_names()


# =============================================================================
# Validation order
# =============================================================================


class TestValidationOrder:
    def test_arguments_before_connection(self):
        storage = SQLiteStorage()
        with pytest.raises(ValidationError):
            storage.insert(Object("users", "", {}))
        with pytest.raises(ValidationError):
            storage.find_by_key("users", "", "x")
        with pytest.raises(ValidationError):
            storage.delete_by_id("users", "")

    def test_connection_before_schema(self):
        with pytest.raises(NotConnectedError):
            SQLiteStorage().insert(user())

    def test_schema_before_table(self):
        storage = SQLiteStorage()
        storage.connect(":memory:")
        with pytest.raises(SchemaNotInitializedError):
            storage.find_by_id("nope", "x")
        storage.disconnect()

    def test_unknown_table(self, sqlite_store):
        with pytest.raises(UnknownTableError) as exc_info:
            sqlite_store.insert(Object("ghosts", "g1", {}))
        assert exc_info.value.context.backend == "sqlite"

    def test_unknown_field(self, sqlite_store):
        with pytest.raises(UnknownFieldError):
            sqlite_store.insert(user(nickname="x"))
        with pytest.raises(UnknownFieldError):
            sqlite_store.find_by_key("users", "nickname", "x")

    def test_non_object(self, sqlite_store):
        with pytest.raises(ValidationError):
            sqlite_store.insert(None)


# =============================================================================
# CRUD
# =============================================================================


class TestInsertAndFind:
    def test_insert_then_find(self, sqlite_store):
        result = sqlite_store.insert(user(age=30))
        assert result.created is True
        assert json.loads(result.snapshot)["id"] == "u1"

        found = sqlite_store.find_by_id("users", "u1")
        assert found == Object("users", "u1", {"id": "u1", "email": "u1@example.com", "age": 30})

    def test_find_missing(self, sqlite_store):
        assert sqlite_store.find_by_id("users", "nobody") is None

    def test_find_by_unique_key(self, sqlite_store):
        sqlite_store.insert(user("u1"))
        sqlite_store.insert(user("u2"))
        found = sqlite_store.find_by_key("users", "email", "u2@example.com")
        assert found.id == "u2"

    def test_find_by_integer_key_coerces(self, sqlite_store):
        sqlite_store.insert(user(age=41))
        assert sqlite_store.find_by_key("users", "age", "41").id == "u1"

    def test_find_by_integer_key_rejects_text(self, sqlite_store):
        with pytest.raises(ValidationError):
            sqlite_store.find_by_key("users", "age", "forty")

    def test_insert_overwrites(self, sqlite_store):
        sqlite_store.insert(user(age=1))
        second = sqlite_store.insert(user(age=2))
        assert second.created is True
        assert sqlite_store.find_by_id("users", "u1").get_int("age") == 2

    def test_upsert_keeps_omitted_columns(self, sqlite_store):
        sqlite_store.insert(user(age=7))
        sqlite_store.upsert(user(email="new@example.com"))
        found = sqlite_store.find_by_id("users", "u1")
        assert found.get_str("email") == "new@example.com"
        assert found.get_int("age") == 7

    def test_empty_nullable_values_are_omitted(self, sqlite_store):
        sqlite_store.insert(user(age=7))
        sqlite_store.insert(user(age=None))
        assert sqlite_store.find_by_id("users", "u1").get_int("age") == 7

    def test_null_into_non_nullable(self, sqlite_store):
        with pytest.raises(ValidationError):
            sqlite_store.insert(user(email=None))

    def test_type_mismatch(self, sqlite_store):
        with pytest.raises(ValidationError):
            sqlite_store.insert(user(age="old"))

    def test_unique_violation(self, sqlite_store):
        sqlite_store.insert(user("u1", email="same@example.com"))
        with pytest.raises(BackendError) as exc_info:
            sqlite_store.insert(user("u2", email="same@example.com"))
        assert exc_info.value.context.operation == "insert"
        assert exc_info.value.context.table == "users"
        assert exc_info.value.cause is not None

    def test_failed_write_leaves_store_usable(self, sqlite_store):
        sqlite_store.insert(user("u1", email="same@example.com"))
        with pytest.raises(BackendError):
            sqlite_store.insert(user("u2", email="same@example.com"))
        sqlite_store.insert(user("u3"))
        assert sqlite_store.find_by_id("users", "u3") is not None

    def test_typed_fields_round_trip(self, sqlite_store):
        person = Object(
            "people",
            "p1",
            {
                "name": "Ada",
                "score": 9.5,
                "active": True,
                "avatar": b"\x00\x01",
                "profile": {"langs": ["py"]},
                "born": "1815-12-10",
                "seen_at": "2025-01-01T10:00:00Z",
            },
        )
        sqlite_store.insert(person)
        found = sqlite_store.find_by_id("people", "p1")
        assert found.get_str("name") == "Ada"
        assert found.get_float("score") == 9.5
        assert found.get_bool("active") is True
        assert found.get_bytes("avatar") == b"\x00\x01"
        assert found.get_json("profile") == {"langs": ["py"]}
        assert found.get_str("born") == "1815-12-10"
        assert found.get_str("seen_at") == "2025-01-01T10:00:00Z"


class TestUpdateAndDelete:
    def test_update(self, sqlite_store):
        sqlite_store.insert(user(age=1))
        assert sqlite_store.update(Object("users", "u1", {"age": 2})) is True
        found = sqlite_store.find_by_id("users", "u1")
        assert found.get_int("age") == 2
        assert found.get_str("email") == "u1@example.com"

    def test_update_missing(self, sqlite_store):
        assert sqlite_store.update(Object("users", "ghost", {"age": 2})) is False

    def test_update_can_set_null(self, sqlite_store):
        sqlite_store.insert(user(age=1))
        sqlite_store.update(Object("users", "u1", {"age": None}))
        assert sqlite_store.find_by_id("users", "u1").get_field("age") == (None, True)

    def test_update_without_fields(self, sqlite_store):
        sqlite_store.insert(user())
        with pytest.raises(ValidationError):
            sqlite_store.update(Object("users", "u1", {}))

    def test_delete(self, sqlite_store):
        sqlite_store.insert(user())
        assert sqlite_store.delete_by_id("users", "u1") is True
        assert sqlite_store.find_by_id("users", "u1") is None
        assert sqlite_store.delete_by_id("users", "u1") is False


# =============================================================================
# alter_table
# =============================================================================


class TestAlterTable:
    def test_add_column(self, sqlite_store):
        sqlite_store.insert(user())
        sqlite_store.alter_table("users", "nickname", "TEXT")
        assert "nickname" in sqlite_store.schema.get_table("users").columns

        sqlite_store.update(Object("users", "u1", {"nickname": "ace"}))
        assert sqlite_store.find_by_id("users", "u1").get_str("nickname") == "ace"

    def test_caller_schema_untouched(self, sqlite_store, app_schema):
        sqlite_store.alter_table("users", "nickname", "TEXT")
        assert "nickname" not in app_schema.get_table("users").columns

    def test_existing_column(self, sqlite_store):
        with pytest.raises(ValidationError):
            sqlite_store.alter_table("users", "email", "TEXT")

    def test_empty_arguments(self, sqlite_store):
        with pytest.raises(ValidationError):
            sqlite_store.alter_table("users", "", "TEXT")

    def test_unknown_table(self, sqlite_store):
        with pytest.raises(UnknownTableError):
            sqlite_store.alter_table("ghosts", "x", "TEXT")


# =============================================================================
# Transactions
# =============================================================================


class TestTransactions:
    def test_commit(self, sqlite_store):
        tx = sqlite_store.begin_tx()
        sqlite_store.insert_tx(tx, user())
        assert sqlite_store.find_by_id_tx(tx, "users", "u1") is not None
        sqlite_store.commit_tx(tx)
        assert sqlite_store.find_by_id("users", "u1") is not None

    def test_rollback(self, sqlite_store):
        tx = sqlite_store.begin_tx()
        sqlite_store.insert_tx(tx, user())
        sqlite_store.rollback_tx(tx)
        assert sqlite_store.find_by_id("users", "u1") is None

    def test_tx_update_and_delete(self, sqlite_store):
        sqlite_store.insert(user("u1", age=1))
        sqlite_store.insert(user("u2"))
        with sqlite_store.transaction() as tx:
            assert sqlite_store.update_tx(tx, Object("users", "u1", {"age": 5})) is True
            assert sqlite_store.delete_by_id_tx(tx, "users", "u2") is True
            assert sqlite_store.find_by_key_tx(tx, "users", "age", "5").id == "u1"
        assert sqlite_store.find_by_id("users", "u2") is None

    def test_context_manager_rolls_back_on_error(self, sqlite_store):
        with pytest.raises(RuntimeError):
            with sqlite_store.transaction() as tx:
                sqlite_store.upsert_tx(tx, user())
                raise RuntimeError("boom")
        assert tx.finished
        assert sqlite_store.find_by_id("users", "u1") is None

    def test_nil_transaction(self, sqlite_store):
        with pytest.raises(TransactionError, match="nil"):
            sqlite_store.insert_tx(None, user())

    def test_finished_transaction(self, sqlite_store):
        tx = sqlite_store.begin_tx()
        sqlite_store.commit_tx(tx)
        with pytest.raises(TransactionError, match="finished"):
            sqlite_store.insert_tx(tx, user())
        with pytest.raises(TransactionError):
            sqlite_store.commit_tx(tx)

    def test_foreign_transaction(self, sqlite_store, app_schema):
        other = SQLiteStorage()
        other.connect(":memory:")
        other.create_tables(app_schema)
        tx = other.begin_tx()
        try:
            with pytest.raises(TransactionError, match="another storage"):
                sqlite_store.insert_tx(tx, user())
        finally:
            other.rollback_tx(tx)
            other.disconnect()

    def test_begin_requires_connection(self):
        with pytest.raises(NotConnectedError):
            SQLiteStorage().begin_tx()

    def test_transaction_blocks_other_threads(self, sqlite_store):
        tx = sqlite_store.begin_tx()
        sqlite_store.insert_tx(tx, user())
        seen = []

        def reader():
            seen.append(sqlite_store.find_by_id("users", "u1"))

        thread = threading.Thread(target=reader)
        thread.start()
        thread.join(timeout=0.2)
        assert thread.is_alive()
        sqlite_store.commit_tx(tx)
        thread.join(timeout=5)
        assert seen and seen[0].id == "u1"

    def test_waiting_for_open_transaction_honours_deadline(self, sqlite_store):
        tx = sqlite_store.begin_tx()
        errors = []

        def reader():
            try:
                sqlite_store.find_by_id("users", "u1", ctx=new_context(0.1))
            except OperationTimeoutError as e:
                errors.append(e)

        thread = threading.Thread(target=reader)
        thread.start()
        thread.join(timeout=5)
        sqlite_store.rollback_tx(tx)
        assert len(errors) == 1
        assert errors[0].context.operation == "acquire_connection"


# =============================================================================
# Operation context
# =============================================================================


class TestOperationContext:
    def test_cancelled(self, sqlite_store):
        ctx = OperationContext()
        ctx.cancel()
        with pytest.raises(OperationCancelledError):
            sqlite_store.insert(user(), ctx=ctx)
        assert sqlite_store.find_by_id("users", "u1") is None

    def test_expired(self, sqlite_store):
        ctx = new_context(timeout=0)
        with pytest.raises(OperationTimeoutError):
            sqlite_store.find_by_id("users", "u1", ctx=ctx)

    def test_live_context(self, sqlite_store):
        ctx = new_context(timeout=30)
        sqlite_store.insert(user(), ctx=ctx)
        assert sqlite_store.find_by_id("users", "u1", ctx=ctx) is not None

    def test_validation_wins_over_cancellation(self, sqlite_store):
        ctx = OperationContext()
        ctx.cancel()
        with pytest.raises(ValidationError):
            sqlite_store.find_by_key("users", "email", "", ctx=ctx)


# =============================================================================
# Scenarios
# =============================================================================


class TestScenarios:
    def test_missing_nullable_field_reads_back_as_none(self, sqlite_store):
        sqlite_store.insert(Object("users", "u1", {"email": "a@b.com"}))
        found = sqlite_store.find_by_id("users", "u1")
        assert found.get_str("email") == "a@b.com"
        assert found.get_field("age") == (None, True)

    def test_repeated_insert_last_write_wins(self, sqlite_store):
        first = sqlite_store.insert(user(age=30))
        second = sqlite_store.insert(user(age=31))
        assert first.created and second.created
        assert sqlite_store.find_by_id("users", "u1").get_int("age") == 31

    def test_delete_then_find(self, sqlite_store):
        assert sqlite_store.delete_by_id("users", "ghost") is False
        assert sqlite_store.find_by_id("users", "ghost") is None
