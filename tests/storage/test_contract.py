"""
Behaviour every adapter must share, run against SQLite and the in-memory S3
client.

Tests verify:
- An object that omits a required column merges into an existing row
- A new object that omits a required column is rejected the same way
- A table keyed on an unflagged ``id`` column upserts by id
- Empty lookup arguments fail before any backend call
"""

import pytest

from omnistore.errors import ValidationError
from omnistore.object import Object
from omnistore.schema import ColumnData, Schema, TableSchema


@pytest.fixture(params=["sqlite", "s3"])
def store(request):
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def notes_schema():
    notes = TableSchema("notes")
    notes.add_column(ColumnData("id"))
    notes.add_column(ColumnData("body"))
    schema = Schema("app")
    schema.add_table(notes)
    return schema


class TestPartialWrites:
    def test_omitted_required_column_keeps_stored_value(self, store):
        store.insert(Object("users", "u1", {"email": "a@b.com", "age": 1}))

        assert store.upsert(Object("users", "u1", {"age": 3})).created

        found = store.find_by_id("users", "u1")
        assert found.fields == {"id": "u1", "email": "a@b.com", "age": 3}

    def test_key_only_object_on_existing_row(self, store):
        store.insert(Object("users", "u1", {"email": "a@b.com", "age": 1}))
        store.upsert(Object("users", "u1", {}))
        assert store.find_by_id("users", "u1").get_str("email") == "a@b.com"

    @pytest.mark.parametrize("fields", [{"age": 3}, {}])
    def test_new_row_missing_required_column(self, store, fields):
        with pytest.raises(ValidationError, match="required fields are missing: email") as exc_info:
            store.insert(Object("users", "u9", fields))
        assert exc_info.value.context.table == "users"
        assert store.find_by_id("users", "u9") is None

    def test_required_column_set_to_none(self, store):
        with pytest.raises(ValidationError, match="not nullable"):
            store.insert(Object("users", "u9", {"email": None}))


class TestImplicitKey:
    def test_id_column_is_the_key(self, store, notes_schema):
        store.create_tables(notes_schema)

        store.insert(Object("notes", "n1", {"body": "first"}))
        store.insert(Object("notes", "n1", {"body": "second"}))

        assert store.find_by_id("notes", "n1").get_str("body") == "second"
        assert store.find_by_key("notes", "body", "first") is None


class TestLookupArguments:
    @pytest.mark.parametrize(
        "table, key, value",
        [("", "email", "a@b.com"), ("users", "", "a@b.com"), ("users", "email", "")],
    )
    def test_empty_arguments_fail_before_backend(self, s3_store, fake_s3, table, key, value):
        fake_s3.calls.clear()
        with pytest.raises(ValidationError, match="must not be empty"):
            s3_store.find_by_key(table, key, value)
        assert fake_s3.calls == []

    @pytest.mark.parametrize(
        "table, key, value",
        [("", "email", "a@b.com"), ("users", "", "a@b.com"), ("users", "email", "")],
    )
    def test_empty_arguments_on_sql(self, sqlite_store, table, key, value):
        with pytest.raises(ValidationError, match="must not be empty"):
            sqlite_store.find_by_key(table, key, value)
