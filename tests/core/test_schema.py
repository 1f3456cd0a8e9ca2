"""Tests for omnistore.schema (type tags, columns, tables, schemas)."""

import pytest

from omnistore.errors import SchemaError, ValidationError
from omnistore.schema import ColumnData, Schema, TableSchema, TypeTag, validate_identifier


class TestTypeTag:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("integer", TypeTag.INTEGER),
            ("INT", TypeTag.INT),
            ("varchar(255)", TypeTag.VARCHAR),
            (" Boolean ", TypeTag.BOOLEAN),
            ("json", TypeTag.JSON),
            ("geometry", TypeTag.TEXT),
            ("", TypeTag.TEXT),
            (TypeTag.BLOB, TypeTag.BLOB),
        ],
    )
    def test_parse(self, raw, expected):
        assert TypeTag.parse(raw) is expected

    def test_families(self):
        assert TypeTag.INT.is_integer
        assert TypeTag.FLOAT.is_real
        assert TypeTag.UUID.is_text
        assert TypeTag.DATETIME.is_text
        assert not TypeTag.JSON.is_text
        assert not TypeTag.BOOLEAN.is_text


class TestIdentifiers:
    @pytest.mark.parametrize("name", ["users", "_tmp", "Order2"])
    def test_valid(self, name):
        assert validate_identifier(name) == name

    @pytest.mark.parametrize("name", ["", "2users", "users; DROP TABLE x", "a-b", "a b"])
    def test_invalid(self, name):
        with pytest.raises(ValidationError):
            validate_identifier(name, "table")

    def test_column_name_validated(self):
        with pytest.raises(ValidationError):
            ColumnData("bad name")


class TestColumnData:
    def test_string_type_parsed(self):
        assert ColumnData("age", "integer").data_type is TypeTag.INTEGER

    def test_primary_key_not_nullable(self):
        assert ColumnData("id", primary_key=True).nullable is False

    def test_dict_round_trip(self):
        column = ColumnData("email", "TEXT", nullable=False, unique=True, default="x", comment="c")
        assert ColumnData.from_dict(column.to_dict()) == column


class TestTableSchema:
    def test_column_order_preserved(self, users_table):
        assert users_table.column_order == ["id", "email", "age"]
        assert [c.name for c in users_table.ordered_columns()] == ["id", "email", "age"]

    def test_unique_and_index_names(self, users_table):
        assert users_table.unique_keys == ["email"]
        assert users_table.indexes == ["idx_users_age"]

    def test_readd_replaces_in_place(self, users_table):
        users_table.add_column(ColumnData("email", "VARCHAR"))
        assert users_table.column_order == ["id", "email", "age"]
        assert users_table.columns["email"].data_type is TypeTag.VARCHAR

    def test_primary_key_flagged(self, users_table):
        assert users_table.primary_key == "id"

    def test_primary_key_falls_back_to_id(self):
        table = TableSchema("t")
        table.add_column(ColumnData("name"))
        table.add_column(ColumnData("id"))
        assert table.primary_key == "id"

    def test_flagged_key_other_than_id(self):
        table = TableSchema("t")
        table.add_column(ColumnData("id"))
        table.add_column(ColumnData("code", primary_key=True))
        assert table.primary_key == "code"

    def test_multiple_primary_keys(self):
        table = TableSchema("t")
        table.add_column(ColumnData("a", primary_key=True))
        table.add_column(ColumnData("b", primary_key=True))
        with pytest.raises(SchemaError, match="multiple primary keys"):
            table.primary_key

    def test_no_primary_key(self):
        table = TableSchema("t")
        table.add_column(ColumnData("name"))
        with pytest.raises(SchemaError, match="no primary key"):
            table.validate()

    def test_empty_table_invalid(self):
        with pytest.raises(SchemaError, match="no columns"):
            TableSchema("t").validate()

    def test_mismatched_order_rejected(self):
        with pytest.raises(SchemaError):
            TableSchema("t", columns={"id": ColumnData("id")}, column_order=[])

    def test_auto_increment_fields(self):
        table = TableSchema("t")
        table.add_column(ColumnData("id", "INTEGER", primary_key=True, auto_increment=True))
        assert table.auto_increment_fields == ["id"]

    def test_dict_round_trip(self, users_table):
        restored = TableSchema.from_dict(users_table.to_dict())
        assert restored.column_order == users_table.column_order
        assert restored.columns == users_table.columns


class TestSchema:
    def test_add_and_get(self, app_schema):
        assert app_schema.table_names() == ["users", "people"]
        assert app_schema.get_table("users").name == "users"
        assert app_schema.get_table("orders") is None

    def test_add_table_replaces(self, app_schema):
        replacement = TableSchema("users")
        replacement.add_column(ColumnData("id", primary_key=True))
        app_schema.add_table(replacement)
        assert app_schema.get_table("users").column_order == ["id"]

    def test_add_table_rejects_other_types(self):
        with pytest.raises(ValidationError):
            Schema("app").add_table({"name": "users"})

    def test_freeze_is_a_copy(self, app_schema):
        frozen = app_schema.freeze()
        assert frozen.frozen is True
        assert frozen.get_table("users") is not app_schema.get_table("users")
        app_schema.get_table("users").add_column(ColumnData("nickname"))
        assert "nickname" not in frozen.get_table("users").columns

    def test_frozen_cannot_change(self, app_schema):
        frozen = app_schema.freeze()
        with pytest.raises(SchemaError):
            frozen.add_table(TableSchema("other"))
        with pytest.raises(SchemaError):
            frozen.get_table("users").add_column(ColumnData("nickname"))

    def test_freeze_flags_implicit_id_key(self):
        notes = TableSchema("notes")
        notes.add_column(ColumnData("id"))
        notes.add_column(ColumnData("body"))
        schema = Schema("app")
        schema.add_table(notes)

        key = schema.freeze().get_table("notes").columns["id"]

        assert key.primary_key is True
        assert key.nullable is False
        assert notes.columns["id"].primary_key is False

    def test_freeze_validates(self):
        schema = Schema("app")
        schema.add_table(TableSchema("empty"))
        with pytest.raises(SchemaError):
            schema.freeze()

    def test_with_column(self, app_schema):
        frozen = app_schema.freeze()
        altered = frozen.with_column("users", ColumnData("nickname"))
        assert altered.frozen is True
        assert altered.get_table("users").column_order == ["id", "email", "age", "nickname"]
        assert "nickname" not in frozen.get_table("users").columns

    def test_with_column_errors(self, app_schema):
        frozen = app_schema.freeze()
        with pytest.raises(SchemaError):
            frozen.with_column("orders", ColumnData("x"))
        with pytest.raises(SchemaError):
            frozen.with_column("users", ColumnData("email"))

    def test_dict_round_trip(self, app_schema):
        restored = Schema.from_dict(app_schema.to_dict())
        assert restored.database_name == "app"
        assert restored.table_names() == ["users", "people"]
