"""Tests for schema introspection."""

import sqlite3
from unittest.mock import MagicMock

import pytest

from omnistore.dialect import SQLiteDialect
from omnistore.errors import UnknownTableError
from omnistore.introspect import InformationSchemaParser, SQLiteSchemaParser, native_tag
from omnistore.schema import ColumnData, TypeTag

from conftest import make_users_table


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:")
    dialect = SQLiteDialect()
    users = make_users_table()
    connection.execute(dialect.create_table(users))
    for statement in dialect.create_indexes(users):
        connection.execute(statement)
    connection.execute(
        "CREATE TABLE counters (n INTEGER PRIMARY KEY, label TEXT DEFAULT 'it''s', ratio REAL)"
    )
    yield connection
    connection.close()


class TestNativeTag:
    @pytest.mark.parametrize(
        "data_type, tag",
        [
            ("bigint", TypeTag.INTEGER),
            ("tinyint(1)", TypeTag.BOOLEAN),
            ("tinyint(4)", TypeTag.INTEGER),
            ("decimal(10,2)", TypeTag.REAL),
            ("varchar(255)", TypeTag.VARCHAR),
            ("longblob", TypeTag.BLOB),
            ("datetime", TypeTag.DATETIME),
            ("geometry", TypeTag.TEXT),
            (None, TypeTag.TEXT),
        ],
    )
    def test_mapping(self, data_type, tag):
        assert native_tag(data_type) is tag


class TestSQLiteSchemaParser:
    def test_table_names(self, conn):
        assert SQLiteSchemaParser(conn).table_names() == ["counters", "users"]

    def test_round_trips_created_table(self, conn):
        parsed = SQLiteSchemaParser(conn).parse_table("main", "users")
        expected = make_users_table()
        assert parsed.column_order == expected.column_order
        assert parsed.columns == expected.columns
        assert parsed.indexes == ["idx_users_age"]
        assert parsed.unique_keys == ["email"]

    def test_integer_primary_key_and_defaults(self, conn):
        counters = SQLiteSchemaParser(conn).parse_table("main", "counters")
        assert counters.columns["n"] == ColumnData(
            "n", TypeTag.INTEGER, primary_key=True, auto_increment=True
        )
        assert counters.columns["label"].default == "it's"
        assert counters.columns["ratio"].data_type is TypeTag.REAL

    def test_parse_schema(self, conn):
        schema = SQLiteSchemaParser(conn).parse_schema()
        assert schema.database_name == "main"
        assert schema.table_names() == ["counters", "users"]
        assert not schema.get_table("users").frozen

    def test_unknown_table(self, conn):
        with pytest.raises(UnknownTableError):
            SQLiteSchemaParser(conn).parse_table("main", "ghosts")


class TestInformationSchemaParser:
    @pytest.fixture
    def mysql_conn(self):
        connection = MagicMock(name="connection")
        cursor = connection.cursor.return_value
        cursor.fetchall.side_effect = [
            [("users",)],
            [
                ("id", "varchar", "NO", None, "PRI", "", ""),
                ("email", "varchar", "NO", None, "UNI", "", "login address"),
                ("age", "bigint", "YES", "18", "MUL", "", None),
                ("seq", "int", "NO", None, "", "auto_increment", ""),
            ],
            [("PRIMARY", 0), ("email", 0), ("idx_age", 1)],
        ]
        return connection

    def test_parse_table(self, mysql_conn):
        table = InformationSchemaParser(mysql_conn).parse_table("shop", "users")

        assert table.column_order == ["id", "email", "age", "seq"]
        assert table.primary_key == "id"
        assert table.columns["email"].unique
        assert table.columns["email"].comment == "login address"
        assert table.columns["age"].data_type is TypeTag.INTEGER
        assert table.columns["age"].nullable
        assert table.columns["age"].index
        assert table.columns["age"].default == "18"
        assert table.columns["seq"].auto_increment
        assert "idx_age" in table.indexes
        assert table.unique_keys == ["email"]

    def test_binds_database_and_table(self, mysql_conn):
        InformationSchemaParser(mysql_conn).parse_table("shop", "users")
        cursor = mysql_conn.cursor.return_value
        statement, params = cursor.execute.call_args_list[1].args
        assert "information_schema.columns" in statement
        assert "table_schema = %s AND table_name = %s" in statement
        assert params == ("shop", "users")

    def test_unknown_table(self):
        connection = MagicMock()
        connection.cursor.return_value.fetchall.return_value = [("orders",)]
        with pytest.raises(UnknownTableError):
            InformationSchemaParser(connection).parse_table("shop", "users")

    def test_database_names(self):
        connection = MagicMock()
        connection.cursor.return_value.fetchall.return_value = [("shop",), ("crm",)]
        assert InformationSchemaParser(connection).database_names() == ["shop", "crm"]
