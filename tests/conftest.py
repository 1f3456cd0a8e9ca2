"""
Shared pytest fixtures and configuration for omnistore tests.

This module provides:
- Settings cache isolation
- Sample schemas (users, people)
- Connected SQLite storage with the sample schema bound
- In-memory S3 client and connected S3 storage

Usage:
    Fixtures are auto-discovered by pytest; request them as arguments.

    def test_insert(sqlite_store, users_schema):
        ...
"""

import sys
from pathlib import Path
from typing import Generator

import pytest

# Ensure omnistore package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from omnistore.schema import ColumnData, Schema, TableSchema, TypeTag
from omnistore.settings import clear_settings_cache
from omnistore.storage.s3 import S3Storage
from omnistore.storage.sqlite import SQLiteStorage

from _support.fake_s3 import FakeS3Client


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark every test without an explicit marker as a unit test."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Drop cached settings and debug switches around every test."""
    monkeypatch.delenv("OMNISTORE_DEBUG", raising=False)
    monkeypatch.delenv("DEBUG", raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Schemas
# =============================================================================


def make_users_table() -> TableSchema:
    users = TableSchema("users")
    users.add_column(ColumnData("id", TypeTag.TEXT, nullable=False, primary_key=True))
    users.add_column(ColumnData("email", TypeTag.TEXT, nullable=False, unique=True))
    users.add_column(ColumnData("age", TypeTag.INTEGER, index=True))
    return users


def make_people_table() -> TableSchema:
    people = TableSchema("people")
    people.add_column(ColumnData("id", TypeTag.TEXT, primary_key=True))
    people.add_column(ColumnData("name", TypeTag.TEXT))
    people.add_column(ColumnData("score", TypeTag.REAL))
    people.add_column(ColumnData("active", TypeTag.BOOLEAN))
    people.add_column(ColumnData("avatar", TypeTag.BLOB))
    people.add_column(ColumnData("profile", TypeTag.JSON))
    people.add_column(ColumnData("born", TypeTag.DATE))
    people.add_column(ColumnData("seen_at", TypeTag.DATETIME))
    return people


@pytest.fixture
def users_table() -> TableSchema:
    return make_users_table()


@pytest.fixture
def people_table() -> TableSchema:
    return make_people_table()


@pytest.fixture
def app_schema() -> Schema:
    schema = Schema("app")
    schema.add_table(make_users_table())
    schema.add_table(make_people_table())
    return schema


# =============================================================================
# Storages
# =============================================================================


@pytest.fixture
def sqlite_store(app_schema: Schema) -> Generator[SQLiteStorage, None, None]:
    storage = SQLiteStorage()
    storage.connect("sqlite:///:memory:")
    storage.create_tables(app_schema)
    yield storage
    storage.disconnect()


@pytest.fixture
def fake_s3() -> FakeS3Client:
    client = FakeS3Client(page_size=2)
    client.create_bucket("data")
    return client


@pytest.fixture
def s3_store(fake_s3: FakeS3Client, app_schema: Schema) -> Generator[S3Storage, None, None]:
    storage = S3Storage(client=fake_s3)
    storage.connect("s3://data/app")
    storage.create_tables(app_schema)
    yield storage
    storage.disconnect()
