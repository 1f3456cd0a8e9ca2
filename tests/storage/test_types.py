"""Tests for connection-string parsing."""

import pytest

from omnistore.errors import StorageConnectionError
from omnistore.storage.types import BackendType, ConnectionConfig, parse_connection_string


class TestParseConnectionString:
    def test_full_url(self):
        config = parse_connection_string("postgresql://app:s%40cret@db:5433/shop?sslmode=require")
        assert config == ConnectionConfig(
            scheme="postgresql",
            hosts=["db"],
            port=5433,
            database="shop",
            username="app",
            password="s@cret",
            options={"sslmode": "require"},
        )

    def test_default_port(self):
        assert parse_connection_string("mysql://db/shop", default_port=3306).port == 3306

    def test_multiple_hosts(self):
        config = parse_connection_string("scylla://h1,h2,h3:9043/ks", default_port=9042)
        assert config.hosts == ["h1", "h2", "h3"]
        assert config.host == "h1"
        assert config.port == 9043

    def test_no_host(self):
        config = parse_connection_string("sqlite:///data/app.db")
        assert config.hosts == []
        assert config.host == "localhost"
        assert config.database == "data/app.db"

    def test_user_without_password(self):
        config = parse_connection_string("tidb://root@db/shop")
        assert config.username == "root"
        assert config.password is None

    def test_scheme_lowercased(self):
        assert parse_connection_string("S3://bucket/prefix").scheme == "s3"

    def test_missing_scheme(self):
        with pytest.raises(StorageConnectionError, match="missing scheme"):
            parse_connection_string("localhost/shop")

    def test_bad_port(self):
        with pytest.raises(StorageConnectionError, match="invalid port"):
            parse_connection_string("postgresql://db:port/shop")


class TestBackendType:
    def test_values(self):
        assert BackendType("s3") is BackendType.S3
        assert BackendType.SCYLLA.value == "scylla"
