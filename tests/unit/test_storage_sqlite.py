"""
Unit tests for the SQLite storage adapter.

Tests cover:
- Basic operations against file and in-memory databases
- Durability across connections
- Factory selection from settings
"""

import pytest

from instorage_cache.config import CacheSettings, StorageBackend
from instorage_cache.storage import (
    InMemoryStorage,
    SqliteStorage,
    StorageAdapter,
    StorageError,
    create_storage,
)


class TestSqliteStorage:
    """Tests for SqliteStorage."""

    @pytest.fixture
    def db_path(self, tmp_path):
        return str(tmp_path / "cache.db")

    @pytest.fixture
    def storage(self, db_path):
        storage = SqliteStorage(db_path)
        yield storage
        storage.close()

    def test_satisfies_protocol(self, storage):
        assert isinstance(storage, StorageAdapter)

    def test_get_absent_key(self, storage):
        assert storage.get("missing") is None

    def test_set_then_get(self, storage):
        storage.set("ROOT_QUERY", '{"field":"simple value"}')

        assert storage.get("ROOT_QUERY") == '{"field":"simple value"}'

    def test_set_replaces(self, storage):
        storage.set("k", "1")
        storage.set("k", "2")

        assert storage.get("k") == "2"
        assert storage.keys() == ["k"]

    def test_remove_and_clear(self, storage):
        storage.set("a", "1")
        storage.set("b", "2")

        storage.remove("a")
        assert storage.keys() == ["b"]

        storage.clear()
        assert storage.keys() == []

    def test_keys_are_sorted(self, storage):
        for key in ("c", "a", "b"):
            storage.set(key, "{}")

        assert storage.keys() == ["a", "b", "c"]

    def test_survives_reconnect(self, db_path):
        with SqliteStorage(db_path) as first:
            first.set("User:1", '{"name":"Ada"}')

        with SqliteStorage(db_path) as second:
            assert second.get("User:1") == '{"name":"Ada"}'

    def test_in_memory_database(self):
        with SqliteStorage(":memory:") as storage:
            storage.set("k", "v")
            assert storage.get("k") == "v"

    def test_custom_table(self, db_path):
        with SqliteStorage(db_path, table="entries") as a, SqliteStorage(db_path) as b:
            a.set("k", "v")
            assert b.get("k") is None

    def test_invalid_table_name(self, db_path):
        with pytest.raises(ValueError):
            SqliteStorage(db_path, table="entries; DROP TABLE x")

    def test_closed_connection_raises_storage_error(self, storage):
        storage.set("k", "v")
        # Close the live connection out from under the adapter.
        storage.connection.close()

        with pytest.raises(StorageError):
            storage.get("k")


class TestCreateStorage:
    """Tests for create_storage()."""

    def test_memory_backend(self):
        settings = CacheSettings(storage_backend=StorageBackend.MEMORY)

        assert isinstance(create_storage(settings), InMemoryStorage)

    def test_sqlite_backend(self, tmp_path):
        settings = CacheSettings(
            storage_backend=StorageBackend.SQLITE,
            sqlite_path=str(tmp_path / "c.db"),
            sqlite_table="entries",
        )

        storage = create_storage(settings)
        try:
            assert isinstance(storage, SqliteStorage)
            assert storage.table == "entries"
        finally:
            storage.close()
