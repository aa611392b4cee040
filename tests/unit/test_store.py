"""
Unit tests for the normalized record store.

Tests cover:
- Merge writes and persistence
- Reads with references, lists and misses
- Lazy hydration from storage
- Snapshot restore and extract
"""

import pytest

from instorage_cache.codec import JsonRecordCodec
from instorage_cache.dependencies import DependencyTracker
from instorage_cache.errors import CorruptRecordError
from instorage_cache.plan import Field, selection
from instorage_cache.records import JsonBlob, Reference
from instorage_cache.storage import InMemoryStorage, InjectedStorageError, read_snapshot
from instorage_cache.store import MissReason, RecordStore


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def tracker():
    return DependencyTracker()


@pytest.fixture
def store(storage, tracker):
    return RecordStore(storage, tracker=tracker)


class TestWrite:
    """Tests for RecordStore.write()."""

    def test_write_persists_encoded_record(self, store, storage):
        store.write("ROOT_QUERY", {"field": "simple value"})

        assert storage.to_object() == {"ROOT_QUERY": {"field": "simple value"}}

    def test_write_merges_fields(self, store):
        store.write("User:1", {"id": "1", "name": "Ada"})
        store.write("User:1", {"email": "ada@example.com"})

        assert store.get("User:1") == {"id": "1", "name": "Ada", "email": "ada@example.com"}

    def test_unchanged_write_is_a_noop(self, store, storage):
        store.write("User:1", {"name": "Ada"})
        writes = storage.writes

        store.write("User:1", {"name": "Ada"})

        assert storage.writes == writes

    def test_uses_given_tracker_even_when_empty(self, storage):
        tracker = DependencyTracker()
        codec = JsonRecordCodec()

        store = RecordStore(storage, codec, tracker)

        assert store.tracker is tracker
        assert store.codec is codec

    @pytest.mark.parametrize(
        "before, after",
        [(1, True), (0, False), (2, 2.0)],
    )
    def test_write_distinguishes_equal_python_values(self, store, storage, before, after):
        store.write("ROOT_QUERY", {"value": before})

        store.write("ROOT_QUERY", {"value": after})

        value = store.read("ROOT_QUERY", selection({"value": None})).data["value"]
        assert type(value) is type(after)
        assert storage.to_object()["ROOT_QUERY"]["value"] == after
        assert type(storage.to_object()["ROOT_QUERY"]["value"]) is type(after)

    def test_write_returns_dependent_reads(self, store, tracker):
        store.write("User:1", {"name": "Ada"})
        tracker.begin_read("q1")
        tracker.record_access("q1", "User:1")

        assert store.write("User:1", {"name": "Grace"}) == {"q1"}
        assert store.write("User:2", {"name": "Linus"}) == set()

    def test_failed_storage_write_leaves_memory_unchanged(self, store, storage):
        store.write("User:1", {"name": "Ada"})
        storage.inject_failure()

        with pytest.raises(InjectedStorageError):
            store.write("User:1", {"name": "Grace"})

        assert store.get("User:1") == {"name": "Ada"}
        assert storage.to_object()["User:1"] == {"name": "Ada"}

    def test_write_over_corrupt_record(self, store, storage):
        storage.set("User:1", "{broken")

        store.write("User:1", {"name": "Ada"})

        assert store.get("User:1") == {"name": "Ada"}

    def test_get_returns_copy(self, store):
        store.write("User:1", {"name": "Ada"})

        store.get("User:1")["name"] = "changed"

        assert store.get("User:1") == {"name": "Ada"}


class TestDeleteAndClear:
    """Tests for delete() and clear()."""

    def test_delete_removes_from_memory_and_storage(self, store, storage):
        store.write("User:1", {"name": "Ada"})

        store.delete("User:1")

        assert "User:1" not in store
        assert storage.get("User:1") is None

    def test_delete_absent_key(self, store, tracker):
        tracker.begin_read("q1")
        tracker.record_access("q1", "User:1")

        assert store.delete("User:1") == set()

    def test_clear(self, store, storage):
        store.write("a", {"x": 1})
        store.write("b", {"x": 2})

        store.clear()

        assert len(store) == 0
        assert storage.get_item_count() == 0


class TestRead:
    """Tests for RecordStore.read()."""

    def test_read_scalars(self, store):
        store.write("ROOT_QUERY", {"field": "simple value"})

        result = store.read("ROOT_QUERY", selection({"field": None}))

        assert result.complete
        assert result.data == {"field": "simple value"}
        assert result.dependencies == frozenset({"ROOT_QUERY"})

    def test_read_follows_references(self, store):
        store.write("User:1", {"__typename": "User", "id": "1", "name": "Ada"})
        store.write("ROOT_QUERY", {"me": Reference("User:1", typename="User")})

        result = store.read("ROOT_QUERY", selection({"me": {"name": None}}))

        assert result.data == {"me": {"name": "Ada", "__typename": "User"}}
        assert result.dependencies == frozenset({"ROOT_QUERY", "User:1"})

    def test_read_without_typename(self, store):
        store.write("User:1", {"__typename": "User", "name": "Ada"})
        store.write("ROOT_QUERY", {"me": Reference("User:1")})

        result = store.read("ROOT_QUERY", selection({"me": {"name": None}}), add_typename=False)

        assert result.data == {"me": {"name": "Ada"}}

    def test_read_lists_of_references(self, store):
        store.write("User:1", {"name": "Ada"})
        store.write("User:2", {"name": "Grace"})
        store.write("ROOT_QUERY", {"users": [Reference("User:1"), None, Reference("User:2")]})

        result = store.read("ROOT_QUERY", selection({"users": {"name": None}}))

        assert result.data == {"users": [{"name": "Ada"}, None, {"name": "Grace"}]}

    def test_read_arguments_and_alias(self, store):
        store.write("ROOT_QUERY", {'user({"id":1})': "Ada"})

        result = store.read("ROOT_QUERY", (Field("user", alias="me", arguments={"id": 1}),))

        assert result.data == {"me": "Ada"}

    def test_read_json_blob(self, store):
        store.write("ROOT_QUERY", {"meta": JsonBlob({"tags": ["x"]})})

        result = store.read("ROOT_QUERY", selection({"meta": None}))

        assert result.data == {"meta": {"tags": ["x"]}}

    def test_missing_root_record(self, store):
        result = store.read("ROOT_QUERY", selection({"field": None}))

        assert result.data is None
        assert [m.reason for m in result.missing] == [MissReason.MISSING_RECORD]
        assert result.dependencies == frozenset({"ROOT_QUERY"})

    def test_missing_field(self, store):
        store.write("ROOT_QUERY", {"a": 1})

        result = store.read("ROOT_QUERY", selection({"a": None, "b": None}))

        assert not result.complete
        assert result.data == {"a": 1}
        assert result.missing[0].path == ("b",)
        assert result.missing[0].reason == MissReason.MISSING_FIELD

    def test_dangling_reference(self, store):
        store.write("ROOT_QUERY", {"me": Reference("User:1")})

        result = store.read("ROOT_QUERY", selection({"me": {"name": None}}))

        assert result.missing[0].reason == MissReason.DANGLING_REFERENCE
        assert result.missing[0].key == "User:1"
        assert "User:1" in result.dependencies

    def test_corrupt_record_is_a_miss(self, store, storage):
        storage.set("ROOT_QUERY", '{"me":{"type":"id","id":"User:1"}}')
        storage.set("User:1", "not json")

        result = store.read("ROOT_QUERY", selection({"me": {"name": None}}))

        assert result.missing[0].reason == MissReason.CORRUPT_RECORD
        assert isinstance(result.errors[0], CorruptRecordError)
        assert result.errors[0].key == "User:1"

    def test_whole_object_reference_resolution(self, store):
        store.write("Settings:1", {"theme": "dark"})
        store.write("User:1", {"name": "Ada", "settings": Reference("Settings:1")})
        store.write("ROOT_QUERY", {"me": Reference("User:1")})

        result = store.read("ROOT_QUERY", selection({"me": None}))

        assert result.data == {"me": {"name": "Ada", "settings": {"theme": "dark"}}}
        assert result.dependencies == frozenset({"ROOT_QUERY", "User:1", "Settings:1"})

    def test_whole_object_cycle_returns_reference(self, store):
        store.write("User:1", {"friend": Reference("User:2")})
        store.write("User:2", {"friend": Reference("User:1")})
        store.write("ROOT_QUERY", {"me": Reference("User:1")})

        result = store.read("ROOT_QUERY", selection({"me": None}))

        assert result.data == {"me": {"friend": {"friend": Reference("User:1")}}}

    def test_read_records_dependencies_under_read_id(self, store, tracker):
        store.write("ROOT_QUERY", {"me": Reference("User:1")})
        tracker.begin_read("q1")

        store.read("ROOT_QUERY", selection({"me": {"name": None}}), read_id="q1")

        assert tracker.dependencies("q1") == frozenset({"ROOT_QUERY", "User:1"})


class TestHydration:
    """Tests for lazy loading from storage."""

    def test_reads_seeded_storage(self):
        storage = InMemoryStorage({"ROOT_QUERY": '{"field":"simple value"}'})
        store = RecordStore(storage)

        result = store.read("ROOT_QUERY", selection({"field": None}))

        assert result.data == {"field": "simple value"}
        assert store.extract() == {"ROOT_QUERY": '{"field":"simple value"}'}


class TestSnapshots:
    """Tests for restore() and extract()."""

    def test_restore_replaces_memory(self, store, storage):
        store.write("Old:1", {"x": 1})

        errors = store.restore({"ROOT_QUERY": '{"field":"value"}'})

        assert errors == []
        assert store.keys() == ["ROOT_QUERY"]
        assert storage.get("ROOT_QUERY") == '{"field":"value"}'

    def test_restore_accepts_decoded_objects(self, store):
        store.restore(
            {
                "ROOT_QUERY": {"me": {"type": "id", "id": "User:1", "generated": False}},
                "User:1": {"name": "Ada"},
            }
        )

        assert store.get("ROOT_QUERY") == {"me": Reference("User:1")}
        assert store.read("ROOT_QUERY", selection({"me": {"name": None}})).data == {
            "me": {"name": "Ada"}
        }

    def test_restore_skips_corrupt_entries(self, store, storage):
        errors = store.restore({"good": '{"x":1}', "bad": "{nope", "worse": 42})

        assert sorted(e.key for e in errors) == ["bad", "worse"]
        assert store.keys() == ["good"]
        assert storage.get("bad") is None

    def test_restore_does_not_invalidate(self, store, tracker):
        store.write("User:1", {"name": "Ada"})
        tracker.begin_read("q1")
        tracker.record_access("q1", "User:1")

        store.restore({"User:1": '{"name":"Grace"}'})

        assert tracker.is_active("q1")
        assert store.get("User:1") == {"name": "Grace"}

    def test_extract_matches_storage(self, store, storage):
        store.write("User:1", {"name": "Ada"})
        store.write("ROOT_QUERY", {"me": Reference("User:1")})

        assert store.extract() == read_snapshot(storage)

    def test_restore_then_extract_returns_input(self, store):
        snapshot = {
            "ROOT_QUERY": '{"me":{"generated":false,"id":"User:1","type":"id","typename":"User"}}',
            "User:1": '{"__typename":"User","name":"Ada","tags":["a","b"]}',
        }

        store.restore(snapshot)

        assert store.extract() == snapshot

    def test_restore_drops_records_missing_from_snapshot(self, store, storage):
        store.write("User:1", {"name": "Ada"})
        store.write("ROOT_QUERY", {"me": Reference("User:1")})
        snapshot = {"ROOT_QUERY": store.extract()["ROOT_QUERY"]}

        store.restore(snapshot)
        result = store.read("ROOT_QUERY", selection({"me": {"name": None}}))

        assert storage.get("User:1") is None
        assert result.missing[0].reason == MissReason.DANGLING_REFERENCE
        assert store.extract() == snapshot

    def test_restore_keeps_externally_seeded_keys(self, storage):
        store = RecordStore(storage)
        store.restore({})
        storage.set("ROOT_QUERY", '{"field":"value"}')

        assert store.read("ROOT_QUERY", selection({"field": None})).data == {"field": "value"}
