"""
Tests for snapshot persistence

Persistence is best-effort: failures are logged and swallowed, and a
restarted process sees exactly what the previous one wrote.
"""

import json
from datetime import datetime, timezone

import pytest

from cotton.cache import (
    CollectionStore,
    FileKeyValueStorage,
    InMemoryKeyValueStorage,
    KeyValueStorage,
    SnapshotPersistence,
)
from cotton.errors import PersistenceReadFailure, PersistenceWriteFailure
from cotton.models import SNAPSHOT_VERSION, CacheEventType, Project, Transaction


class BrokenStorage(KeyValueStorage):
    """Storage whose every operation fails."""

    def get_item(self, key):
        raise PersistenceReadFailure("storage unavailable")

    def set_item(self, key, value):
        raise PersistenceWriteFailure("disk full")

    def remove_item(self, key):
        raise PersistenceWriteFailure("disk full")

    def clear(self):
        raise PersistenceWriteFailure("disk full")


def dated_transaction() -> Transaction:
    return Transaction(
        id="t1",
        amount=1250.5,
        type="expense",
        date=datetime(2024, 3, 1, 9, 15, 30, 123000, tzinfo=timezone.utc),
        created_at=datetime(2024, 3, 1, 9, 16, tzinfo=timezone.utc),
        allocations=[{"projectId": "p1", "amount": 1250.5, "percentage": 100}],
    )


class TestSnapshotFormat:
    """Tests for the persisted envelope."""

    def test_envelope(self, persistence):
        """Test the versioned envelope shape."""
        raw = persistence.dumps("projects", [Project(id="p1", name="Bakery")])
        payload = json.loads(raw)
        assert payload["version"] == SNAPSHOT_VERSION
        assert payload["collection"] == "projects"
        assert payload["items"][0]["id"] == "p1"
        assert "saved_at" in payload

    def test_dates_are_iso_strings(self, persistence):
        """Test dates are stored as ISO-8601 strings."""
        payload = json.loads(persistence.dumps("transactions", [dated_transaction()]))
        assert payload["items"][0]["date"].startswith("2024-03-01T09:15:30.123")

    def test_accepts_bare_array(self, persistence):
        """Test snapshots written before the envelope are still readable."""
        raw = json.dumps([{"id": "p1", "name": "Bakery"}])
        assert [p.id for p in persistence.loads("projects", raw, Project)] == ["p1"]

    def test_missing_version_is_current(self, persistence):
        """Test an envelope without a version is read as the current version."""
        raw = json.dumps({"collection": "projects", "items": [{"id": "p1", "name": "A"}]})
        assert len(persistence.loads("projects", raw, Project)) == 1

    def test_rejects_unknown_version(self, persistence):
        """Test a future snapshot version is not deserialized."""
        raw = json.dumps({"version": SNAPSHOT_VERSION + 1, "items": []})
        with pytest.raises(PersistenceReadFailure):
            persistence.loads("projects", raw, Project)

    def test_rejects_corrupt_json(self, persistence):
        """Test corrupt bytes raise PersistenceReadFailure."""
        with pytest.raises(PersistenceReadFailure):
            persistence.loads("projects", "{not json", Project)

    def test_rejects_mismatched_shape(self, persistence):
        """Test entities that no longer match the model are refused."""
        raw = json.dumps([{"id": "p1"}])
        with pytest.raises(PersistenceReadFailure):
            persistence.loads("projects", raw, Project)


class TestRoundTrip:
    """Tests for save/load across a simulated restart."""

    def test_dates_survive_restart(self, storage, events):
        """Test a rehydrated date equals the original to the millisecond."""
        original = dated_transaction()
        writer = CollectionStore(
            "transactions",
            Transaction,
            persistence=SnapshotPersistence(storage, event_logger=events),
            event_logger=events,
        )
        writer.replace_all([original])

        # Fresh process: new persistence and store over the same bytes
        restarted_storage = InMemoryKeyValueStorage({"transactions": storage.get_item("transactions")})
        reader = CollectionStore(
            "transactions",
            Transaction,
            persistence=SnapshotPersistence(restarted_storage, event_logger=events),
            event_logger=events,
        )
        reader.hydrate()

        restored = reader.items[0]
        assert restored.date == original.date
        assert restored.created_at == original.created_at
        assert restored == original

    def test_key_prefix(self, storage, events):
        """Test keys are namespaced by the prefix."""
        persistence = SnapshotPersistence(storage, key_prefix="user42:", event_logger=events)
        persistence.save("projects", [Project(id="p1", name="A")])
        assert storage.keys() == ["user42:projects"]

    def test_clear(self, persistence, storage):
        """Test clearing a collection removes its snapshot."""
        persistence.save("projects", [Project(id="p1", name="A")])
        persistence.clear("projects")
        assert persistence.load("projects", Project) == []


class TestBestEffort:
    """Tests for failure handling."""

    def test_save_failure_is_swallowed(self, events):
        """Test a failed write is logged and reported as False."""
        persistence = SnapshotPersistence(BrokenStorage(), event_logger=events)
        assert persistence.save("projects", [Project(id="p1", name="A")]) is False
        assert events.history[-1].event_type == CacheEventType.SNAPSHOT_WRITE_FAILED

    def test_load_failure_yields_empty(self, events):
        """Test a failed read is treated as no snapshot."""
        persistence = SnapshotPersistence(BrokenStorage(), event_logger=events)
        assert persistence.load("projects", Project) == []
        assert events.history[-1].event_type == CacheEventType.SNAPSHOT_READ_FAILED

    def test_corrupt_snapshot_yields_empty(self, events):
        """Test corrupt stored bytes are treated as no snapshot."""
        storage = InMemoryKeyValueStorage({"projects": "\x00garbage"})
        persistence = SnapshotPersistence(storage, event_logger=events)
        assert persistence.load("projects", Project) == []

    def test_store_keeps_working_when_storage_fails(self, events):
        """Test in-memory state updates even when persisting fails."""
        persistence = SnapshotPersistence(BrokenStorage(), event_logger=events)
        store = CollectionStore("projects", Project, persistence=persistence, event_logger=events)
        store.replace_all([Project(id="p1", name="A")])
        assert [p.id for p in store.items] == ["p1"]

    def test_clear_failure_is_swallowed(self, events):
        """Test a failed removal never raises."""
        SnapshotPersistence(BrokenStorage(), event_logger=events).clear("projects")
        assert events.history[-1].event_type == CacheEventType.SNAPSHOT_WRITE_FAILED


class TestFileStorage:
    """Tests for the file-backed storage."""

    def test_round_trip(self, tmp_path):
        """Test values survive a new storage instance."""
        FileKeyValueStorage(tmp_path / "cache").set_item("projects", "[1]")
        assert FileKeyValueStorage(tmp_path / "cache").get_item("projects") == "[1]"

    def test_missing_key(self, tmp_path):
        """Test an absent key reads as None."""
        assert FileKeyValueStorage(tmp_path).get_item("nothing") is None

    def test_unsafe_key_characters(self, tmp_path):
        """Test keys are mapped to safe file names."""
        storage = FileKeyValueStorage(tmp_path)
        storage.set_item("user/42:projects", "x")
        assert storage.get_item("user/42:projects") == "x"
        assert [p.name for p in tmp_path.glob("*.json")] == ["user_42_projects.json"]

    def test_no_temp_files_left(self, tmp_path):
        """Test atomic writes clean up after themselves."""
        storage = FileKeyValueStorage(tmp_path)
        storage.set_item("projects", "a")
        storage.set_item("projects", "b")
        assert sorted(p.name for p in tmp_path.iterdir()) == ["projects.json"]

    def test_remove_and_clear(self, tmp_path):
        """Test removal and clearing."""
        storage = FileKeyValueStorage(tmp_path)
        storage.set_item("a", "1")
        storage.set_item("b", "2")
        storage.remove_item("a")
        storage.remove_item("a")
        assert storage.get_item("a") is None
        storage.clear()
        assert storage.get_item("b") is None

    def test_clear_missing_directory(self, tmp_path):
        """Test clearing a never-created directory is a no-op."""
        FileKeyValueStorage(tmp_path / "never").clear()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
