"""
Persistence Adapter

Mirrors collections to durable on-device key-value storage so the cache
survives process restarts.

DESIGN DECISION: Persistence is best-effort caching, NOT the system of record.
- Write failures are logged and swallowed
- Unreadable snapshots are logged and treated as "no snapshot"
- Only `items` are persisted; loading state and fetch timestamps are not,
  so a hydrated collection is still stale on first access

Storage calls are synchronous. Store mutations run synchronously on the
event loop thread, so a snapshot write can never interleave with a fetch.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence, TypeVar

from pydantic import ValidationError

from cotton.audit import CacheEventLogger, get_event_logger
from cotton.errors import PersistenceReadFailure, PersistenceWriteFailure
from cotton.models.cache import SNAPSHOT_VERSION, PersistedSnapshot
from cotton.models.finance import Entity


E = TypeVar("E", bound=Entity)


class KeyValueStorage(ABC):
    """
    Abstract interface for on-device key-value storage.

    Implementations raise PersistenceReadFailure / PersistenceWriteFailure
    for backend problems; a missing key is not an error.
    """

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored string, or None if the key is absent."""
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove a key. Removing an absent key is a no-op."""
        pass

    @abstractmethod
    def clear(self) -> None:
        pass


class InMemoryKeyValueStorage(KeyValueStorage):
    """Process-local storage for tests and ephemeral sessions."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        return sorted(self._data)


class FileKeyValueStorage(KeyValueStorage):
    """
    One JSON file per key inside a directory.

    Writes go to a temporary file that is atomically renamed over the
    target, so a crash mid-write never leaves a truncated snapshot.
    """

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return self.directory / f"{safe}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceReadFailure(f"Could not read {path}: {e}")

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.directory, prefix=f".{path.stem}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceWriteFailure(f"Could not write {path}: {e}")

    def remove_item(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceWriteFailure(f"Could not remove {key}: {e}")

    def clear(self) -> None:
        if not self.directory.exists():
            return
        for path in self.directory.glob("*.json"):
            try:
                path.unlink()
            except OSError as e:
                raise PersistenceWriteFailure(f"Could not remove {path}: {e}")


class SnapshotPersistence:
    """
    Serializes collections to and from a KeyValueStorage.

    Persisted format per collection:
        {"version": 1, "collection": "projects", "saved_at": "...", "items": [...]}

    Items are dumped in pydantic JSON mode, so datetimes become ISO-8601
    strings and parse back into identical aware datetimes on load.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        key_prefix: str = "",
        event_logger: Optional[CacheEventLogger] = None,
    ):
        self._storage = storage
        self._key_prefix = key_prefix
        self._events = event_logger or get_event_logger()

    @property
    def storage(self) -> KeyValueStorage:
        return self._storage

    def key_for(self, collection: str) -> str:
        return f"{self._key_prefix}{collection}"

    def dumps(self, collection: str, items: Sequence[Entity]) -> str:
        """Encode a collection as a snapshot envelope."""
        snapshot = PersistedSnapshot(
            collection=collection,
            items=[item.model_dump(mode="json") for item in items],
        )
        return snapshot.model_dump_json()

    def loads(self, collection: str, raw: str, model: type[E]) -> list[E]:
        """
        Decode a stored snapshot into validated entities.

        Raises:
            PersistenceReadFailure: corrupt JSON, unknown version, or
                entities that no longer match the model
        """
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceReadFailure(f"Corrupt snapshot: {e}")

        # Bare arrays were written before the envelope existed
        if isinstance(payload, list):
            raw_items = payload
        elif isinstance(payload, dict):
            version = payload.get("version", SNAPSHOT_VERSION)
            if version != SNAPSHOT_VERSION:
                raise PersistenceReadFailure(
                    f"Unsupported snapshot version {version} "
                    f"(expected {SNAPSHOT_VERSION})"
                )
            raw_items = payload.get("items", [])
            if not isinstance(raw_items, list):
                raise PersistenceReadFailure("Snapshot items must be a list")
        else:
            raise PersistenceReadFailure(
                f"Unexpected snapshot payload: {type(payload).__name__}"
            )

        try:
            return [model.model_validate(item) for item in raw_items]
        except ValidationError as e:
            raise PersistenceReadFailure(
                f"Snapshot does not match {model.__name__}: {e.error_count()} errors"
            )

    def save(self, collection: str, items: Sequence[Entity]) -> bool:
        """
        Persist a collection. Never raises.

        Returns True if the write succeeded.
        """
        try:
            self._storage.set_item(self.key_for(collection), self.dumps(collection, items))
            return True
        except Exception as e:
            # Log failure but don't raise
            self._events.snapshot_write_failed(collection, str(e))
            return False

    def load(self, collection: str, model: type[E]) -> list[E]:
        """
        Load a persisted collection. Never raises.

        Missing, corrupt or incompatible snapshots yield an empty list.
        """
        try:
            raw = self._storage.get_item(self.key_for(collection))
            if raw is None:
                return []
            return self.loads(collection, raw, model)
        except Exception as e:
            self._events.snapshot_read_failed(collection, str(e))
            return []

    def clear(self, collection: str) -> None:
        """Remove a persisted collection. Never raises."""
        try:
            self._storage.remove_item(self.key_for(collection))
        except Exception as e:
            self._events.snapshot_write_failed(collection, str(e))
