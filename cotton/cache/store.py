"""
Collection Cache Store

Holds the in-memory mirror of ONE entity collection (projects,
categories, contacts, ...) together with its loading state and
freshness timestamp.

DESIGN DECISION: The store is the single owner of its items.
Consumers receive immutable CacheEntry snapshots and must route every
change through the store (or the mutation helpers built on it).

Invariants:
- Every item is an instance of the declared model
- No two items share an id
- Local patches never touch `last_fetched_at`
"""

from typing import Callable, Generic, Iterable, Literal, Optional, TypeVar

from cotton.audit import CacheEventLogger, get_event_logger
from cotton.cache.persistence import SnapshotPersistence
from cotton.models.cache import CacheEntry
from cotton.models.finance import Entity


E = TypeVar("E", bound=Entity)

Listener = Callable[[CacheEntry], None]


class CollectionStore(Generic[E]):
    """
    In-memory state container for one collection.

    Every change publishes the new CacheEntry to subscribers. Writes to
    `items` are mirrored to the persistence adapter when one is attached.
    """

    def __init__(
        self,
        name: str,
        model: type[E],
        persistence: Optional[SnapshotPersistence] = None,
        event_logger: Optional[CacheEventLogger] = None,
    ):
        self._name = name
        self._model = model
        self._persistence = persistence
        self._events = event_logger or get_event_logger()
        self._entry = CacheEntry(collection=name)
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def model(self) -> type[E]:
        return self._model

    def get_snapshot(self) -> CacheEntry:
        """Current state. Never blocks, never fails."""
        return self._entry

    @property
    def items(self) -> tuple[E, ...]:
        return self._entry.items  # type: ignore[return-value]

    @property
    def is_loading(self) -> bool:
        return self._entry.is_loading

    @property
    def last_fetched_at(self) -> float:
        return self._entry.last_fetched_at

    @property
    def generation(self) -> int:
        return self._entry.generation

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def replace_all(self, items: Iterable[E | dict]) -> None:
        """
        Replace the whole collection with an authoritative result.

        Used by the fetch coordinator only. Duplicate ids keep their
        first occurrence.
        """
        self._commit_items(self._unique(self.coerce(item) for item in items))

    def insert_one(
        self,
        item: E | dict,
        position: Literal["front", "back"] = "front",
    ) -> None:
        """
        Insert an entity. An existing entity with the same id is replaced
        by the new one at the requested position.
        """
        entity = self.coerce(item)
        rest = [existing for existing in self.items if existing.id != entity.id]
        if position == "front":
            self._commit_items([entity, *rest])
        elif position == "back":
            self._commit_items([*rest, entity])
        else:
            raise ValueError(f"Unknown insert position: {position!r}")

    def patch_one(self, entity_id: str, updater: Callable[[E], E | dict]) -> bool:
        """
        Replace the entity with `entity_id` by `updater(entity)`.

        Returns False (and changes nothing) if no entity has that id.
        """
        items = list(self.items)
        for index, existing in enumerate(items):
            if existing.id == entity_id:
                break
        else:
            return False

        patched = self.coerce(updater(existing))
        items[index] = patched
        if patched.id != entity_id:
            items = [
                item for i, item in enumerate(items)
                if i == index or item.id != patched.id
            ]
        self._commit_items(items)
        return True

    def remove_one(self, entity_id: str) -> bool:
        """Remove the entity with `entity_id`. Returns False if absent."""
        items = [item for item in self.items if item.id != entity_id]
        if len(items) == len(self.items):
            return False
        self._commit_items(items)
        return True

    def set_loading(self, is_loading: bool) -> None:
        """Toggle the loading flag. Not persisted."""
        if self._entry.is_loading == is_loading:
            return
        self._publish(self._entry.model_copy(update={"is_loading": is_loading}))

    def mark_fetched(self, timestamp: float) -> None:
        """Stamp a successful fetch."""
        self._publish(self._entry.model_copy(update={"last_fetched_at": float(timestamp)}))

    def invalidate(self) -> None:
        """
        Force the next access to refetch.

        Items stay visible while the refetch runs.
        """
        if self._entry.last_fetched_at == 0:
            return
        self._publish(self._entry.model_copy(update={"last_fetched_at": 0.0}))

    def advance_generation(self) -> int:
        """Start a new fetch generation and return its number."""
        generation = self._entry.generation + 1
        self._entry = self._entry.model_copy(update={"generation": generation})
        return generation

    def hydrate(self) -> int:
        """
        Seed items from persisted storage.

        Does NOT stamp `last_fetched_at`: a hydrated collection is still
        stale and will be refreshed on first access.

        Returns the number of entities restored.
        """
        if self._persistence is None:
            return 0
        items = self._unique(self._persistence.load(self._name, self._model))
        if not items:
            return 0
        self._publish(self._entry.model_copy(update={"items": tuple(items)}))
        self._events.snapshot_hydrated(self._name, len(items))
        return len(items)

    def reset(self) -> None:
        """
        Drop all in-memory state (test isolation). Storage is left alone.

        The generation keeps counting up, so a fetch started before the
        reset can never match a later one.
        """
        self._entry = CacheEntry(
            collection=self._name,
            generation=self._entry.generation + 1,
        )
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener called with the new CacheEntry on every change.

        Returns a function that unsubscribes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def coerce(self, item: E | dict) -> E:
        """Validate an item against the declared model."""
        if isinstance(item, self._model):
            return item
        if isinstance(item, dict):
            return self._model.model_validate(item)
        raise TypeError(
            f"{self._name} holds {self._model.__name__} entities, "
            f"got {type(item).__name__}"
        )

    @staticmethod
    def _unique(items: Iterable[E]) -> list[E]:
        unique: list[E] = []
        seen: set[str] = set()
        for item in items:
            if item.id in seen:
                continue
            seen.add(item.id)
            unique.append(item)
        return unique

    def _commit_items(self, items: list[E]) -> None:
        self._publish(self._entry.model_copy(update={"items": tuple(items)}))
        if self._persistence is not None:
            self._persistence.save(self._name, items)

    def _publish(self, entry: CacheEntry) -> None:
        self._entry = entry
        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception as e:
                # One broken screen must not stop the others from updating
                self._events.listener_failed(self._name, str(e))

    def __repr__(self) -> str:
        return (
            f"CollectionStore(name={self._name!r}, items={len(self.items)}, "
            f"last_fetched_at={self.last_fetched_at})"
        )
