"""
Optimistic Mutation Helpers

Let a successful create/update/delete performed elsewhere in the app
show up in the cached list immediately, without waiting for the next
fetch cycle.

CRITICAL: Call these with the entity the backend CONFIRMED (its
authoritative id and fields), never with the client's guess.

An id that is no longer cached (e.g. a concurrent fetch already removed
it) is a no-op, not an error.
"""

from typing import Any, Generic, Mapping, Optional, TypeVar

from cotton.audit import CacheEventLogger, get_event_logger
from cotton.cache.store import CollectionStore
from cotton.models.finance import Entity


E = TypeVar("E", bound=Entity)


class OptimisticMutations(Generic[E]):
    """Convenience wrappers around the store's patch operations."""

    def __init__(
        self,
        store: CollectionStore[E],
        event_logger: Optional[CacheEventLogger] = None,
    ):
        self._store = store
        self._events = event_logger or get_event_logger()

    def add_locally(self, item: E | dict) -> E:
        """
        Prepend an entity (newest-first display convention).

        Returns the entity as stored.
        """
        entity = self._store.coerce(item)
        self._store.insert_one(entity, position="front")
        self._events.local_mutation(self._store.name, "add", entity.id)
        return entity

    def update_locally(
        self,
        entity_id: str,
        changes: E | Mapping[str, Any],
    ) -> bool:
        """
        Replace the entity with `entity_id`.

        Args:
            entity_id: Id of the cached entity
            changes: Either the full updated entity or a mapping of
                field updates (snake_case or camelCase keys)

        Returns:
            True if the entity was cached and updated
        """
        def apply(existing: E) -> E | dict:
            if isinstance(changes, Entity):
                return changes
            merged = existing.model_dump()
            merged.update(self._normalize_keys(changes))
            merged["id"] = existing.id
            return merged

        changed = self._store.patch_one(entity_id, apply)
        if changed:
            self._events.local_mutation(self._store.name, "update", entity_id)
        else:
            self._events.stale_mutation_ignored(self._store.name, "update", entity_id)
        return changed

    def remove_locally(self, entity_id: str) -> bool:
        """Drop the entity with `entity_id`. Returns True if it was cached."""
        changed = self._store.remove_one(entity_id)
        if changed:
            self._events.local_mutation(self._store.name, "remove", entity_id)
        else:
            self._events.stale_mutation_ignored(self._store.name, "remove", entity_id)
        return changed

    def _normalize_keys(self, changes: Mapping[str, Any]) -> dict[str, Any]:
        """Map camelCase aliases onto model field names."""
        by_alias = {
            field.alias: name
            for name, field in self._store.model.model_fields.items()
            if field.alias
        }
        return {by_alias.get(key, key): value for key, value in changes.items()}
