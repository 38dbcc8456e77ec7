"""
Main Orchestrator for Cotton

Ties the backend, the cache and the event logger together and defines
the end-to-end flows for:
1. Reads (screen → ensure_fresh → cached or fetched items)
2. Writes (screen → backend → optimistic cache patch)

DESIGN DECISION: The cache only ever learns what the backend confirmed.
- A write is sent to the backend FIRST
- Only on success is the confirmed entity patched into the cache
- A failed write leaves every cached collection untouched

Writes that change server-side aggregates (a transaction moves its
contact's totals) mark the dependent collections stale so the next
read refetches them.
"""

from typing import Any, Mapping, NamedTuple, Optional

import structlog

from cotton.audit import CacheEventLogger, get_event_logger
from cotton.cache import FinanceCache, KeyValueStorage, build_finance_cache, init_cache
from cotton.config import Settings, get_settings
from cotton.errors import CacheError
from cotton.models.cache import FetchResult
from cotton.services.backend import (
    FinanceBackend,
    ParseCloudBackend,
    SQLiteFinanceBackend,
)


logger = structlog.get_logger("cotton.flow")


# Collections whose cached aggregates a write to the key collection changes
DEPENDENT_COLLECTIONS: dict[str, tuple[str, ...]] = {
    "transactions": ("contacts",),
}


class FinanceDataFlow:
    """
    Orchestrates reads and writes for every cached collection.

    Flow of a write:
    1. Call the backend
    2. Failure → FetchResult.failed, cache untouched
    3. Success → apply the matching optimistic helper with the
       confirmed entity, invalidate dependent collections
    """

    def __init__(
        self,
        backend: FinanceBackend,
        cache: FinanceCache,
        event_logger: Optional[CacheEventLogger] = None,
    ):
        self._backend = backend
        self._cache = cache
        self._events = event_logger or get_event_logger()

    @property
    def backend(self) -> FinanceBackend:
        return self._backend

    @property
    def cache(self) -> FinanceCache:
        return self._cache

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def load(self, collection: str, force: bool = False) -> FetchResult:
        """Items for a screen, fetched only when the cache is stale."""
        return await self._cache.ensure_fresh(collection, force=force)

    async def refresh_all(self) -> dict[str, FetchResult]:
        """Force-refresh every collection (e.g. after signing in)."""
        return {
            name: await self._cache.refresh(name)
            for name in self._cache.collections
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, collection: str, data: Mapping[str, Any]) -> FetchResult:
        """
        Create an entity and show it at the top of the cached list.

        Returns:
            FetchResult whose data is [created_entity] on success
        """
        mutations = self._cache.mutations(collection)
        try:
            entity = await self._backend.create(collection, data)
        except CacheError as e:
            return self._write_failed(collection, "create", None, e)

        mutations.add_locally(entity)
        self._invalidate_dependents(collection)
        return FetchResult.ok([entity])

    async def update(
        self,
        collection: str,
        entity_id: str,
        changes: Mapping[str, Any],
    ) -> FetchResult:
        """
        Update an entity and replace it in the cached list.

        Returns:
            FetchResult whose data is [updated_entity] on success
        """
        mutations = self._cache.mutations(collection)
        try:
            entity = await self._backend.update(collection, entity_id, changes)
        except CacheError as e:
            return self._write_failed(collection, "update", entity_id, e)

        mutations.update_locally(entity_id, entity)
        self._invalidate_dependents(collection)
        return FetchResult.ok([entity])

    async def delete(self, collection: str, entity_id: str) -> FetchResult:
        """
        Delete an entity and drop it from the cached list.

        Returns:
            FetchResult with empty data on success
        """
        mutations = self._cache.mutations(collection)
        try:
            deleted_id = await self._backend.delete(collection, entity_id)
        except CacheError as e:
            return self._write_failed(collection, "delete", entity_id, e)

        mutations.remove_locally(deleted_id)
        self._invalidate_dependents(collection)
        return FetchResult.ok([])

    def _invalidate_dependents(self, collection: str) -> None:
        for dependent in DEPENDENT_COLLECTIONS.get(collection, ()):
            if dependent in self._cache.collections:
                self._cache.invalidate(dependent)

    def _write_failed(
        self,
        collection: str,
        operation: str,
        entity_id: Optional[str],
        error: CacheError,
    ) -> FetchResult:
        self._events.backend_write_failed(
            collection, operation, entity_id, error.code, error.message
        )
        return FetchResult.failed(error)


class AppComponents(NamedTuple):
    flow: FinanceDataFlow
    cache: FinanceCache
    backend: FinanceBackend


def create_app_components(
    settings: Optional[Settings] = None,
    storage: Optional[KeyValueStorage] = None,
    install: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Root settings (defaults to get_settings())
        storage: Snapshot storage override (defaults to files on disk)
        install: Install the cache as the process-wide cache

    Returns:
        (flow, cache, backend)
    """
    settings = settings or get_settings()
    cache_settings = settings.cache

    if cache_settings.variant == "local":
        backend: FinanceBackend = SQLiteFinanceBackend(settings=settings.database)
    else:
        backend = ParseCloudBackend(settings.parse)

    event_logger = get_event_logger()
    cache = build_finance_cache(
        backend,
        cache_settings,
        storage=storage,
        event_logger=event_logger,
    )
    if install:
        init_cache(cache)

    logger.info(
        "app_components_created",
        variant=cache_settings.variant,
        collections=cache.collections,
    )
    return AppComponents(
        flow=FinanceDataFlow(backend, cache, event_logger),
        cache=cache,
        backend=backend,
    )
