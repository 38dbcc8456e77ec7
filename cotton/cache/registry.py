"""
Finance Cache Registry

The process-wide cache context: exactly one store (plus its coordinator
and mutation helpers) per collection name.

DESIGN DECISION: No ambient globals with implicit lifecycle.
The cache is built once at start-up, installed with init_cache(),
read with get_cache(), and torn down with reset_cache() (tests).
Every screen reading "projects" observes the same store, so a local
mutation on one screen is visible on all of them.
"""

import functools
import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from cotton.audit import CacheEventLogger, get_event_logger
from cotton.cache.coordinator import Clock, FetchCoordinator, Fetcher
from cotton.cache.mutations import OptimisticMutations
from cotton.cache.persistence import (
    FileKeyValueStorage,
    KeyValueStorage,
    SnapshotPersistence,
)
from cotton.cache.staleness import AlwaysFreshPolicy, StalenessPolicy, TtlPolicy
from cotton.cache.store import CollectionStore, Listener
from cotton.config import CacheSettings
from cotton.errors import UnknownCollectionError
from cotton.models.cache import FetchResult
from cotton.models.finance import COLLECTION_MODELS, Entity
from cotton.services.backend.interface import FinanceBackend


E = TypeVar("E", bound=Entity)


# Collections cached by default, keyed by collection name
DEFAULT_COLLECTIONS: dict[str, type[Entity]] = dict(COLLECTION_MODELS)


@dataclass(frozen=True)
class CachedCollection(Generic[E]):
    """Everything the app needs to work with one collection."""
    store: CollectionStore[E]
    coordinator: FetchCoordinator[E]
    mutations: OptimisticMutations[E]

    @property
    def name(self) -> str:
        return self.store.name


class FinanceCache:
    """
    Registry of cached collections.

    Usage:
        cache = build_finance_cache(backend, settings.cache)
        init_cache(cache)
        result = await get_cache().ensure_fresh("projects")
    """

    def __init__(
        self,
        persistence: Optional[SnapshotPersistence] = None,
        policy: Optional[StalenessPolicy] = None,
        clock: Optional[Clock] = None,
        event_logger: Optional[CacheEventLogger] = None,
    ):
        self._persistence = persistence
        self._policy = policy or TtlPolicy()
        self._clock = clock or time.time
        self._events = event_logger or get_event_logger()
        self._collections: dict[str, CachedCollection] = {}

    @property
    def collections(self) -> list[str]:
        return list(self._collections)

    @property
    def persistence(self) -> Optional[SnapshotPersistence]:
        return self._persistence

    def register(
        self,
        name: str,
        model: type[E],
        fetcher: Fetcher,
        policy: Optional[StalenessPolicy] = None,
    ) -> CachedCollection[E]:
        """
        Create the store, coordinator and helpers for a collection.

        Raises:
            ValueError: if the name is already registered
        """
        if name in self._collections:
            raise ValueError(f"Collection already registered: {name}")

        store: CollectionStore[E] = CollectionStore(
            name,
            model,
            persistence=self._persistence,
            event_logger=self._events,
        )
        coordinator = FetchCoordinator(
            store,
            fetcher,
            policy=policy or self._policy,
            clock=self._clock,
            event_logger=self._events,
        )
        mutations = OptimisticMutations(store, event_logger=self._events)
        collection = CachedCollection(store, coordinator, mutations)
        self._collections[name] = collection
        return collection

    def collection(self, name: str) -> CachedCollection:
        try:
            return self._collections[name]
        except KeyError:
            raise UnknownCollectionError(f"Unknown collection: {name}")

    def store(self, name: str) -> CollectionStore:
        return self.collection(name).store

    def coordinator(self, name: str) -> FetchCoordinator:
        return self.collection(name).coordinator

    def mutations(self, name: str) -> OptimisticMutations:
        return self.collection(name).mutations

    async def ensure_fresh(self, name: str, force: bool = False) -> FetchResult:
        return await self.coordinator(name).ensure_fresh(force=force)

    async def refresh(self, name: str) -> FetchResult:
        return await self.coordinator(name).refresh()

    def invalidate(self, name: str) -> None:
        self.coordinator(name).invalidate()

    def invalidate_all(self) -> None:
        for name in self._collections:
            self.invalidate(name)

    def subscribe(self, name: str, listener: Listener) -> Callable[[], None]:
        return self.store(name).subscribe(listener)

    def hydrate_all(self) -> dict[str, int]:
        """
        Seed every store from persisted snapshots.

        Call once at start-up, before the first ensure_fresh().
        Returns {collection: restored_item_count}.
        """
        return {name: c.store.hydrate() for name, c in self._collections.items()}

    def reset(self) -> None:
        """Drop all in-memory state, subscribers and in-flight fetches."""
        for collection in self._collections.values():
            collection.coordinator.reset()
            collection.store.reset()


def build_finance_cache(
    backend: FinanceBackend,
    settings: Optional[CacheSettings] = None,
    storage: Optional[KeyValueStorage] = None,
    clock: Optional[Clock] = None,
    event_logger: Optional[CacheEventLogger] = None,
    hydrate: bool = True,
) -> FinanceCache:
    """
    Factory wiring the default collections to a backend.

    Args:
        backend: Source of authoritative data
        settings: Cache settings (variant, TTL, storage); defaults from env
        storage: Key-value storage override (defaults to files in storage_dir)
        clock: Time source returning epoch seconds
        event_logger: Event logger override
        hydrate: Seed stores from persisted snapshots immediately

    Returns:
        A ready-to-use FinanceCache
    """
    settings = settings or CacheSettings()

    if settings.variant == "local":
        policy: StalenessPolicy = AlwaysFreshPolicy()
    else:
        policy = TtlPolicy(settings.ttl_seconds)

    persistence = None
    if settings.persist_snapshots:
        persistence = SnapshotPersistence(
            storage or FileKeyValueStorage(settings.storage_dir),
            key_prefix=settings.key_prefix,
            event_logger=event_logger,
        )

    cache = FinanceCache(
        persistence=persistence,
        policy=policy,
        clock=clock,
        event_logger=event_logger,
    )
    for name, model in DEFAULT_COLLECTIONS.items():
        cache.register(name, model, functools.partial(backend.fetch_collection, name))

    if hydrate:
        cache.hydrate_all()
    return cache


# =============================================================================
# PROCESS-WIDE ACCESSOR
# =============================================================================

_cache: Optional[FinanceCache] = None


def init_cache(cache: FinanceCache) -> FinanceCache:
    """
    Install the process-wide cache.

    Raises:
        RuntimeError: if a cache is already installed (call reset_cache() first)
    """
    global _cache
    if _cache is not None:
        raise RuntimeError("Finance cache already initialized")
    _cache = cache
    return cache


def get_cache() -> FinanceCache:
    """
    Get the process-wide cache.

    Raises:
        RuntimeError: if init_cache() has not been called
    """
    if _cache is None:
        raise RuntimeError("Finance cache not initialized; call init_cache() at start-up")
    return _cache


def reset_cache() -> None:
    """Tear down the process-wide cache (test isolation)."""
    global _cache
    if _cache is not None:
        _cache.reset()
    _cache = None
