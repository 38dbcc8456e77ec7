"""
Finance data cache package.

In-memory mirrors of the backend's collections with a staleness
policy, deduplicated fetching, optimistic local mutations and
best-effort on-device persistence.
"""

from cotton.cache.coordinator import FetchCoordinator
from cotton.cache.mutations import OptimisticMutations
from cotton.cache.persistence import (
    FileKeyValueStorage,
    InMemoryKeyValueStorage,
    KeyValueStorage,
    SnapshotPersistence,
)
from cotton.cache.registry import (
    DEFAULT_COLLECTIONS,
    CachedCollection,
    FinanceCache,
    build_finance_cache,
    get_cache,
    init_cache,
    reset_cache,
)
from cotton.cache.staleness import (
    DEFAULT_TTL_SECONDS,
    AlwaysFreshPolicy,
    StalenessPolicy,
    TtlPolicy,
    is_fresh,
)
from cotton.cache.store import CollectionStore

__all__ = [
    # Core
    "CollectionStore",
    "FetchCoordinator",
    "OptimisticMutations",
    # Staleness
    "DEFAULT_TTL_SECONDS",
    "AlwaysFreshPolicy",
    "StalenessPolicy",
    "TtlPolicy",
    "is_fresh",
    # Persistence
    "FileKeyValueStorage",
    "InMemoryKeyValueStorage",
    "KeyValueStorage",
    "SnapshotPersistence",
    # Registry
    "DEFAULT_COLLECTIONS",
    "CachedCollection",
    "FinanceCache",
    "build_finance_cache",
    "get_cache",
    "init_cache",
    "reset_cache",
]
