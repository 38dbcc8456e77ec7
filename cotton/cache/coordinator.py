"""
Fetch Coordinator

The single entry point screens call to obtain up-to-date data with
minimal network chatter.

FLOW of ensure_fresh(force):
1. Fresh and non-empty (and not forced) → return items, no suspension
2. A fetch is already in flight → await that same fetch
3. Otherwise → start ONE fetch, replace items on success

GUARANTEES:
- Concurrent callers never trigger duplicate (billed) fetches
- A failed fetch leaves the previous snapshot and timestamp untouched
- A result from a superseded generation never overwrites newer state
- Failures are returned as FetchResult, never raised
- No automatic retries; the caller decides (e.g. pull-to-refresh)
"""

import asyncio
import time
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from pydantic import ValidationError

from cotton.audit import CacheEventLogger, get_event_logger
from cotton.cache.staleness import StalenessPolicy, TtlPolicy
from cotton.cache.store import CollectionStore
from cotton.errors import ErrorCode, FetchFailure
from cotton.models.cache import FetchResult
from cotton.models.finance import Entity


E = TypeVar("E", bound=Entity)

Fetcher = Callable[[], Awaitable[list]]
Clock = Callable[[], float]


class FetchCoordinator(Generic[E]):
    """
    Orchestrates "fetch unless the cache is fresh" for one collection.

    Deduplication uses a shared asyncio task per in-flight fetch. Each
    fetch is stamped with a generation number taken from the store;
    `invalidate()` during a fetch starts a new generation so the older
    result is discarded when it lands.
    """

    def __init__(
        self,
        store: CollectionStore[E],
        fetcher: Fetcher,
        policy: Optional[StalenessPolicy] = None,
        clock: Optional[Clock] = None,
        event_logger: Optional[CacheEventLogger] = None,
    ):
        self._store = store
        self._fetcher = fetcher
        self._policy = policy or TtlPolicy()
        self._clock = clock or time.time
        self._events = event_logger or get_event_logger()
        self._inflight: Optional[asyncio.Task] = None
        self._inflight_generation = 0

    @property
    def store(self) -> CollectionStore[E]:
        return self._store

    @property
    def policy(self) -> StalenessPolicy:
        return self._policy

    @property
    def in_flight(self) -> bool:
        """True while a fetch for this collection is pending."""
        return self._inflight is not None and not self._inflight.done()

    def is_cache_valid(self) -> bool:
        """Would ensure_fresh(force=False) be served from memory right now?"""
        return (
            self._policy.is_fresh(self._store.last_fetched_at, self._clock())
            and len(self._store.items) > 0
        )

    async def ensure_fresh(self, force: bool = False) -> FetchResult:
        """
        Return the collection, fetching only when needed.

        Args:
            force: Bypass the staleness policy (pull-to-refresh)

        Returns:
            FetchResult with the items, or the failure and the previous items
        """
        name = self._store.name

        if not force and self.is_cache_valid():
            self._events.cache_hit(
                name,
                item_count=len(self._store.items),
                age_seconds=self._clock() - self._store.last_fetched_at,
            )
            return FetchResult.ok(list(self._store.items), from_cache=True)

        if self.in_flight:
            self._events.fetch_joined(name, self._inflight_generation)
            # shield: one caller being cancelled must not cancel the shared fetch
            return await asyncio.shield(self._inflight)

        generation = self._store.advance_generation()
        self._inflight_generation = generation
        self._inflight = asyncio.ensure_future(self._run_fetch(generation, force))
        return await asyncio.shield(self._inflight)

    async def refresh(self) -> FetchResult:
        """Force a refetch regardless of freshness."""
        return await self.ensure_fresh(force=True)

    def invalidate(self) -> None:
        """
        Reset the fetch timestamp so the next access refetches.

        Items stay visible. If a fetch is in flight, its result is
        superseded and will be discarded when it arrives.
        """
        if self.in_flight:
            generation = self._store.advance_generation()
            self._inflight = None
            # is_loading follows the current generation only. The superseded
            # task keeps running and settles without touching the flag.
            self._store.set_loading(False)
        else:
            generation = self._store.generation
        self._store.invalidate()
        self._events.cache_invalidated(self._store.name, generation)

    def reset(self) -> None:
        """
        Detach any in-flight fetch (test isolation, sign-out).

        The detached task still runs, but its generation is behind the
        store's after CollectionStore.reset(), so its result is dropped.
        Call together with the store reset.
        """
        self._inflight = None
        self._inflight_generation = 0

    async def _run_fetch(self, generation: int, forced: bool) -> FetchResult:
        name = self._store.name
        self._store.set_loading(True)
        self._events.fetch_started(name, generation, forced)

        try:
            fetched = await self._fetcher()
            entities = [self._store.coerce(item) for item in fetched]
        except asyncio.CancelledError:
            if self._store.generation == generation:
                self._store.set_loading(False)
                self._inflight = None
            raise
        except ValidationError as e:
            failure = FetchFailure(
                f"Backend returned malformed {name}: {e.error_count()} errors",
                code=ErrorCode.VALIDATION_ERROR,
            )
            return self._fail(generation, failure)
        except Exception as e:
            return self._fail(generation, FetchFailure.from_unknown(e))

        if self._store.generation != generation:
            # A newer generation started while we were waiting
            self._events.fetch_discarded(name, generation, self._store.generation)
            return FetchResult.ok(entities)

        self._store.replace_all(entities)
        self._store.mark_fetched(self._clock())
        self._store.set_loading(False)
        self._inflight = None
        self._events.fetch_succeeded(name, generation, len(self._store.items))
        return FetchResult.ok(list(self._store.items))

    def _fail(self, generation: int, failure: FetchFailure) -> FetchResult:
        if self._store.generation == generation:
            self._store.set_loading(False)
            self._inflight = None
        self._events.fetch_failed(
            self._store.name, generation, failure.code, failure.message
        )
        return FetchResult.failed(failure, data=list(self._store.items))
