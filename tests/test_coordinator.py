"""
Tests for FetchCoordinator

Test strategy:
1. Staleness decisions (served from memory vs fetched)
2. Concurrency: deduplication, generations, cancellation
3. Failure handling: previous snapshot kept, errors returned not raised
4. The end-to-end projects scenario
"""

import asyncio

import pytest

from cotton.cache import (
    AlwaysFreshPolicy,
    CollectionStore,
    FetchCoordinator,
    OptimisticMutations,
    TtlPolicy,
)
from cotton.errors import ErrorCode
from cotton.models import CacheEventType, Project
from cotton.services.backend import BackendAuthError


def project(project_id: str, name: str = None) -> Project:
    return Project(id=project_id, name=name or f"Project {project_id}")


@pytest.fixture
def store(events):
    return CollectionStore("projects", Project, event_logger=events)


@pytest.fixture
def make_coordinator(store, clock, events):
    def make(fetcher, policy=None):
        return FetchCoordinator(
            store,
            fetcher,
            policy=policy or TtlPolicy(300),
            clock=clock,
            event_logger=events,
        )
    return make


def event_types(events) -> list:
    return [event.event_type for event in events.history]


class TestStaleness:
    """Tests for when the coordinator fetches."""

    @pytest.mark.asyncio
    async def test_first_access_fetches(self, make_coordinator, scripted, store, clock):
        """Test an empty, never-fetched collection is fetched."""
        fetcher = scripted([project("p1")])
        coordinator = make_coordinator(fetcher)

        result = await coordinator.ensure_fresh()

        assert result.success
        assert not result.from_cache
        assert [p.id for p in result.data] == ["p1"]
        assert fetcher.calls == 1
        assert store.last_fetched_at == clock.now
        assert not store.is_loading

    @pytest.mark.asyncio
    async def test_fresh_cache_is_not_refetched(self, make_coordinator, scripted, store, clock):
        """Test data fetched 60s ago with a 300s TTL is served from memory."""
        store.replace_all([project("p1")])
        store.mark_fetched(clock.now - 60)
        fetcher = scripted([project("p9")])
        coordinator = make_coordinator(fetcher)

        result = await coordinator.ensure_fresh(force=False)

        assert fetcher.calls == 0
        assert result.success
        assert result.from_cache
        assert result.data == list(store.items)
        assert [p.id for p in result.data] == ["p1"]

    @pytest.mark.asyncio
    async def test_forced_refresh_bypasses_ttl(self, make_coordinator, scripted, store, clock):
        """Test force=True fetches exactly once even when fresh."""
        store.replace_all([project("p1")])
        store.mark_fetched(clock.now - 60)
        fetcher = scripted([project("p2")])
        coordinator = make_coordinator(fetcher)

        result = await coordinator.ensure_fresh(force=True)

        assert fetcher.calls == 1
        assert [p.id for p in result.data] == ["p2"]

    @pytest.mark.asyncio
    async def test_refresh_is_forced(self, make_coordinator, scripted, store, clock):
        """Test refresh() ignores freshness."""
        store.replace_all([project("p1")])
        store.mark_fetched(clock.now)
        fetcher = scripted([project("p2")])
        await make_coordinator(fetcher).refresh()
        assert fetcher.calls == 1

    @pytest.mark.asyncio
    async def test_expired_cache_is_refetched(self, make_coordinator, scripted, store, clock):
        """Test data older than the TTL is refetched."""
        fetcher = scripted([project("p1")], [project("p2")])
        coordinator = make_coordinator(fetcher)
        await coordinator.ensure_fresh()

        clock.advance(301)
        result = await coordinator.ensure_fresh()

        assert fetcher.calls == 2
        assert [p.id for p in result.data] == ["p2"]

    @pytest.mark.asyncio
    async def test_fresh_but_empty_is_refetched(self, make_coordinator, scripted, store, clock):
        """Test an empty collection is never considered valid."""
        store.mark_fetched(clock.now)
        fetcher = scripted([project("p1")])
        coordinator = make_coordinator(fetcher)

        assert not coordinator.is_cache_valid()
        await coordinator.ensure_fresh()
        assert fetcher.calls == 1

    @pytest.mark.asyncio
    async def test_always_fresh_policy(self, make_coordinator, scripted, clock):
        """Test the local-first variant loads once, then never refetches."""
        fetcher = scripted([project("p1")])
        coordinator = make_coordinator(fetcher, policy=AlwaysFreshPolicy())

        await coordinator.ensure_fresh()
        clock.advance(10 ** 6)
        result = await coordinator.ensure_fresh()

        assert fetcher.calls == 1
        assert result.from_cache

    @pytest.mark.asyncio
    async def test_hydrated_data_is_still_refetched(
        self, scripted, persistence, events, clock
    ):
        """Test snapshots restored at start-up don't count as fresh."""
        persistence.save("projects", [project("old")])
        store = CollectionStore("projects", Project, persistence=persistence, event_logger=events)
        store.hydrate()
        fetcher = scripted([project("new")])
        coordinator = FetchCoordinator(store, fetcher, clock=clock, event_logger=events)

        assert [p.id for p in store.items] == ["old"]
        await coordinator.ensure_fresh()

        assert fetcher.calls == 1
        assert [p.id for p in store.items] == ["new"]

    @pytest.mark.asyncio
    async def test_cache_hit_is_logged(self, make_coordinator, scripted, store, clock, events):
        """Test served-from-memory reads emit cache_hit."""
        coordinator = make_coordinator(scripted([project("p1")]))
        await coordinator.ensure_fresh()
        await coordinator.ensure_fresh()
        assert event_types(events)[-1] == CacheEventType.CACHE_HIT


class TestAlwaysFresh:
    """Tests for the local-first policy through the coordinator."""

    @pytest.mark.asyncio
    async def test_hydrated_snapshot_is_reread(self, scripted, persistence, events, clock):
        """Test a restored snapshot is replaced by the database contents."""
        persistence.save("projects", [project("old")])
        store = CollectionStore("projects", Project, persistence=persistence, event_logger=events)
        store.hydrate()
        fetcher = scripted([project("new"), project("old")])
        coordinator = FetchCoordinator(
            store, fetcher, policy=AlwaysFreshPolicy(), clock=clock, event_logger=events
        )

        result = await coordinator.ensure_fresh()

        assert fetcher.calls == 1
        assert not result.from_cache
        assert [p.id for p in store.items] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_local_add_before_first_load(self, make_coordinator, scripted, store):
        """Test an entity added before the first load doesn't hide the rest."""
        fetcher = scripted([project("p2"), project("p1")])
        coordinator = make_coordinator(fetcher, policy=AlwaysFreshPolicy())
        OptimisticMutations(store).add_locally(project("p2"))

        result = await coordinator.ensure_fresh()

        assert fetcher.calls == 1
        assert [p.id for p in result.data] == ["p2", "p1"]

    @pytest.mark.asyncio
    async def test_invalidate_rereads(self, make_coordinator, scripted):
        """Test invalidate() makes the next access reread a non-empty collection."""
        fetcher = scripted([project("p1")], [project("p9"), project("p1")])
        coordinator = make_coordinator(fetcher, policy=AlwaysFreshPolicy())
        await coordinator.ensure_fresh()

        coordinator.invalidate()
        result = await coordinator.ensure_fresh()

        assert fetcher.calls == 2
        assert not result.from_cache
        assert [p.id for p in result.data] == ["p9", "p1"]


class TestInvalidate:
    """Tests for invalidation."""

    @pytest.mark.asyncio
    async def test_invalidate_is_idempotent(self, make_coordinator, scripted, store):
        """Test invalidating twice equals invalidating once."""
        coordinator = make_coordinator(scripted([project("p1")]))
        await coordinator.ensure_fresh()

        coordinator.invalidate()
        once = store.get_snapshot()
        coordinator.invalidate()
        twice = store.get_snapshot()

        assert once.last_fetched_at == twice.last_fetched_at == 0
        assert once.items == twice.items
        assert [p.id for p in twice.items] == ["p1"]

    @pytest.mark.asyncio
    async def test_invalidate_forces_next_fetch(self, make_coordinator, scripted):
        """Test the next access after invalidate() refetches."""
        fetcher = scripted([project("p1")], [project("p2")])
        coordinator = make_coordinator(fetcher)
        await coordinator.ensure_fresh()

        coordinator.invalidate()
        result = await coordinator.ensure_fresh()

        assert fetcher.calls == 2
        assert [p.id for p in result.data] == ["p2"]

    @pytest.mark.asyncio
    async def test_invalidate_during_fetch_discards_stale_result(
        self, make_coordinator, scripted, store, events, settle
    ):
        """Test a fetch superseded by invalidate() never overwrites newer data."""
        fetcher = scripted([project("stale")], [project("fresh")])
        coordinator = make_coordinator(fetcher)
        gate = fetcher.hold(0)

        first = asyncio.create_task(coordinator.ensure_fresh())
        await settle()
        assert store.is_loading

        coordinator.invalidate()
        assert not coordinator.in_flight
        assert not store.is_loading

        second = await coordinator.ensure_fresh()
        assert [p.id for p in second.data] == ["fresh"]

        gate.set()
        superseded = await first

        assert superseded.success
        assert [p.id for p in superseded.data] == ["stale"]
        assert [p.id for p in store.items] == ["fresh"]
        assert CacheEventType.FETCH_DISCARDED in event_types(events)


    @pytest.mark.asyncio
    async def test_superseded_fetch_leaves_state_alone(
        self, make_coordinator, scripted, store, settle
    ):
        """Test a fetch that lands after invalidate() changes no flags or items."""
        store.replace_all([project("p1")])
        fetcher = scripted([project("late")])
        coordinator = make_coordinator(fetcher)
        gate = fetcher.hold(0)

        pending = asyncio.create_task(coordinator.ensure_fresh())
        await settle()
        coordinator.invalidate()
        assert not store.is_loading

        gate.set()
        await pending

        assert not store.is_loading
        assert store.last_fetched_at == 0
        assert [p.id for p in store.items] == ["p1"]


class TestConcurrency:
    """Tests for in-flight deduplication."""

    @pytest.mark.asyncio
    async def test_concurrent_forced_calls_fetch_once(
        self, make_coordinator, scripted, settle
    ):
        """Test two overlapping forced refreshes share one fetch."""
        fetcher = scripted([project("p1")])
        coordinator = make_coordinator(fetcher)
        gate = fetcher.hold(0)

        first = asyncio.create_task(coordinator.ensure_fresh(force=True))
        second = asyncio.create_task(coordinator.ensure_fresh(force=True))
        await settle()
        assert fetcher.calls == 1

        gate.set()
        results = await asyncio.gather(first, second)

        assert fetcher.calls == 1
        assert results[0].data == results[1].data
        assert [p.id for p in results[0].data] == ["p1"]

    @pytest.mark.asyncio
    async def test_concurrent_unforced_calls_fetch_once(self, make_coordinator, scripted):
        """Test many screens opening at once trigger one fetch."""
        fetcher = scripted([project("p1")])
        coordinator = make_coordinator(fetcher)

        results = await asyncio.gather(*(coordinator.ensure_fresh() for _ in range(5)))

        assert fetcher.calls == 1
        assert all(r.success for r in results)

    @pytest.mark.asyncio
    async def test_loading_flag_while_in_flight(
        self, make_coordinator, scripted, store, settle
    ):
        """Test is_loading is set for the duration of the fetch."""
        fetcher = scripted([project("p1")])
        coordinator = make_coordinator(fetcher)
        gate = fetcher.hold(0)
        seen = []
        store.subscribe(lambda entry: seen.append(entry.is_loading))

        task = asyncio.create_task(coordinator.ensure_fresh())
        await settle()
        assert store.is_loading
        assert coordinator.in_flight

        gate.set()
        await task

        assert not store.is_loading
        assert not coordinator.in_flight
        assert seen[0] is True
        assert seen[-1] is False

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_shared_fetch(
        self, make_coordinator, scripted, store, settle
    ):
        """Test one caller going away leaves the fetch running for others."""
        fetcher = scripted([project("p1")])
        coordinator = make_coordinator(fetcher)
        gate = fetcher.hold(0)

        first = asyncio.create_task(coordinator.ensure_fresh())
        second = asyncio.create_task(coordinator.ensure_fresh())
        await settle()

        first.cancel()
        await settle()
        gate.set()
        result = await second

        assert first.cancelled()
        assert result.success
        assert [p.id for p in store.items] == ["p1"]
        assert fetcher.calls == 1

    @pytest.mark.asyncio
    async def test_fetch_result_is_authoritative_over_local_edits(
        self, make_coordinator, scripted, store, events, settle
    ):
        """Test a local add during a fetch is replaced by the fetched list."""
        fetcher = scripted([project("server")])
        coordinator = make_coordinator(fetcher)
        mutations = OptimisticMutations(store, event_logger=events)
        gate = fetcher.hold(0)

        task = asyncio.create_task(coordinator.ensure_fresh())
        await settle()
        mutations.add_locally(project("local"))
        gate.set()
        await task

        assert [p.id for p in store.items] == ["server"]


class TestFailures:
    """Tests for failed fetches."""

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_snapshot(
        self, make_coordinator, scripted, store, clock
    ):
        """Test a failed fetch leaves items and timestamp untouched."""
        store.replace_all([project("p1")])
        store.mark_fetched(clock.now - 600)
        before = store.get_snapshot()
        coordinator = make_coordinator(scripted(ConnectionError("offline")))

        result = await coordinator.ensure_fresh()

        assert not result.success
        assert result.error.code == ErrorCode.NETWORK_ERROR
        assert result.error_message == "offline"
        assert [p.id for p in result.data] == ["p1"]
        assert store.items == before.items
        assert store.last_fetched_at == before.last_fetched_at
        assert not store.is_loading

    @pytest.mark.asyncio
    async def test_failure_with_empty_cache(self, make_coordinator, scripted, store):
        """Test a failure on first load returns an empty list, not an exception."""
        result = await make_coordinator(scripted(RuntimeError("500"))).ensure_fresh()
        assert not result.success
        assert result.data == []
        assert store.last_fetched_at == 0

    @pytest.mark.asyncio
    async def test_failure_preserves_backend_error_code(self, make_coordinator, scripted):
        """Test an auth failure is reported as AUTH_ERROR."""
        coordinator = make_coordinator(scripted(BackendAuthError("Invalid session token")))
        result = await coordinator.ensure_fresh()
        assert result.error.code == ErrorCode.AUTH_ERROR

    @pytest.mark.asyncio
    async def test_malformed_payload_is_validation_error(self, make_coordinator, scripted, store):
        """Test entities failing validation are reported, not cached."""
        coordinator = make_coordinator(scripted([{"id": "p1"}]))
        result = await coordinator.ensure_fresh()
        assert not result.success
        assert result.error.code == ErrorCode.VALIDATION_ERROR
        assert store.items == ()

    @pytest.mark.asyncio
    async def test_no_automatic_retry(self, make_coordinator, scripted, events):
        """Test a failure is attempted once; the caller decides to retry."""
        fetcher = scripted(RuntimeError("boom"), [project("p1")])
        coordinator = make_coordinator(fetcher)

        failed = await coordinator.ensure_fresh()
        assert fetcher.calls == 1
        assert CacheEventType.FETCH_FAILED in event_types(events)

        retried = await coordinator.ensure_fresh()
        assert failed.success is False
        assert retried.success
        assert fetcher.calls == 2

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_failure(self, make_coordinator, scripted, settle):
        """Test joined callers receive the same failure."""
        fetcher = scripted(RuntimeError("boom"))
        coordinator = make_coordinator(fetcher)
        gate = fetcher.hold(0)

        tasks = [asyncio.create_task(coordinator.ensure_fresh(force=True)) for _ in range(3)]
        await settle()
        gate.set()
        results = await asyncio.gather(*tasks)

        assert fetcher.calls == 1
        assert all(not r.success for r in results)


class TestEndToEnd:
    """The projects screen lifecycle."""

    @pytest.mark.asyncio
    async def test_projects_scenario(self, make_coordinator, scripted, store, clock, events):
        """Test fetch, cache hit, optimistic add and full-replace refresh."""
        fetcher = scripted(
            [{"id": "p1", "name": "Alpha"}],
            [{"id": "p1", "name": "Alpha"}],
        )
        coordinator = make_coordinator(fetcher)
        mutations = OptimisticMutations(store, event_logger=events)

        first = await coordinator.ensure_fresh(force=False)
        assert fetcher.calls == 1
        assert [p.id for p in first.data] == ["p1"]
        assert store.last_fetched_at == clock.now

        clock.advance(10)
        second = await coordinator.ensure_fresh(force=False)
        assert fetcher.calls == 1
        assert second.data == first.data

        mutations.add_locally({"id": "p2", "name": "Beta"})
        assert [p.id for p in store.items] == ["p2", "p1"]

        third = await coordinator.ensure_fresh(force=True)
        assert fetcher.calls == 2
        assert [p.id for p in third.data] == ["p1"]
        assert [p.id for p in store.items] == ["p1"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
