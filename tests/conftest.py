"""
Shared fixtures for the Cotton test suite.

No test touches the network or the real clock:
- FakeClock drives staleness
- ScriptedFetcher stands in for the backend and can hold a call open
  so tests control exactly when a fetch resolves
"""

import asyncio
from typing import Any, Optional

import pytest

from cotton.audit import CacheEventLogger
from cotton.cache import InMemoryKeyValueStorage, SnapshotPersistence, reset_cache
from cotton.config import get_settings


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedFetcher:
    """
    Async fetcher returning scripted responses in call order.

    The last response repeats once the script runs out. A response that
    is an exception instance is raised instead of returned.
    """

    def __init__(self, *responses: Any):
        self._responses = list(responses) or [[]]
        self._gates: dict[int, asyncio.Event] = {}
        self.calls = 0

    def hold(self, call_index: int) -> asyncio.Event:
        """Keep call `call_index` (0-based) pending until the event is set."""
        gate = asyncio.Event()
        self._gates[call_index] = gate
        return gate

    async def __call__(self) -> list:
        index = self.calls
        self.calls += 1
        gate: Optional[asyncio.Event] = self._gates.get(index)
        if gate is not None:
            await gate.wait()
        response = self._responses[min(index, len(self._responses) - 1)]
        if isinstance(response, BaseException):
            raise response
        return list(response)


@pytest.fixture(autouse=True)
def isolate_globals():
    """Fresh process-wide cache and settings for every test."""
    reset_cache()
    get_settings.cache_clear()
    yield
    reset_cache()
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def events() -> CacheEventLogger:
    return CacheEventLogger(history_size=500)


@pytest.fixture
def storage() -> InMemoryKeyValueStorage:
    return InMemoryKeyValueStorage()


@pytest.fixture
def persistence(storage, events) -> SnapshotPersistence:
    return SnapshotPersistence(storage, event_logger=events)


@pytest.fixture
def scripted():
    """Factory for ScriptedFetcher instances."""
    return ScriptedFetcher


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def settle():
    """Coroutine function letting pending tasks run until they block."""
    return _settle
