"""
Staleness Policy

Decides whether a cached collection must be refetched.

Two strategies share the same fetch coordinator:
- TtlPolicy: remote backend, every fetch costs a round-trip (and money)
- AlwaysFreshPolicy: on-device database, reads are cheap, no expiry
"""

from abc import ABC, abstractmethod


DEFAULT_TTL_SECONDS = 5 * 60


def is_fresh(last_fetched_at: float, now: float, ttl: float) -> bool:
    """
    True when a collection fetched at `last_fetched_at` is still usable at `now`.

    A timestamp of 0 means "never fetched" or "invalidated" and is never fresh.
    """
    return last_fetched_at > 0 and (now - last_fetched_at) < ttl


class StalenessPolicy(ABC):
    """Strategy deciding whether cached data can be served without a fetch."""

    @abstractmethod
    def is_fresh(self, last_fetched_at: float, now: float) -> bool:
        pass


class TtlPolicy(StalenessPolicy):
    """Fresh for a fixed time-to-live after each successful fetch."""

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS):
        if ttl_seconds <= 0:
            raise ValueError(f"TTL must be positive, got {ttl_seconds}")
        self.ttl_seconds = float(ttl_seconds)

    def is_fresh(self, last_fetched_at: float, now: float) -> bool:
        return is_fresh(last_fetched_at, now, self.ttl_seconds)

    def __repr__(self) -> str:
        return f"TtlPolicy(ttl_seconds={self.ttl_seconds})"


class AlwaysFreshPolicy(StalenessPolicy):
    """
    Local-first variant: fresh once fetched, however long ago.

    Reads are cheap, so age never matters. A timestamp of 0 still means
    "never fetched" or "invalidated": hydrated snapshots, local edits
    made before the first load and invalidate() all lead to a reread.
    """

    def is_fresh(self, last_fetched_at: float, now: float) -> bool:
        return last_fetched_at > 0

    def __repr__(self) -> str:
        return "AlwaysFreshPolicy()"
