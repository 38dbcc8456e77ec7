"""
Cache State Models

These are the value objects the cache layer hands out:
- CacheEntry: read-only view of one collection's state
- FetchResult: typed success/failure returned by the fetch coordinator
- PersistedSnapshot: the envelope written to on-device storage
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from cotton.errors import FetchFailure
from cotton.models.finance import Entity, utc_now


# Bump when the persisted envelope or an entity shape changes incompatibly.
SNAPSHOT_VERSION = 1


class CacheEntry(BaseModel):
    """
    Snapshot of one collection's cache state.

    Items are a tuple so consumers cannot append/remove in place.
    All mutations must go through the store or the mutation helpers.
    """
    model_config = ConfigDict(frozen=True)

    collection: str = Field(
        ...,
        description="Collection name (e.g. 'projects')"
    )
    items: tuple[Entity, ...] = Field(
        default_factory=tuple,
        description="Current best-known snapshot, newest first"
    )
    is_loading: bool = Field(
        default=False,
        description="True while a fetch for this collection is in flight"
    )
    last_fetched_at: float = Field(
        default=0.0,
        ge=0.0,
        description="Epoch seconds of the last successful fetch, 0 = never/invalidated"
    )
    generation: int = Field(
        default=0,
        ge=0,
        description="Fetch generation the current state belongs to"
    )

    @property
    def ids(self) -> list[str]:
        return [item.id for item in self.items]

    def get(self, entity_id: str) -> Optional[Entity]:
        """Find an entity by id."""
        for item in self.items:
            if item.id == entity_id:
                return item
        return None


class FetchResult(BaseModel):
    """
    Result of asking the cache for a collection.

    Failures never raise past the fetch coordinator; they arrive here
    with `success=False` and the previous snapshot left intact.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    data: list[Any] = Field(default_factory=list)
    error: Optional[FetchFailure] = None
    from_cache: bool = Field(
        default=False,
        description="True when served from memory without a fetch"
    )

    @classmethod
    def ok(cls, data: list[Any], from_cache: bool = False) -> "FetchResult":
        return cls(success=True, data=list(data), from_cache=from_cache)

    @classmethod
    def failed(
        cls,
        error: Any,
        data: Optional[list[Any]] = None,
    ) -> "FetchResult":
        return cls(
            success=False,
            data=list(data or []),
            error=FetchFailure.from_unknown(error),
        )

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if self.error else None


class PersistedSnapshot(BaseModel):
    """
    Envelope for a collection persisted to on-device storage.

    Items are stored in JSON mode, so dates are ISO-8601 strings.
    """

    version: int = Field(
        default=SNAPSHOT_VERSION,
        description="Envelope/schema version"
    )
    collection: str
    saved_at: datetime = Field(default_factory=utc_now)
    items: list[dict[str, Any]] = Field(default_factory=list)
