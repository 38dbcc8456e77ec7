"""
Cache Event Models

Every significant thing the cache does is described by a CacheEvent.
This gives us:
1. A traceable history of fetches, hits and invalidations
2. Debugging information when a screen shows unexpected data
3. Visibility into swallowed persistence failures

DESIGN DECISION: Events are local structured log records only.
The cache never shows UI and never sends its events anywhere.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from cotton.models.finance import utc_now


class CacheEventType(str, Enum):
    """Types of events the cache emits."""
    # Fetch lifecycle
    FETCH_STARTED = "fetch_started"
    FETCH_SUCCEEDED = "fetch_succeeded"
    FETCH_FAILED = "fetch_failed"
    FETCH_JOINED = "fetch_joined"
    FETCH_DISCARDED = "fetch_discarded"
    CACHE_HIT = "cache_hit"
    CACHE_INVALIDATED = "cache_invalidated"

    # Optimistic mutations
    LOCAL_MUTATION = "local_mutation"
    STALE_MUTATION_IGNORED = "stale_mutation_ignored"
    BACKEND_WRITE_FAILED = "backend_write_failed"

    # Persistence
    SNAPSHOT_HYDRATED = "snapshot_hydrated"
    SNAPSHOT_WRITE_FAILED = "snapshot_write_failed"
    SNAPSHOT_READ_FAILED = "snapshot_read_failed"

    # Observers
    LISTENER_FAILED = "listener_failed"


class CacheEventSeverity(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class CacheEvent(BaseModel):
    """A single cache event."""

    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )
    event_type: CacheEventType
    severity: CacheEventSeverity = CacheEventSeverity.INFO
    collection: Optional[str] = Field(
        default=None,
        description="Collection the event relates to"
    )
    generation: Optional[int] = None
    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "collection": self.collection,
            "generation": self.generation,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class CacheEventBuilder:
    """
    Helper class to build cache events with common patterns.

    Usage:
        event = CacheEventBuilder.fetch_started("projects", generation=3, forced=True)
        event = CacheEventBuilder.cache_hit("projects", item_count=12, age_seconds=40.0)
    """

    @staticmethod
    def fetch_started(
        collection: str,
        generation: int,
        forced: bool,
    ) -> CacheEvent:
        return CacheEvent(
            event_type=CacheEventType.FETCH_STARTED,
            severity=CacheEventSeverity.DEBUG,
            collection=collection,
            generation=generation,
            description=f"Fetching {collection}" + (" (forced)" if forced else ""),
            details={"forced": forced},
        )

    @staticmethod
    def fetch_succeeded(
        collection: str,
        generation: int,
        item_count: int,
    ) -> CacheEvent:
        return CacheEvent(
            event_type=CacheEventType.FETCH_SUCCEEDED,
            collection=collection,
            generation=generation,
            description=f"Fetched {item_count} {collection}",
            details={"item_count": item_count},
        )

    @staticmethod
    def fetch_failed(
        collection: str,
        generation: int,
        error_code: str,
        error_message: str,
    ) -> CacheEvent:
        return CacheEvent(
            event_type=CacheEventType.FETCH_FAILED,
            severity=CacheEventSeverity.WARNING,
            collection=collection,
            generation=generation,
            description=f"Fetch of {collection} failed, keeping previous snapshot",
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def fetch_joined(collection: str, generation: int) -> CacheEvent:
        return CacheEvent(
            event_type=CacheEventType.FETCH_JOINED,
            severity=CacheEventSeverity.DEBUG,
            collection=collection,
            generation=generation,
            description=f"Joined in-flight fetch of {collection}",
        )

    @staticmethod
    def fetch_discarded(
        collection: str,
        generation: int,
        current_generation: int,
    ) -> CacheEvent:
        return CacheEvent(
            event_type=CacheEventType.FETCH_DISCARDED,
            severity=CacheEventSeverity.INFO,
            collection=collection,
            generation=generation,
            description=f"Discarded superseded fetch result for {collection}",
            details={"current_generation": current_generation},
        )

    @staticmethod
    def cache_hit(
        collection: str,
        item_count: int,
        age_seconds: float,
    ) -> CacheEvent:
        return CacheEvent(
            event_type=CacheEventType.CACHE_HIT,
            severity=CacheEventSeverity.DEBUG,
            collection=collection,
            description=f"Served {item_count} {collection} from cache",
            details={"item_count": item_count, "age_seconds": round(age_seconds, 3)},
        )

    @staticmethod
    def cache_invalidated(collection: str, generation: int) -> CacheEvent:
        return CacheEvent(
            event_type=CacheEventType.CACHE_INVALIDATED,
            severity=CacheEventSeverity.DEBUG,
            collection=collection,
            generation=generation,
            description=f"Invalidated {collection}",
        )

    @staticmethod
    def backend_write_failed(
        collection: str,
        operation: str,
        entity_id: Optional[str],
        error_code: str,
        error_message: str,
    ) -> CacheEvent:
        return CacheEvent(
            event_type=CacheEventType.BACKEND_WRITE_FAILED,
            severity=CacheEventSeverity.WARNING,
            collection=collection,
            description=f"Backend rejected {operation} on {collection}, cache untouched",
            details={"operation": operation, "entity_id": entity_id},
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def local_mutation(
        collection: str,
        operation: str,
        entity_id: str,
    ) -> CacheEvent:
        return CacheEvent(
            event_type=CacheEventType.LOCAL_MUTATION,
            severity=CacheEventSeverity.DEBUG,
            collection=collection,
            description=f"Local {operation} on {collection}",
            details={"operation": operation, "entity_id": entity_id},
        )

    @staticmethod
    def stale_mutation_ignored(
        collection: str,
        operation: str,
        entity_id: str,
    ) -> CacheEvent:
        return CacheEvent(
            event_type=CacheEventType.STALE_MUTATION_IGNORED,
            severity=CacheEventSeverity.DEBUG,
            collection=collection,
            description=f"Local {operation} skipped: {entity_id} not in {collection}",
            details={"operation": operation, "entity_id": entity_id},
        )

    @staticmethod
    def snapshot_hydrated(collection: str, item_count: int) -> CacheEvent:
        return CacheEvent(
            event_type=CacheEventType.SNAPSHOT_HYDRATED,
            collection=collection,
            description=f"Hydrated {item_count} {collection} from storage",
            details={"item_count": item_count},
        )

    @staticmethod
    def snapshot_write_failed(
        collection: str,
        error_message: str,
    ) -> CacheEvent:
        return CacheEvent(
            event_type=CacheEventType.SNAPSHOT_WRITE_FAILED,
            severity=CacheEventSeverity.ERROR,
            collection=collection,
            description=f"Could not persist {collection} snapshot",
            error_message=error_message,
        )

    @staticmethod
    def snapshot_read_failed(
        collection: str,
        error_message: str,
    ) -> CacheEvent:
        return CacheEvent(
            event_type=CacheEventType.SNAPSHOT_READ_FAILED,
            severity=CacheEventSeverity.WARNING,
            collection=collection,
            description=f"Ignoring unreadable {collection} snapshot",
            error_message=error_message,
        )

    @staticmethod
    def listener_failed(collection: str, error_message: str) -> CacheEvent:
        return CacheEvent(
            event_type=CacheEventType.LISTENER_FAILED,
            severity=CacheEventSeverity.ERROR,
            collection=collection,
            description=f"A {collection} subscriber raised",
            error_message=error_message,
        )
