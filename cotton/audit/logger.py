"""
Cache Event Logger

DESIGN DECISION: Every significant cache action is logged.
This provides:
1. Traceability of fetches versus cache hits
2. Visibility into failures we deliberately swallow
3. A way to spot duplicate network calls

The event logger:
- Is synchronous, store operations are synchronous too
- Keeps a bounded in-memory history for debug screens and tests
"""

from typing import Optional

import structlog

from cotton.models.events import CacheEvent, CacheEventBuilder


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class CacheEventLogger:
    """
    Central cache event logging service.

    Keeps the most recent events in memory so tests and debug screens
    can inspect what the cache did.
    """

    def __init__(self, history_size: int = 200, logger_name: str = "cotton.cache"):
        self._logger = structlog.get_logger(logger_name)
        self._history_size = max(0, history_size)
        self._history: list[CacheEvent] = []

    @property
    def history(self) -> list[CacheEvent]:
        """Recent events, oldest first."""
        return list(self._history)

    def clear_history(self) -> None:
        self._history.clear()

    def log(self, event: CacheEvent) -> None:
        """Log a cache event at the level its severity implies."""
        if self._history_size:
            self._history.append(event)
            if len(self._history) > self._history_size:
                del self._history[: len(self._history) - self._history_size]

        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("cache_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("cache_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("cache_event", **log_dict)
        else:
            self._logger.info("cache_event", **log_dict)

    def fetch_started(self, collection: str, generation: int, forced: bool) -> None:
        self.log(CacheEventBuilder.fetch_started(collection, generation, forced))

    def fetch_succeeded(self, collection: str, generation: int, item_count: int) -> None:
        self.log(CacheEventBuilder.fetch_succeeded(collection, generation, item_count))

    def fetch_failed(
        self,
        collection: str,
        generation: int,
        error_code: str,
        error_message: str,
    ) -> None:
        self.log(
            CacheEventBuilder.fetch_failed(collection, generation, error_code, error_message)
        )

    def fetch_joined(self, collection: str, generation: int) -> None:
        self.log(CacheEventBuilder.fetch_joined(collection, generation))

    def fetch_discarded(
        self,
        collection: str,
        generation: int,
        current_generation: int,
    ) -> None:
        self.log(
            CacheEventBuilder.fetch_discarded(collection, generation, current_generation)
        )

    def cache_hit(self, collection: str, item_count: int, age_seconds: float) -> None:
        self.log(CacheEventBuilder.cache_hit(collection, item_count, age_seconds))

    def cache_invalidated(self, collection: str, generation: int) -> None:
        self.log(CacheEventBuilder.cache_invalidated(collection, generation))

    def local_mutation(self, collection: str, operation: str, entity_id: str) -> None:
        self.log(CacheEventBuilder.local_mutation(collection, operation, entity_id))

    def stale_mutation_ignored(
        self,
        collection: str,
        operation: str,
        entity_id: str,
    ) -> None:
        self.log(
            CacheEventBuilder.stale_mutation_ignored(collection, operation, entity_id)
        )

    def backend_write_failed(
        self,
        collection: str,
        operation: str,
        entity_id: Optional[str],
        error_code: str,
        error_message: str,
    ) -> None:
        self.log(CacheEventBuilder.backend_write_failed(
            collection, operation, entity_id, error_code, error_message
        ))

    def snapshot_hydrated(self, collection: str, item_count: int) -> None:
        self.log(CacheEventBuilder.snapshot_hydrated(collection, item_count))

    def snapshot_write_failed(self, collection: str, error_message: str) -> None:
        self.log(CacheEventBuilder.snapshot_write_failed(collection, error_message))

    def snapshot_read_failed(self, collection: str, error_message: str) -> None:
        self.log(CacheEventBuilder.snapshot_read_failed(collection, error_message))

    def listener_failed(self, collection: str, error_message: str) -> None:
        self.log(CacheEventBuilder.listener_failed(collection, error_message))


_default_logger: Optional[CacheEventLogger] = None


def get_event_logger() -> CacheEventLogger:
    """
    Shared event logger for components constructed without one.
    """
    global _default_logger
    if _default_logger is None:
        _default_logger = CacheEventLogger()
    return _default_logger
