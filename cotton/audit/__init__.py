"""Cache event logging package."""

from cotton.audit.logger import CacheEventLogger, get_event_logger

__all__ = ["CacheEventLogger", "get_event_logger"]
