"""
Data Models Package

This package contains all Pydantic models used by the Cotton cache layer.
Every record the cache mirrors must conform to these schemas.
"""

from cotton.models.finance import (
    COLLECTION_MODELS,
    Allocation,
    Category,
    Contact,
    ContactType,
    Currency,
    EmployeeStatus,
    Entity,
    Project,
    ProjectStatus,
    ProjectType,
    Transaction,
    TransactionType,
    utc_now,
)
from cotton.models.cache import (
    SNAPSHOT_VERSION,
    CacheEntry,
    FetchResult,
    PersistedSnapshot,
)
from cotton.models.events import (
    CacheEvent,
    CacheEventBuilder,
    CacheEventType,
    CacheEventSeverity,
)

__all__ = [
    # Finance models
    "COLLECTION_MODELS",
    "Allocation",
    "Category",
    "Contact",
    "ContactType",
    "Currency",
    "EmployeeStatus",
    "Entity",
    "Project",
    "ProjectStatus",
    "ProjectType",
    "Transaction",
    "TransactionType",
    "utc_now",
    # Cache models
    "SNAPSHOT_VERSION",
    "CacheEntry",
    "FetchResult",
    "PersistedSnapshot",
    # Event models
    "CacheEvent",
    "CacheEventBuilder",
    "CacheEventType",
    "CacheEventSeverity",
]
