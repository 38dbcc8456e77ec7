"""Finance backends: the authoritative sources the cache mirrors."""

from cotton.services.backend.interface import (
    BackendAuthError,
    BackendConnectionError,
    BackendError,
    BackendNotFoundError,
    BackendPermissionError,
    BackendValidationError,
    FinanceBackend,
    UnsupportedOperationError,
    to_wire,
)
from cotton.services.backend.local_db import SQLiteFinanceBackend
from cotton.services.backend.parse_cloud import (
    CLOUD_FUNCTIONS,
    CloudFunctions,
    ParseCloudBackend,
)

__all__ = [
    # Interface
    "FinanceBackend",
    "to_wire",
    # Implementations
    "ParseCloudBackend",
    "SQLiteFinanceBackend",
    "CLOUD_FUNCTIONS",
    "CloudFunctions",
    # Errors
    "BackendAuthError",
    "BackendConnectionError",
    "BackendError",
    "BackendNotFoundError",
    "BackendPermissionError",
    "BackendValidationError",
    "UnsupportedOperationError",
]
