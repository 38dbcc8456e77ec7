"""Services package."""

from cotton.services.backend import (
    BackendAuthError,
    BackendConnectionError,
    BackendError,
    BackendNotFoundError,
    BackendPermissionError,
    BackendValidationError,
    FinanceBackend,
    ParseCloudBackend,
    SQLiteFinanceBackend,
    UnsupportedOperationError,
)

__all__ = [
    # Backends
    "FinanceBackend",
    "ParseCloudBackend",
    "SQLiteFinanceBackend",
    # Backend errors
    "BackendAuthError",
    "BackendConnectionError",
    "BackendError",
    "BackendNotFoundError",
    "BackendPermissionError",
    "BackendValidationError",
    "UnsupportedOperationError",
]
