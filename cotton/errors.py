"""
Error Taxonomy for the Finance Data Cache

DESIGN DECISION: Nothing in the cache layer is fatal to the process.
Every failure degrades to "serve stale or empty data":
1. FetchFailure - reported to the caller inside a FetchResult
2. PersistenceWriteFailure - logged and swallowed
3. PersistenceReadFailure - treated as "no prior snapshot"

A local mutation that targets an unknown id is NOT an error at all.
"""

from typing import Any, Optional


class ErrorCode:
    """Application error codes shared with the UI layer."""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    NOT_FOUND = "NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class CacheError(Exception):
    """
    Base exception for the cache layer.

    Carries a machine-readable code so the UI can choose its own
    messaging (toast, inline error) without parsing strings.
    """

    default_code = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.status_code = status_code
        self.details = details

    @classmethod
    def from_unknown(cls, error: Any) -> "CacheError":
        """
        Wrap anything that was raised into this error class.

        Instances of the class itself are returned unchanged.
        """
        if isinstance(error, cls):
            return error
        if isinstance(error, CacheError):
            return cls(
                error.message,
                code=error.code,
                status_code=error.status_code,
                details=error.details,
            )
        if isinstance(error, BaseException):
            return cls(str(error) or type(error).__name__)
        if isinstance(error, str):
            return cls(error)
        return cls("An unknown error occurred")

    def to_log_dict(self) -> dict:
        return {
            "error_type": type(self).__name__,
            "code": self.code,
            "status_code": self.status_code,
            "message": self.message,
        }


class FetchFailure(CacheError):
    """The external fetch operation rejected (network, server or auth error)."""
    default_code = ErrorCode.NETWORK_ERROR


class PersistenceWriteFailure(CacheError):
    """Writing a snapshot to on-device storage failed."""
    pass


class PersistenceReadFailure(CacheError):
    """Reading a snapshot from on-device storage failed."""
    pass


class UnknownCollectionError(CacheError, KeyError):
    """No collection is registered under the requested name."""
    default_code = ErrorCode.NOT_FOUND

    def __str__(self) -> str:
        return self.message
