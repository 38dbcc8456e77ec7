"""
Abstract Finance Backend Interface

DESIGN DECISION: The cache never talks to a server or database directly.
It calls `fetch_collection(name)` on whatever backend was wired in:
1. ParseCloudBackend - remote Parse Server cloud functions
2. SQLiteFinanceBackend - on-device database (local-first variant)
3. Fakes in tests

Write operations return the entity the backend CONFIRMED, which is what
the optimistic mutation helpers must be given.
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping

from pydantic import TypeAdapter

from cotton.errors import CacheError, ErrorCode, UnknownCollectionError
from cotton.models.finance import COLLECTION_MODELS, Entity


class FinanceBackend(ABC):
    """
    Abstract interface for the authoritative data source.

    Collection names are the keys of COLLECTION_MODELS
    ("projects", "categories", "contacts", "transactions").
    """

    @abstractmethod
    async def fetch_collection(self, collection: str) -> list[Entity]:
        """
        Fetch every entity in a collection.

        Raises:
            BackendError: If the fetch fails
            UnknownCollectionError: If the collection is not supported
        """
        pass

    @abstractmethod
    async def create(self, collection: str, data: Mapping[str, Any]) -> Entity:
        """
        Create an entity.

        Args:
            collection: Collection name
            data: Field values (snake_case or camelCase keys), without id

        Returns:
            The created entity with its backend-assigned id
        """
        pass

    @abstractmethod
    async def update(
        self,
        collection: str,
        entity_id: str,
        changes: Mapping[str, Any],
    ) -> Entity:
        """
        Update an entity.

        Returns:
            The entity as stored after the update

        Raises:
            BackendNotFoundError: If the entity doesn't exist
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, entity_id: str) -> str:
        """
        Delete an entity.

        Returns:
            The id of the deleted entity

        Raises:
            BackendNotFoundError: If the entity doesn't exist
        """
        pass

    async def close(self) -> None:
        """Release connections. Safe to call more than once."""
        pass

    @staticmethod
    def model_for(collection: str) -> type[Entity]:
        try:
            return COLLECTION_MODELS[collection]
        except KeyError:
            raise UnknownCollectionError(f"Unknown collection: {collection}")


_ANY = TypeAdapter(Any)


def to_wire(model: type[Entity], data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Convert field values to the backend's camelCase JSON shape.

    Keys may be field names or aliases; values become JSON-safe
    (datetimes to ISO strings, enums to their values).
    """
    wire = {}
    for key, value in data.items():
        field = model.model_fields.get(key)
        name = field.alias if field is not None and field.alias else key
        wire[name] = _ANY.dump_python(value, mode="json")
    return wire


class BackendError(CacheError):
    """Base exception for backend operations."""
    pass


class BackendConnectionError(BackendError):
    """Could not reach the backend."""
    default_code = ErrorCode.NETWORK_ERROR


class BackendAuthError(BackendError):
    """Session missing, expired or rejected."""
    default_code = ErrorCode.AUTH_ERROR


class BackendPermissionError(BackendError):
    """The signed-in user may not perform this operation."""
    default_code = ErrorCode.PERMISSION_DENIED


class BackendNotFoundError(BackendError):
    """Entity not found in the backend."""
    default_code = ErrorCode.NOT_FOUND


class BackendValidationError(BackendError):
    """The backend rejected or returned malformed data."""
    default_code = ErrorCode.VALIDATION_ERROR


class UnsupportedOperationError(BackendError):
    """The backend has no such operation for this collection."""
    pass
