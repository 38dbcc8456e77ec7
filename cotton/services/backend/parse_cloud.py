"""
Parse Server Cloud Function Backend

Every read and write goes through a Parse cloud function, called over
the REST API:

    POST {server_url}/functions/{name}
    -> {"result": ...}               on success
    -> {"code": 209, "error": "..."} on failure

DESIGN DECISION: Only connection failures are retried.
A request that reached the server may have been billed or applied, so
timeouts after connecting and error payloads are surfaced at once.
Whether to try again is the caller's decision (e.g. pull-to-refresh).
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cotton.config import ParseSettings, get_settings
from cotton.models.finance import Entity
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


@dataclass(frozen=True)
class CloudFunctions:
    """Cloud function names serving one collection."""
    fetch: str
    id_param: str
    create: Optional[str] = None
    update: Optional[str] = None
    delete: Optional[str] = None
    # Paginated list functions wrap rows: {"transactions": [...], "hasMore": ...}
    list_key: Optional[str] = None


CLOUD_FUNCTIONS: dict[str, CloudFunctions] = {
    "projects": CloudFunctions(
        fetch="getProjects",
        id_param="projectId",
        create="createProject",
        update="updateProject",
    ),
    "categories": CloudFunctions(
        fetch="getCategories",
        id_param="categoryId",
    ),
    "contacts": CloudFunctions(
        fetch="getContacts",
        id_param="contactId",
        create="createContact",
        update="updateContact",
        delete="deleteContact",
    ),
    "transactions": CloudFunctions(
        fetch="getTransactions",
        id_param="transactionId",
        create="createTransactionFromParsed",
        update="updateTransaction",
        delete="deleteTransaction",
        list_key="transactions",
    ),
}

# Parse Server error codes
PARSE_CONNECTION_FAILED = 100
PARSE_OBJECT_NOT_FOUND = 101
PARSE_INVALID_QUERY = 102
PARSE_OPERATION_FORBIDDEN = 119
PARSE_VALIDATION_ERROR = 142
PARSE_INVALID_SESSION_TOKEN = 209

PARSE_ERRORS: dict[int, type[BackendError]] = {
    PARSE_CONNECTION_FAILED: BackendConnectionError,
    PARSE_OBJECT_NOT_FOUND: BackendNotFoundError,
    PARSE_INVALID_QUERY: BackendValidationError,
    PARSE_OPERATION_FORBIDDEN: BackendPermissionError,
    PARSE_VALIDATION_ERROR: BackendValidationError,
    PARSE_INVALID_SESSION_TOKEN: BackendAuthError,
}

# Only these never reached the server
RETRYABLE_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)


class ParseCloudBackend(FinanceBackend):
    """
    Remote backend calling Parse cloud functions with httpx.

    Usage:
        backend = ParseCloudBackend(get_settings().parse)
        projects = await backend.fetch_collection("projects")
        await backend.close()
    """

    def __init__(
        self,
        settings: Optional[ParseSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
        page_size: int = 500,
        retry_wait_seconds: float = 1.0,
    ):
        self._settings = settings or get_settings().parse
        self._client = client or httpx.AsyncClient(
            timeout=self._settings.timeout_seconds,
        )
        self._page_size = page_size
        self._retry_wait = retry_wait_seconds

    @property
    def session_token(self) -> Optional[str]:
        return self._settings.session_token

    def set_session_token(self, token: Optional[str]) -> None:
        """Switch the signed-in user. Cached collections must be invalidated."""
        self._settings = self._settings.model_copy(update={"session_token": token})

    def _headers(self) -> dict[str, str]:
        headers = {
            "X-Parse-Application-Id": self._settings.app_id,
            "Content-Type": "application/json",
        }
        if self._settings.js_key:
            headers["X-Parse-JavaScript-Key"] = self._settings.js_key
        if self._settings.session_token:
            headers["X-Parse-Session-Token"] = self._settings.session_token
        return headers

    async def _post(self, function_name: str, params: dict) -> httpx.Response:
        url = f"{self._settings.server_url}/functions/{function_name}"
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.connect_retries),
            wait=wait_exponential(multiplier=self._retry_wait, max=10),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                response = await self._client.post(
                    url, json=params, headers=self._headers()
                )
        return response

    async def call_function(
        self,
        function_name: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """
        Run a cloud function and return its `result`.

        Raises:
            BackendConnectionError: Server unreachable or request timed out
            BackendAuthError: Invalid or expired session
            BackendNotFoundError: Object not found
            BackendError: Any other error payload or malformed response
        """
        try:
            response = await self._post(function_name, dict(params or {}))
        except RETRYABLE_ERRORS as e:
            raise BackendConnectionError(
                f"Could not reach Parse Server: {e}"
            ) from e
        except httpx.HTTPError as e:
            raise BackendConnectionError(
                f"Request to {function_name} failed: {e}"
            ) from e

        try:
            payload = response.json()
        except ValueError:
            raise BackendError(
                f"Malformed response from {function_name}",
                status_code=response.status_code,
            )

        if response.is_error or (isinstance(payload, dict) and "error" in payload):
            raise self._error_from_payload(function_name, response.status_code, payload)

        if not isinstance(payload, dict) or "result" not in payload:
            raise BackendError(
                f"Response from {function_name} has no result",
                status_code=response.status_code,
            )
        return payload["result"]

    @staticmethod
    def _error_from_payload(
        function_name: str,
        status_code: int,
        payload: Any,
    ) -> BackendError:
        code = payload.get("code") if isinstance(payload, dict) else None
        message = (
            payload.get("error") if isinstance(payload, dict) else None
        ) or f"{function_name} failed with HTTP {status_code}"

        error_class = PARSE_ERRORS.get(code)
        if error_class is None:
            if status_code in (401, 403):
                error_class = BackendAuthError
            elif status_code == 404:
                error_class = BackendNotFoundError
            else:
                error_class = BackendError
        return error_class(message, status_code=status_code, details=payload)

    # ------------------------------------------------------------------
    # FinanceBackend
    # ------------------------------------------------------------------

    async def fetch_collection(self, collection: str) -> list[Entity]:
        model = self.model_for(collection)
        functions = CLOUD_FUNCTIONS[collection]

        if functions.list_key is None:
            rows = await self.call_function(functions.fetch)
            return self._to_entities(model, rows, functions.fetch)

        # Paginated: follow hasMore until the whole collection is loaded
        collected: list = []
        while True:
            page = await self.call_function(
                functions.fetch,
                {"limit": self._page_size, "skip": len(collected)},
            )
            batch = page.get(functions.list_key) or []
            collected.extend(batch)
            if not page.get("hasMore") or not batch:
                break
        return self._to_entities(model, collected, functions.fetch)

    async def create(self, collection: str, data: Mapping[str, Any]) -> Entity:
        model = self.model_for(collection)
        function_name = self._function(collection, "create")
        result = await self.call_function(function_name, to_wire(model, data))
        return self._to_entity(model, result, function_name)

    async def update(
        self,
        collection: str,
        entity_id: str,
        changes: Mapping[str, Any],
    ) -> Entity:
        model = self.model_for(collection)
        function_name = self._function(collection, "update")
        params = to_wire(model, changes)
        params.pop("id", None)
        params[CLOUD_FUNCTIONS[collection].id_param] = entity_id
        result = await self.call_function(function_name, params)
        return self._to_entity(model, result, function_name)

    async def delete(self, collection: str, entity_id: str) -> str:
        self.model_for(collection)
        function_name = self._function(collection, "delete")
        result = await self.call_function(
            function_name,
            {CLOUD_FUNCTIONS[collection].id_param: entity_id},
        )
        if isinstance(result, dict):
            return result.get("deletedId") or entity_id
        return entity_id

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _function(collection: str, operation: str) -> str:
        name = getattr(CLOUD_FUNCTIONS[collection], operation)
        if name is None:
            raise UnsupportedOperationError(
                f"Parse backend cannot {operation} {collection}"
            )
        return name

    @staticmethod
    def _to_entity(model: type[Entity], raw: Any, function_name: str) -> Entity:
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            raise BackendValidationError(
                f"{function_name} returned a malformed {model.__name__}",
                details=e.errors(include_url=False),
            ) from e

    @classmethod
    def _to_entities(
        cls,
        model: type[Entity],
        rows: Any,
        function_name: str,
    ) -> list[Entity]:
        if not isinstance(rows, list):
            raise BackendValidationError(
                f"{function_name} returned {type(rows).__name__}, expected a list",
            )
        return [cls._to_entity(model, row, function_name) for row in rows]
