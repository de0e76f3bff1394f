"""
Element Value Sources

Supply the current value of an element referenced from a calculation token.

- PropertyValueSource: the value stored on the element itself (text content)
- HttpValueSource: asks the backend, for values that live server-side
- HttpDatabaseSource: runs the table queries of database calculation steps

Sources raise CalculationError subclasses; the calculation engine turns them
into an inline marker for the one token that needed the value.
"""

import logging
from typing import Any, Protocol

import httpx

from canvasforge.config import Settings, get_settings
from canvasforge.core.exceptions import EvaluationError, ReferenceMissingError
from canvasforge.models.contracts.elements import Element

logger = logging.getLogger(__name__)


class ElementValueSource(Protocol):
    """Anything that can produce the current value of an element."""

    async def get_value(self, element: Element) -> Any: ...


class PropertyValueSource:
    """Reads a property of the referenced element (``value`` by default)."""

    def __init__(self, key: str = "value"):
        self.key = key

    async def get_value(self, element: Element) -> Any:
        return element.properties.get(self.key)


class HttpValueSource:
    """
    Fetches element values from the backend.

    GET {base_url}/elements/{element_id}/value returns either
    ``{"value": ...}`` or a bare JSON value. A 404 falls back to the local
    source when one is configured, otherwise the reference counts as
    missing.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
        fallback: ElementValueSource | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)
        self._owns_client = client is None
        self.fallback = fallback

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "HttpValueSource":
        settings = settings or get_settings()
        if not settings.value_source_url:
            raise ValueError("CANVAS_VALUE_SOURCE_URL is not configured")
        return cls(
            settings.value_source_url,
            timeout=settings.value_source_timeout_seconds,
            fallback=PropertyValueSource(),
        )

    async def get_value(self, element: Element) -> Any:
        try:
            response = await self._client.get(f"/elements/{element.id}/value")
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 404:
                if self.fallback is not None:
                    return await self.fallback.get_value(element)
                raise ReferenceMissingError(element.id) from e
            logger.warning(f"Value lookup for element '{element.id}' failed with HTTP {status}")
            raise EvaluationError(f"value lookup failed (HTTP {status})") from e
        except httpx.HTTPError as e:
            logger.warning(f"Value source unreachable for element '{element.id}': {e}")
            raise EvaluationError("value source unavailable") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise EvaluationError("value source returned invalid JSON") from e

        if isinstance(payload, dict) and "value" in payload:
            return payload["value"]
        return payload

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpValueSource":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


def build_value_source(settings: Settings | None = None) -> ElementValueSource:
    """HTTP source when a backend URL is configured, local properties otherwise."""
    settings = settings or get_settings()
    if settings.value_source_url:
        return HttpValueSource.from_settings(settings)
    return PropertyValueSource()


# =============================================================================
# Database queries
# =============================================================================


class DatabaseQuerySource(Protocol):
    """Runs the query of a database calculation step and returns raw row data."""

    async def query(
        self,
        database_id: str,
        table_id: str,
        *,
        filters: list[dict[str, Any]],
        action: str,
        column: str | None,
    ) -> Any: ...


class HttpDatabaseSource:
    """
    Queries backend tables for database steps.

    POST {base_url}/databases/{database_id}/tables/{table_id}/query with
    ``{"filters": [...], "action": ..., "column": ...}``. The response is an
    envelope ``{"success": bool, "data": ..., "message": ...}``; ``data`` is
    returned unformatted.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "HttpDatabaseSource":
        settings = settings or get_settings()
        if not settings.database_url:
            raise ValueError("CANVAS_DATABASE_URL is not configured")
        return cls(settings.database_url, timeout=settings.database_timeout_seconds)

    async def query(
        self,
        database_id: str,
        table_id: str,
        *,
        filters: list[dict[str, Any]],
        action: str,
        column: str | None,
    ) -> Any:
        path = f"/databases/{database_id}/tables/{table_id}/query"
        try:
            response = await self._client.post(
                path, json={"filters": filters, "action": action, "column": column}
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning(f"Database query {path} failed with HTTP {status}")
            if status == 404:
                raise EvaluationError("database or table not found") from e
            if status == 400:
                raise EvaluationError(_error_message(e.response) or "invalid query parameters") from e
            raise EvaluationError(f"database error (HTTP {status})") from e
        except httpx.HTTPError as e:
            logger.warning(f"Database API unreachable for {path}: {e}")
            raise EvaluationError("database unavailable") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise EvaluationError("database returned invalid JSON") from e

        if not isinstance(payload, dict) or not payload.get("success"):
            message = payload.get("message") if isinstance(payload, dict) else None
            raise EvaluationError(message or "database query failed")
        return payload.get("data")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpDatabaseSource":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


def _error_message(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    return body.get("message") if isinstance(body, dict) else None


def build_database_source(settings: Settings | None = None) -> DatabaseQuerySource | None:
    """HTTP query source when a database URL is configured, otherwise None."""
    settings = settings or get_settings()
    if settings.database_url:
        return HttpDatabaseSource.from_settings(settings)
    return None
