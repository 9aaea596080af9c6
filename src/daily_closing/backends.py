"""Row-store backends for ledger collections.

The store talks to a remote document/row store through the small
``ClosingBackend`` protocol. ``RestBackend`` speaks the PostgREST dialect
(``/rest/v1/<collection>?id=eq.<id>``); ``InMemoryBackend`` keeps rows in
process for tests and local runs.

Every call either completes or raises ``PersistenceError``. Nothing is
retried: a failed write leaves the previous state authoritative.
"""

import copy
from typing import Any, Protocol

import httpx
import structlog

from daily_closing.config import get_settings
from daily_closing.exceptions import PersistenceError, RecordNotFoundError

logger = structlog.get_logger(__name__)

Row = dict[str, Any]


class ClosingBackend(Protocol):
    """Persistence operations the ledger needs from a row store."""

    async def insert(self, collection: str, row: Row) -> Row: ...

    async def update(self, collection: str, record_id: str, row: Row) -> Row: ...

    async def delete(self, collection: str, record_id: str) -> None: ...

    async def fetch(self, collection: str, record_id: str) -> Row | None: ...

    async def fetch_all(
        self, collection: str, order_by: str | None = None, descending: bool = False
    ) -> list[Row]: ...


class InMemoryBackend:
    """Dict-backed row store.

    ``fail_next`` arms a single simulated failure for the next call of the
    named operation, which lets callers exercise persistence-failure paths.
    """

    def __init__(self, rows: dict[str, list[Row]] | None = None):
        self._rows: dict[str, dict[str, Row]] = {}
        self._failures: dict[str, str] = {}
        for collection, items in (rows or {}).items():
            for row in items:
                self._rows.setdefault(collection, {})[str(row["id"])] = copy.deepcopy(row)

    def fail_next(self, operation: str, message: str = "Simulated store failure") -> None:
        self._failures[operation] = message

    def _check(self, operation: str) -> None:
        message = self._failures.pop(operation, None)
        if message is not None:
            raise PersistenceError(message, status_code=503)

    def rows(self, collection: str) -> list[Row]:
        return [copy.deepcopy(r) for r in self._rows.get(collection, {}).values()]

    async def insert(self, collection: str, row: Row) -> Row:
        self._check("insert")
        record_id = str(row["id"])
        table = self._rows.setdefault(collection, {})
        if record_id in table:
            raise PersistenceError(f"Duplicate id {record_id}", status_code=409)
        table[record_id] = copy.deepcopy(row)
        return copy.deepcopy(row)

    async def update(self, collection: str, record_id: str, row: Row) -> Row:
        self._check("update")
        table = self._rows.get(collection, {})
        if record_id not in table:
            raise RecordNotFoundError(f"No record {record_id} in {collection}", status_code=404)
        stored = {**copy.deepcopy(row), "id": record_id}
        table[record_id] = stored
        return copy.deepcopy(stored)

    async def delete(self, collection: str, record_id: str) -> None:
        self._check("delete")
        table = self._rows.get(collection, {})
        if record_id not in table:
            raise RecordNotFoundError(f"No record {record_id} in {collection}", status_code=404)
        del table[record_id]

    async def fetch(self, collection: str, record_id: str) -> Row | None:
        self._check("fetch")
        row = self._rows.get(collection, {}).get(record_id)
        return copy.deepcopy(row) if row is not None else None

    async def fetch_all(
        self, collection: str, order_by: str | None = None, descending: bool = False
    ) -> list[Row]:
        self._check("fetch_all")
        rows = self.rows(collection)
        if order_by:
            rows.sort(key=lambda r: str(r.get(order_by, "")), reverse=descending)
        return rows


class RestBackend:
    """Async client for a PostgREST-style row store."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.store_url).rstrip("/")
        if api_key is None and settings.store_api_key is not None:
            api_key = settings.store_api_key.get_secret_value()
        self._api_key = api_key
        self._timeout = timeout or settings.store_timeout
        self._client: httpx.AsyncClient | None = None
        self._logger = logger.bind(component="rest_backend")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RestBackend":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self, returning: bool = False) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["apikey"] = self._api_key
            headers["Authorization"] = f"Bearer {self._api_key}"
        if returning:
            headers["Prefer"] = "return=representation"
        return headers

    async def _request(
        self,
        method: str,
        collection: str,
        params: dict[str, str] | None = None,
        json: Row | None = None,
        returning: bool = False,
    ) -> Any:
        client = await self._get_client()
        try:
            response = await client.request(
                method=method,
                url=f"/rest/v1/{collection}",
                params=params,
                json=json,
                headers=self._get_headers(returning),
            )
        except httpx.RequestError as e:
            self._logger.warning("store_request_failed", method=method, collection=collection)
            raise PersistenceError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            try:
                error_detail = response.json() if response.content else {}
            except ValueError:
                error_detail = {"raw": response.text[:500] if response.text else "empty response"}
            self._logger.warning(
                "store_error",
                method=method,
                collection=collection,
                status=response.status_code,
            )
            raise PersistenceError(
                f"Store error: {response.status_code}",
                status_code=response.status_code,
                details=error_detail,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            self._logger.warning(
                "store_invalid_response",
                method=method,
                collection=collection,
                status=response.status_code,
            )
            raise PersistenceError(
                "Store returned an unreadable response",
                status_code=response.status_code,
                details={"raw": response.text[:500] if response.text else ""},
            ) from e

    @staticmethod
    def _first(data: Any, fallback: Row) -> Row:
        if isinstance(data, list) and data:
            return data[0]
        if isinstance(data, dict):
            return data
        return fallback

    async def insert(self, collection: str, row: Row) -> Row:
        data = await self._request("POST", collection, json=row, returning=True)
        return self._first(data, row)

    async def update(self, collection: str, record_id: str, row: Row) -> Row:
        data = await self._request(
            "PATCH", collection, params={"id": f"eq.{record_id}"}, json=row, returning=True
        )
        if isinstance(data, list) and not data:
            raise RecordNotFoundError(f"No record {record_id} in {collection}", status_code=404)
        return self._first(data, {**row, "id": record_id})

    async def delete(self, collection: str, record_id: str) -> None:
        await self._request("DELETE", collection, params={"id": f"eq.{record_id}"})

    async def fetch(self, collection: str, record_id: str) -> Row | None:
        data = await self._request(
            "GET", collection, params={"select": "*", "id": f"eq.{record_id}"}
        )
        if isinstance(data, list):
            return data[0] if data else None
        return data

    async def fetch_all(
        self, collection: str, order_by: str | None = None, descending: bool = False
    ) -> list[Row]:
        params = {"select": "*"}
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        data = await self._request("GET", collection, params=params)
        return data if isinstance(data, list) else []
