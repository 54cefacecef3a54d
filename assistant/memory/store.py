"""
Memory Store Client.

Talks to the hosted ``memories`` table through its PostgREST endpoint
(``{SUPABASE_URL}/rest/v1/{table}``). All reads go through ``select_rows``;
active-only filtering is applied here so callers cannot forget it.
"""

import logging
from datetime import datetime
from typing import Any

import httpx

from shared.errors import StorageError

from ..config import Settings
from .models import Memory, MemoryFilter

logger = logging.getLogger(__name__)

Params = list[tuple[str, str]]


def _array_literal(value: str) -> str:
    """Quote a value as a single-element Postgres array literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'{{"{escaped}"}}'


def _parse_content_range(header: str | None) -> int:
    """Total row count from a ``Content-Range: 0-9/42`` (or ``*/42``) header."""
    if not header or "/" not in header:
        raise StorageError("Memory store did not return a row count")
    total = header.rsplit("/", 1)[1]
    if total == "*":
        raise StorageError("Memory store did not return a row count")
    try:
        return int(total)
    except ValueError as e:
        raise StorageError(f"Invalid Content-Range header: {header}") from e


class MemoryStore:
    """Async PostgREST client for memory rows."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        table: str = "memories",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.table = table
        self.timeout = timeout
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "MemoryStore":
        settings.require("SUPABASE_URL", "SUPABASE_KEY")
        return cls(
            base_url=settings.SUPABASE_URL,
            api_key=settings.SUPABASE_KEY,
            table=settings.SUPABASE_TABLE,
            timeout=settings.STORE_TIMEOUT_SEC,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=f"{self.base_url}/rest/v1",
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {self.api_key}",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def _request(
        self,
        method: str,
        params: Params | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        client = await self._get_client()
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = await client.request(method, f"/{self.table}", params=params, json=json, headers=headers)
        except httpx.TimeoutException as e:
            logger.error(f"[STORE] {method} {self.table} timed out after {self.timeout:.0f}s")
            raise StorageError(f"Memory store timed out after {self.timeout:.0f}s") from e
        except httpx.HTTPError as e:
            logger.error(f"[STORE] {method} {self.table} failed: {e}")
            raise StorageError(f"Memory store unreachable: {e}") from e

        if not response.is_success:
            try:
                body = response.json()
                message = body.get("message") or body.get("hint") or response.reason_phrase
            except (ValueError, AttributeError):
                message = response.text[:200] or response.reason_phrase
            logger.error(f"[STORE] {method} {self.table} -> {response.status_code}: {message}")
            raise StorageError(
                f"Memory store error: {message}",
                details={"status": response.status_code},
            )
        return response

    @staticmethod
    def _filter_params(filters: MemoryFilter | None) -> Params:
        params: Params = []
        if filters is None:
            return params
        if filters.category:
            params.append(("category", f"eq.{filters.category}"))
        if filters.importance:
            params.append(("importance_level", f"eq.{filters.importance}"))
        if filters.tag:
            params.append(("tags", f"cs.{_array_literal(filters.tag)}"))
        return params

    async def insert(self, record: dict[str, Any]) -> Memory:
        """Insert one row and return it as stored."""
        response = await self._request("POST", json=record, prefer="return=representation")
        rows = response.json()
        if not rows:
            raise StorageError("Memory store returned no row for insert")
        return Memory.model_validate(rows[0])

    async def select_rows(
        self,
        columns: str = "*",
        filters: MemoryFilter | None = None,
        active_only: bool = True,
        extra: Params | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch raw rows, newest first."""
        params: Params = [("select", columns)]
        if active_only:
            params.append(("is_active", "eq.true"))
        params.extend(self._filter_params(filters))
        if extra:
            params.extend(extra)
        params.append(("order", "created_at.desc"))
        response = await self._request("GET", params=params)
        return response.json()

    async def select(self, filters: MemoryFilter | None = None, active_only: bool = True) -> list[Memory]:
        rows = await self.select_rows(filters=filters, active_only=active_only)
        return [Memory.model_validate(row) for row in rows]

    async def search_content(self, query: str) -> list[Memory]:
        """Case-insensitive substring match on ``content`` over active rows."""
        pattern = query.replace("*", "")
        rows = await self.select_rows(extra=[("content", f"ilike.*{pattern}*")])
        return [Memory.model_validate(row) for row in rows]

    async def get(self, memory_id: str) -> Memory | None:
        """Fetch a row by id regardless of ``is_active``."""
        rows = await self.select_rows(active_only=False, extra=[("id", f"eq.{memory_id}")])
        return Memory.model_validate(rows[0]) if rows else None

    async def count(self, active_only: bool = True) -> int:
        params: Params = [("select", "id")]
        if active_only:
            params.append(("is_active", "eq.true"))
        response = await self._request("HEAD", params=params, prefer="count=exact")
        return _parse_content_range(response.headers.get("content-range"))

    async def soft_delete(self, memory_id: str, deleted_at: datetime) -> Memory | None:
        """Mark an active row inactive. Returns None if no active row matched."""
        response = await self._request(
            "PATCH",
            params=[("id", f"eq.{memory_id}"), ("is_active", "eq.true")],
            json={"is_active": False, "deleted_at": deleted_at.isoformat()},
            prefer="return=representation",
        )
        rows = response.json()
        return Memory.model_validate(rows[0]) if rows else None

    async def delete_all(self) -> None:
        """Hard-delete every row, active or not."""
        # PostgREST refuses an unfiltered DELETE
        await self._request("DELETE", params=[("id", "not.is.null")])

    async def ping(self) -> bool:
        """Return True if the store answers a one-row query."""
        try:
            await self._request("GET", params=[("select", "id"), ("limit", "1")])
        except StorageError:
            return False
        return True
