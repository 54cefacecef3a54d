"""
Tests for the PostgREST memory store client.
"""

import json
from datetime import UTC, datetime

import httpx
import pytest

from assistant.memory.models import MemoryFilter
from assistant.memory.store import MemoryStore, _parse_content_range
from shared.errors import StorageError

MEMORY_ID = "3f1c2a5e-8d2b-4c1e-9a57-0c2d7e4b9f10"


def row(**overrides):
    data = {
        "id": MEMORY_ID,
        "content": "Brandon works at Acme.",
        "raw_input": "i work at acme",
        "category": "work",
        "memory_type": "fact",
        "importance_level": "high",
        "tags": ["job"],
        "related_entities": ["Acme"],
        "context": None,
        "is_active": True,
        "created_at": "2025-01-01T10:00:00+00:00",
        "deleted_at": None,
    }
    data.update(overrides)
    return data


class Recorder:
    """MockTransport handler that records requests and replays a fixed response."""

    def __init__(self, response: httpx.Response):
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    @property
    def params(self) -> list[tuple[str, str]]:
        return self.last.url.params.multi_items()


def make_store(handler) -> MemoryStore:
    return MemoryStore(
        base_url="https://project.supabase.co/",
        api_key="service-key",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.unit
class TestRequests:
    """Request construction."""

    @pytest.mark.asyncio
    async def test_auth_headers_and_table_path(self):
        recorder = Recorder(httpx.Response(200, json=[]))
        store = make_store(recorder)

        await store.select()

        assert recorder.last.url.path == "/rest/v1/memories"
        assert recorder.last.headers["apikey"] == "service-key"
        assert recorder.last.headers["Authorization"] == "Bearer service-key"
        await store.close()

    @pytest.mark.asyncio
    async def test_select_is_active_only_and_newest_first(self):
        recorder = Recorder(httpx.Response(200, json=[row()]))
        store = make_store(recorder)

        memories = await store.select()

        assert ("is_active", "eq.true") in recorder.params
        assert ("order", "created_at.desc") in recorder.params
        assert memories[0].id == MEMORY_ID
        assert memories[0].related_entities == ["Acme"]

    @pytest.mark.asyncio
    async def test_filters_are_combined(self):
        recorder = Recorder(httpx.Response(200, json=[]))
        store = make_store(recorder)

        await store.select(MemoryFilter(category="Work", importance="HIGH", tag="Job"))

        params = recorder.params
        assert ("category", "eq.work") in params
        assert ("importance_level", "eq.high") in params
        assert ("tags", 'cs.{"job"}') in params

    @pytest.mark.asyncio
    async def test_blank_filters_are_ignored(self):
        recorder = Recorder(httpx.Response(200, json=[]))
        store = make_store(recorder)

        await store.select(MemoryFilter(category="", importance="  ", tag=None))

        keys = [key for key, _ in recorder.params]
        assert "category" not in keys
        assert "importance_level" not in keys
        assert "tags" not in keys

    @pytest.mark.asyncio
    async def test_insert_returns_representation(self):
        recorder = Recorder(httpx.Response(201, json=[row()]))
        store = make_store(recorder)

        memory = await store.insert({"content": "Brandon works at Acme.", "is_active": True})

        assert recorder.last.method == "POST"
        assert recorder.last.headers["Prefer"] == "return=representation"
        assert json.loads(recorder.last.content)["content"] == "Brandon works at Acme."
        assert memory.id == MEMORY_ID

    @pytest.mark.asyncio
    async def test_get_ignores_active_flag(self):
        recorder = Recorder(httpx.Response(200, json=[row(is_active=False)]))
        store = make_store(recorder)

        memory = await store.get(MEMORY_ID)

        assert ("id", f"eq.{MEMORY_ID}") in recorder.params
        assert ("is_active", "eq.true") not in recorder.params
        assert memory.is_active is False

    @pytest.mark.asyncio
    async def test_search_content_uses_ilike(self):
        recorder = Recorder(httpx.Response(200, json=[]))
        store = make_store(recorder)

        await store.search_content("ac*me")

        assert ("content", "ilike.*acme*") in recorder.params
        assert ("is_active", "eq.true") in recorder.params

    @pytest.mark.asyncio
    async def test_soft_delete_patches_active_row(self):
        deleted_at = datetime(2025, 2, 1, 12, 0, tzinfo=UTC)
        recorder = Recorder(
            httpx.Response(200, json=[row(is_active=False, deleted_at=deleted_at.isoformat())])
        )
        store = make_store(recorder)

        memory = await store.soft_delete(MEMORY_ID, deleted_at)

        assert recorder.last.method == "PATCH"
        assert ("id", f"eq.{MEMORY_ID}") in recorder.params
        assert ("is_active", "eq.true") in recorder.params
        assert json.loads(recorder.last.content) == {"is_active": False, "deleted_at": deleted_at.isoformat()}
        assert memory.deleted_at == deleted_at

    @pytest.mark.asyncio
    async def test_soft_delete_no_match_returns_none(self):
        store = make_store(Recorder(httpx.Response(200, json=[])))

        assert await store.soft_delete(MEMORY_ID, datetime.now(UTC)) is None

    @pytest.mark.asyncio
    async def test_delete_all_sends_filter(self):
        recorder = Recorder(httpx.Response(204))
        store = make_store(recorder)

        await store.delete_all()

        assert recorder.last.method == "DELETE"
        assert ("id", "not.is.null") in recorder.params


@pytest.mark.unit
class TestCount:
    """Row counts from Content-Range."""

    @pytest.mark.asyncio
    async def test_count_uses_head_with_exact_count(self):
        recorder = Recorder(httpx.Response(200, headers={"Content-Range": "0-4/5"}))
        store = make_store(recorder)

        total = await store.count()

        assert total == 5
        assert recorder.last.method == "HEAD"
        assert recorder.last.headers["Prefer"] == "count=exact"
        assert ("is_active", "eq.true") in recorder.params

    def test_empty_table_range(self):
        assert _parse_content_range("*/0") == 0

    @pytest.mark.parametrize("header", [None, "0-4", "0-4/*", "0-4/abc"])
    def test_missing_or_invalid_range(self, header):
        with pytest.raises(StorageError):
            _parse_content_range(header)


@pytest.mark.unit
class TestErrors:
    """Store failures surface as StorageError."""

    @pytest.mark.asyncio
    async def test_error_status_uses_postgrest_message(self):
        store = make_store(Recorder(httpx.Response(400, json={"message": 'column "foo" does not exist'})))

        with pytest.raises(StorageError) as exc_info:
            await store.select()

        assert exc_info.value.message == 'Memory store error: column "foo" does not exist'
        assert exc_info.value.details == {"status": 400}
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        store = make_store(handler)
        with pytest.raises(StorageError):
            await store.count()

    @pytest.mark.asyncio
    async def test_ping(self):
        assert await make_store(Recorder(httpx.Response(200, json=[]))).ping() is True
        assert await make_store(Recorder(httpx.Response(503, text="unavailable"))).ping() is False
