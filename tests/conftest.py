"""
Assistant Service Test Fixtures
Shared fixtures for all test modules.
"""

import sys
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

# Add project root for 'assistant.*' and 'shared.*' imports
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from assistant.calendar.tokens import _refresh_locks
from assistant.config import Settings
from assistant.llm.gateway import LLMGateway
from assistant.memory.models import Memory, MemoryFilter

# ============================================================
# In-memory stand-in for the PostgREST memory store
# ============================================================


class FakeMemoryStore:
    """Implements the MemoryStore methods the service uses over a list of rows."""

    def __init__(self):
        self.rows: list[dict[str, Any]] = []
        self._clock = 0

    def _next_created_at(self) -> str:
        # Strictly increasing timestamps so "newest first" is deterministic
        self._clock += 1
        return datetime(2025, 1, 1, 0, 0, self._clock, tzinfo=UTC).isoformat()

    def _matches(self, row: dict[str, Any], filters: MemoryFilter | None) -> bool:
        if filters is None:
            return True
        if filters.category and row.get("category") != filters.category:
            return False
        if filters.importance and row.get("importance_level") != filters.importance:
            return False
        if filters.tag and filters.tag not in (row.get("tags") or []):
            return False
        return True

    async def insert(self, record: dict[str, Any]) -> Memory:
        row = {"id": str(uuid.uuid4()), "created_at": self._next_created_at(), **record}
        self.rows.append(row)
        return Memory.model_validate(row)

    async def select_rows(self, columns="*", filters=None, active_only=True, extra=None) -> list[dict[str, Any]]:
        rows = [r for r in self.rows if (r["is_active"] or not active_only) and self._matches(r, filters)]
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        if columns != "*":
            wanted = columns.split(",")
            rows = [{k: r.get(k) for k in wanted} for r in rows]
        return rows

    async def select(self, filters=None, active_only=True) -> list[Memory]:
        return [Memory.model_validate(r) for r in await self.select_rows(filters=filters, active_only=active_only)]

    async def search_content(self, query: str) -> list[Memory]:
        return [m for m in await self.select() if query.lower() in m.content.lower()]

    async def get(self, memory_id: str) -> Memory | None:
        for row in self.rows:
            if row["id"] == memory_id:
                return Memory.model_validate(row)
        return None

    async def count(self, active_only: bool = True) -> int:
        return len([r for r in self.rows if r["is_active"] or not active_only])

    async def soft_delete(self, memory_id: str, deleted_at: datetime) -> Memory | None:
        for row in self.rows:
            if row["id"] == memory_id and row["is_active"]:
                row.update(is_active=False, deleted_at=deleted_at.isoformat())
                return Memory.model_validate(row)
        return None

    async def delete_all(self) -> None:
        self.rows.clear()

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass


# ============================================================
# Function-scoped fixtures
# ============================================================


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        OPENAI_API_KEY="sk-test",
        SUPABASE_URL="https://project.supabase.co",
        SUPABASE_KEY="service-key",
        GOOGLE_CLIENT_ID="google-client",
        GOOGLE_CLIENT_SECRET="google-secret",
        GOOGLE_TOKEN="",
        GOOGLE_TOKEN_PATH=str(tmp_path / "token.json"),
        GOOGLE_CREDENTIALS_PATH=str(tmp_path / "credentials.json"),
        MICROSOFT_CLIENT_ID="ms-client",
        MICROSOFT_CLIENT_SECRET="ms-secret",
        MICROSOFT_TENANT_ID="common",
        MICROSOFT_AUTH_MODE="delegated",
        MICROSOFT_TOKEN="",
        MICROSOFT_TOKEN_PATH=str(tmp_path / "outlook-token.json"),
        MICROSOFT_USER_EMAIL="",
        CALENDAR_TIMEZONE="America/Chicago",
        BASE_URL="http://localhost:3001",
    )


@pytest.fixture(autouse=True)
def reset_refresh_locks():
    """Each test runs on its own event loop; asyncio locks must not leak across."""
    _refresh_locks.clear()
    yield
    _refresh_locks.clear()


@pytest.fixture
def fake_store() -> FakeMemoryStore:
    return FakeMemoryStore()


@pytest.fixture
def mock_llm() -> MagicMock:
    """LLM gateway double; set ``complete_model.side_effect`` per test."""
    llm = MagicMock(spec=LLMGateway)
    llm.complete = AsyncMock()
    llm.complete_json = AsyncMock()
    llm.complete_model = AsyncMock()
    return llm


@pytest.fixture
def openai_response():
    """Factory for chat-completions response bodies."""

    def _create(content: str | None, status_code: int = 200) -> httpx.Response:
        return httpx.Response(status_code, json={"choices": [{"message": {"role": "assistant", "content": content}}]})

    return _create


# ============================================================
# Markers for test categorization
# ============================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, no external deps)")
