"""
Tests for OAuth token parsing, persistence and single-flight refresh.
"""

import asyncio
import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from assistant.calendar.tokens import OAuthToken, TokenStore
from shared.errors import ConfigurationError


def expired_token(refresh_token="refresh-1") -> OAuthToken:
    return OAuthToken(
        access_token="old-access",
        refresh_token=refresh_token,
        expires_at=datetime.now(UTC) - timedelta(minutes=1),
    )


def fresh_token(access_token="new-access", refresh_token=None) -> OAuthToken:
    return OAuthToken(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=datetime.now(UTC) + timedelta(hours=1),
    )


@pytest.mark.unit
class TestOAuthToken:
    """Token parsing and expiry."""

    def test_google_style_token(self):
        token = OAuthToken.from_dict(
            {
                "access_token": "ya29.abc",
                "refresh_token": "1//refresh",
                "expiry_date": 1735732800000,
                "scope": "https://www.googleapis.com/auth/calendar",
                "token_type": "Bearer",
            }
        )

        assert token.access_token == "ya29.abc"
        assert token.refresh_token == "1//refresh"
        assert token.expires_at == datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def test_msal_style_token(self):
        token = OAuthToken.from_dict(
            {
                "accessToken": "eyJ0",
                "refreshToken": "M.R3",
                "expiresOn": "2025-01-01T12:00:00Z",
                "scopes": ["Calendars.ReadWrite", "offline_access"],
            }
        )

        assert token.access_token == "eyJ0"
        assert token.refresh_token == "M.R3"
        assert token.expires_at == datetime(2025, 1, 1, 12, 0, tzinfo=UTC)
        assert token.scope == "Calendars.ReadWrite offline_access"

    def test_authorized_user_style_token(self):
        token = OAuthToken.from_dict({"token": "ya29.abc", "expiry": "2025-01-01T12:00:00"})

        assert token.access_token == "ya29.abc"
        assert token.expires_at.tzinfo is not None

    def test_missing_access_token(self):
        with pytest.raises(ValueError):
            OAuthToken.from_dict({"refresh_token": "r"})

    def test_expiry_buffer(self):
        almost = OAuthToken(access_token="a", expires_at=datetime.now(UTC) + timedelta(minutes=2))
        later = OAuthToken(access_token="a", expires_at=datetime.now(UTC) + timedelta(hours=1))
        no_expiry = OAuthToken(access_token="a")

        assert almost.is_expired is True
        assert later.is_expired is False
        assert no_expiry.is_expired is False

    def test_to_dict_round_trips_expiry(self):
        token = fresh_token(refresh_token="r")

        restored = OAuthToken.from_dict(token.to_dict())

        assert restored.refresh_token == "r"
        assert abs((restored.expires_at - token.expires_at).total_seconds()) < 1


@pytest.mark.unit
class TestTokenStore:
    """Env-first, file-fallback persistence."""

    def test_env_takes_precedence_over_file(self, tmp_path):
        path = tmp_path / "token.json"
        path.write_text(json.dumps({"access_token": "from-file"}))
        store = TokenStore("google", "GOOGLE_TOKEN", json.dumps({"access_token": "from-env"}), path)

        assert store.get().access_token == "from-env"
        assert store.source == "env"

    def test_file_fallback(self, tmp_path):
        path = tmp_path / "token.json"
        path.write_text(json.dumps({"access_token": "from-file"}))
        store = TokenStore("google", "GOOGLE_TOKEN", "", path)

        assert store.get().access_token == "from-file"
        assert store.source == "file"

    def test_invalid_env_json(self, tmp_path):
        store = TokenStore("google", "GOOGLE_TOKEN", "{not json", tmp_path / "token.json")

        with pytest.raises(ConfigurationError) as exc_info:
            store.get()

        assert "Invalid GOOGLE_TOKEN format" in exc_info.value.message

    def test_unreadable_file_is_treated_as_absent(self, tmp_path):
        path = tmp_path / "token.json"
        path.write_text("garbage")
        store = TokenStore("google", "GOOGLE_TOKEN", "", path)

        assert store.get() is None
        assert store.source is None

    def test_env_token_is_never_written_to_disk(self, tmp_path):
        path = tmp_path / "token.json"
        store = TokenStore("google", "GOOGLE_TOKEN", json.dumps({"access_token": "from-env"}), path)
        store.get()

        store.persist(fresh_token())

        assert store.get().access_token == "new-access"
        assert store.source == "env"
        assert not path.exists()

    def test_file_token_is_written_back(self, tmp_path):
        path = tmp_path / "token.json"
        path.write_text(json.dumps({"access_token": "from-file"}))
        store = TokenStore("google", "GOOGLE_TOKEN", "", path)
        store.get()

        store.persist(fresh_token(refresh_token="r2"))

        saved = json.loads(path.read_text())
        assert saved["access_token"] == "new-access"
        assert saved["refresh_token"] == "r2"

    def test_first_token_creates_file(self, tmp_path):
        path = tmp_path / "token.json"
        store = TokenStore("google", "GOOGLE_TOKEN", "", path)

        store.persist(fresh_token())

        assert path.exists()
        assert store.source == "file"

    def test_pathless_store_keeps_token_in_memory(self):
        store = TokenStore("outlook")

        store.persist(fresh_token())

        assert store.get().access_token == "new-access"
        assert store.source == "memory"


@pytest.mark.unit
class TestRefresh:
    """Single-flight refresh."""

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_call_provider_once(self):
        store = TokenStore("google")
        store.persist(expired_token())
        calls = []

        async def refresher(current):
            calls.append(current)
            await asyncio.sleep(0.01)
            return fresh_token()

        tokens = await asyncio.gather(*(store.refresh(refresher) for _ in range(5)))

        assert len(calls) == 1
        assert {token.access_token for token in tokens} == {"new-access"}

    @pytest.mark.asyncio
    async def test_refresh_keeps_previous_refresh_token(self):
        store = TokenStore("google")
        store.persist(expired_token(refresh_token="keep-me"))

        token = await store.refresh(AsyncMock(return_value=fresh_token(refresh_token=None)))

        assert token.refresh_token == "keep-me"
        assert store.get().refresh_token == "keep-me"

    @pytest.mark.asyncio
    async def test_rotated_refresh_token_replaces_old(self):
        store = TokenStore("google")
        store.persist(expired_token(refresh_token="old"))

        token = await store.refresh(AsyncMock(return_value=fresh_token(refresh_token="rotated")))

        assert token.refresh_token == "rotated"

    @pytest.mark.asyncio
    async def test_failed_refresh_leaves_store_untouched(self):
        store = TokenStore("google")
        store.persist(expired_token(refresh_token="keep-me"))

        with pytest.raises(RuntimeError):
            await store.refresh(AsyncMock(side_effect=RuntimeError("rejected")))

        assert store.get().access_token == "old-access"
        assert store.get().refresh_token == "keep-me"
