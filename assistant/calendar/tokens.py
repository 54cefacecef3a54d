"""
OAuth token model and persistence.

A ``TokenStore`` owns one provider's token. It reads the serialized token
from an environment variable first (production deployments where the
filesystem is read-only) and falls back to a local JSON file (development).
A refreshed token is written back to the file when the file is the source;
an environment-sourced token is only updated in the process cache.

Refreshes are single-flight per provider: concurrent requests that find an
expired token wait on one ``asyncio.Lock`` and reuse the first refresh.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from shared.errors import ConfigurationError
from shared.logging.safe_logging import describe_token_blob, token_presence

logger = logging.getLogger(__name__)

# Treat tokens as expired slightly early to avoid mid-request expiry
EXPIRY_BUFFER = timedelta(minutes=5)

_refresh_locks: dict[str, asyncio.Lock] = {}


def refresh_lock(provider: str) -> asyncio.Lock:
    """Return the process-wide refresh lock for ``provider``."""
    lock = _refresh_locks.get(provider)
    if lock is None:
        lock = _refresh_locks[provider] = asyncio.Lock()
    return lock


def _parse_expiry(data: dict[str, Any]) -> datetime | None:
    # Google token files store epoch milliseconds
    if data.get("expiry_date") is not None:
        return datetime.fromtimestamp(int(data["expiry_date"]) / 1000, tz=UTC)
    for key in ("expires_at", "expiresOn", "expiry"):
        value = data.get(key)
        if not value:
            continue
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, tz=UTC)
        parsed = datetime.fromisoformat(str(value))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


@dataclass
class OAuthToken:
    """OAuth2 token information."""

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    scope: str | None = None
    token_type: str = "Bearer"

    @property
    def is_expired(self) -> bool:
        """Check if token is expired (with buffer)."""
        if self.expires_at is None:
            return False
        return datetime.now(UTC) >= self.expires_at - EXPIRY_BUFFER

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OAuthToken":
        """Build from a Google-style or MSAL-style serialized token.

        Raises:
            ValueError: If no access token is present.
        """
        access_token = data.get("access_token") or data.get("accessToken") or data.get("token")
        if not access_token:
            raise ValueError("token has no access_token")
        scope = data.get("scope") or data.get("scopes")
        if isinstance(scope, list):
            scope = " ".join(scope)
        return cls(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or data.get("refreshToken"),
            expires_at=_parse_expiry(data),
            scope=scope,
            token_type=data.get("token_type") or data.get("tokenType") or "Bearer",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expiry_date": int(self.expires_at.timestamp() * 1000) if self.expires_at else None,
            "scope": self.scope,
            "token_type": self.token_type,
        }


class TokenStore:
    """Env-first, file-fallback token persistence for one provider.

    Args:
        provider: Provider name, also the refresh-lock key.
        env_name: Name of the environment variable holding the token JSON.
        env_value: Its value (empty when unset).
        path: JSON file used when the variable is unset, or None for an
            in-memory store.
    """

    def __init__(self, provider: str, env_name: str = "", env_value: str = "", path: Path | None = None):
        self.provider = provider
        self.env_name = env_name
        self.env_value = env_value.strip()
        self.path = path
        self._token: OAuthToken | None = None
        self._source: str | None = None
        self._loaded = False

    @property
    def source(self) -> str | None:
        """Where the current token came from: ``env``, ``file``, ``memory`` or None."""
        self.get()
        return self._source

    def _load(self) -> OAuthToken | None:
        if self.env_value:
            try:
                blob = json.loads(self.env_value)
                token = OAuthToken.from_dict(blob)
            except (ValueError, TypeError) as e:
                raise ConfigurationError(
                    f"Invalid {self.env_name} format: {e}",
                    details={"variable": self.env_name},
                ) from e
            self._source = "env"
            logger.info(f"[TOKENS] {self.provider} token loaded from {self.env_name} ({describe_token_blob(blob)})")
            return token

        if self.path is not None and self.path.exists():
            try:
                blob = json.loads(self.path.read_text())
                token = OAuthToken.from_dict(blob)
            except (OSError, ValueError, TypeError) as e:
                logger.error(f"[TOKENS] Failed to read {self.provider} token file {self.path}: {e}")
                return None
            self._source = "file"
            logger.info(f"[TOKENS] {self.provider} token loaded from {self.path} ({describe_token_blob(blob)})")
            return token

        return None

    def get(self) -> OAuthToken | None:
        """Return the cached token, loading it on first use.

        Raises:
            ConfigurationError: If the environment variable holds invalid JSON.
        """
        if not self._loaded:
            self._token = self._load()
            self._loaded = True
        return self._token

    def persist(self, token: OAuthToken) -> None:
        """Cache ``token`` and write it back when the source is writable."""
        self._token = token
        self._loaded = True

        if self._source == "env" or self.path is None:
            if self._source is None:
                self._source = "memory"
            logger.info(
                f"[TOKENS] {self.provider} token updated in process cache "
                f"({token_presence('refresh_token', token.refresh_token)})"
            )
            return

        try:
            self.path.write_text(json.dumps(token.to_dict(), indent=2))
        except OSError as e:
            logger.warning(f"[TOKENS] Could not write {self.path}, keeping {self.provider} token in memory: {e}")
            self._source = "memory"
            return
        self._source = "file"
        logger.info(f"[TOKENS] {self.provider} token saved to {self.path}")

    def clear(self) -> None:
        """Forget the cached token (the refresh token on disk is left alone)."""
        self._token = None
        self._loaded = True

    async def refresh(self, refresher: Callable[[OAuthToken | None], Awaitable[OAuthToken]]) -> OAuthToken:
        """Single-flight refresh.

        Waits on the provider lock; if another caller already produced a
        fresh token while we waited, returns it without calling ``refresher``.
        A refreshed token that omits ``refresh_token`` keeps the previous one.
        """
        async with refresh_lock(self.provider):
            current = self.get()
            if current is not None and not current.is_expired:
                return current
            token = await refresher(current)
            if current is not None and not token.refresh_token:
                token.refresh_token = current.refresh_token
            self.persist(token)
            return token
