"""
Google Calendar connector.

OAuth 2.0 authorization-code flow via ``google_auth_oauthlib`` and event
creation via the Calendar v3 API. The Google client libraries are blocking,
so every call runs in a worker thread under the connector timeout.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from datetime import UTC
from pathlib import Path
from typing import Any, TypeVar

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from shared.errors import ConfigurationError, UpstreamError, UpstreamTimeoutError

from ..config import Settings
from .base import CalendarConnector, CalendarEvent, CalendarResult, ProviderError, format_wall_clock
from .tokens import OAuthToken, TokenStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

GOOGLE_SCOPES = ["https://www.googleapis.com/auth/calendar"]
GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


def load_client_secrets(path: Path) -> tuple[str, str]:
    """Read client id/secret from a downloaded ``credentials.json``.

    Returns empty strings if the file is absent or unreadable.
    """
    if not path.exists():
        return "", ""
    try:
        data = json.loads(path.read_text())
    except (OSError, ValueError) as e:
        logger.error(f"[GOOGLE] Failed to read {path}: {e}")
        return "", ""
    section = data.get("web") or data.get("installed") or {}
    return section.get("client_id", ""), section.get("client_secret", "")


def token_from_credentials(credentials: Credentials) -> OAuthToken:
    # google-auth keeps expiry as naive UTC
    expiry = credentials.expiry.replace(tzinfo=UTC) if credentials.expiry else None
    return OAuthToken(
        access_token=credentials.token,
        refresh_token=credentials.refresh_token,
        expires_at=expiry,
        scope=" ".join(credentials.scopes) if credentials.scopes else " ".join(GOOGLE_SCOPES),
        token_type="Bearer",
    )


class GoogleConnector(CalendarConnector):
    """Google Calendar connector."""

    provider = "google"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        token_store: TokenStore,
        timezone: str = "America/Chicago",
        timeout: float = 15.0,
    ):
        super().__init__(token_store, timezone, timeout)
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri

    @classmethod
    def from_settings(cls, settings: Settings, token_store: TokenStore | None = None) -> "GoogleConnector":
        client_id, client_secret = settings.GOOGLE_CLIENT_ID, settings.GOOGLE_CLIENT_SECRET
        if not client_id or not client_secret:
            file_id, file_secret = load_client_secrets(Path(settings.GOOGLE_CREDENTIALS_PATH))
            client_id, client_secret = client_id or file_id, client_secret or file_secret
        if token_store is None:
            token_store = TokenStore(
                "google",
                env_name="GOOGLE_TOKEN",
                env_value=settings.GOOGLE_TOKEN,
                path=settings.google_token_path,
            )
        return cls(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=settings.google_redirect_uri,
            token_store=token_store,
            timezone=settings.CALENDAR_TIMEZONE,
            timeout=settings.CALENDAR_TIMEOUT_SEC,
        )

    def _client_config(self) -> dict[str, Any]:
        for name, value in (("GOOGLE_CLIENT_ID", self.client_id), ("GOOGLE_CLIENT_SECRET", self.client_secret)):
            if not value:
                raise ConfigurationError(f"Missing required configuration: {name}", details={"variable": name})
        return {
            "web": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": GOOGLE_AUTH_URI,
                "token_uri": GOOGLE_TOKEN_URI,
                "redirect_uris": [self.redirect_uri],
            }
        }

    def _flow(self, state: str | None = None) -> Flow:
        # No PKCE: the verifier would not survive between the URL and the callback
        return Flow.from_client_config(
            self._client_config(),
            scopes=GOOGLE_SCOPES,
            redirect_uri=self.redirect_uri,
            state=state,
            autogenerate_code_verifier=False,
        )

    def _credentials(self, token: OAuthToken) -> Credentials:
        expiry = token.expires_at.astimezone(UTC).replace(tzinfo=None) if token.expires_at else None
        return Credentials(
            token=token.access_token,
            refresh_token=token.refresh_token,
            token_uri=GOOGLE_TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=token.scope.split() if token.scope else GOOGLE_SCOPES,
            expiry=expiry,
        )

    async def _call(self, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking Google client call in a thread with the connector timeout."""
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self.timeout)
        except TimeoutError as e:
            logger.error(f"[GOOGLE] Request timed out after {self.timeout:.0f}s")
            raise UpstreamTimeoutError(f"Google Calendar request timed out after {self.timeout:.0f}s") from e

    def _build_auth_url(self, state: str) -> str:
        url, _ = self._flow(state).authorization_url(
            access_type="offline",
            prompt="consent",  # Force consent to get refresh token
        )
        return url

    def _fetch_token(self, code: str) -> OAuthToken:
        flow = self._flow()
        flow.fetch_token(code=code)
        return token_from_credentials(flow.credentials)

    async def _exchange_code(self, code: str) -> OAuthToken:
        try:
            return await self._call(self._fetch_token, code)
        except (ConfigurationError, UpstreamTimeoutError):
            raise
        except Exception as e:
            # oauthlib raises its own error hierarchy for rejected codes
            logger.error(f"[GOOGLE] Code exchange failed: {e}")
            raise ProviderError(400, f"Failed to exchange authorization code: {e}") from e

    def _run_refresh(self, token: OAuthToken) -> OAuthToken:
        credentials = self._credentials(token)
        try:
            credentials.refresh(Request())
        except RefreshError as e:
            raise ProviderError(401, str(e)) from e
        except (TransportError, OSError) as e:
            logger.error(f"[GOOGLE] Token refresh could not reach Google: {e}")
            raise UpstreamError(f"Google token refresh failed: {e}", details={"provider": self.provider}) from e
        return token_from_credentials(credentials)

    async def _refresh_token(self, token: OAuthToken) -> OAuthToken:
        self._client_config()
        return await self._call(self._run_refresh, token)

    def build_event_body(self, event: CalendarEvent) -> dict[str, Any]:
        body: dict[str, Any] = {
            "summary": event.title,
            "start": {"dateTime": format_wall_clock(event.start), "timeZone": event.timezone},
            "end": {"dateTime": format_wall_clock(event.end), "timeZone": event.timezone},
        }
        if event.notes:
            body["description"] = event.notes
        if event.reminder_minutes is not None:
            body["reminders"] = {
                "useDefault": False,
                "overrides": [{"method": "popup", "minutes": event.reminder_minutes}],
            }
        else:
            body["reminders"] = {"useDefault": True}
        return body

    def _execute_insert(self, token: OAuthToken, body: dict[str, Any]) -> dict[str, Any]:
        service = build("calendar", "v3", credentials=self._credentials(token), cache_discovery=False)
        try:
            return service.events().insert(calendarId="primary", body=body).execute()
        except HttpError as e:
            raise ProviderError(e.resp.status, e.reason or str(e)) from e
        except RefreshError as e:
            raise ProviderError(401, str(e)) from e
        except (TransportError, OSError) as e:
            logger.error(f"[GOOGLE] Event insert could not reach Google: {e}")
            raise UpstreamError(f"Failed to create google calendar event: {e}", details={"provider": self.provider}) from e

    async def _insert_event(self, token: OAuthToken, event: CalendarEvent) -> CalendarResult:
        created = await self._call(self._execute_insert, token, self.build_event_body(event))
        return CalendarResult(
            success=True,
            provider=self.provider,
            event_id=created.get("id"),
            link=created.get("htmlLink"),
            message="Event created successfully!",
        )
