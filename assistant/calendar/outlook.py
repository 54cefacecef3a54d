"""
Microsoft Outlook calendar connector.

Talks to the Microsoft identity platform (v2.0 token endpoint) and the
Graph REST API with httpx. ``MICROSOFT_AUTH_MODE`` selects one of two
mutually exclusive credential flows:

- ``delegated``: authorization code + refresh token for the signed-in user;
  events go to ``/me/calendar/events``.
- ``application``: client-credentials grant for a daemon app; events go to
  ``/users/{MICROSOFT_USER_EMAIL}/events``. There is no user consent step,
  so the delegated operations raise ``ConfigurationError`` in this mode.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Literal
from urllib.parse import quote, urlencode

import httpx

from shared.errors import ConfigurationError, UpstreamError, UpstreamTimeoutError

from ..config import Settings
from .base import (
    CalendarConnector,
    CalendarEvent,
    CalendarResult,
    ConnectorState,
    ProviderError,
    format_wall_clock,
)
from .tokens import OAuthToken, TokenStore

logger = logging.getLogger(__name__)

AUTHORITY_URL = "https://login.microsoftonline.com"
GRAPH_URL = "https://graph.microsoft.com/v1.0"
DELEGATED_SCOPES = ["Calendars.ReadWrite", "offline_access", "User.Read"]
APPLICATION_SCOPE = "https://graph.microsoft.com/.default"

AuthMode = Literal["delegated", "application"]


def _graph_error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message") or error.get("code") or response.reason_phrase
    if isinstance(body, dict) and body.get("error_description"):
        # Identity platform errors: {"error": "invalid_grant", "error_description": "..."}
        return str(body["error_description"]).splitlines()[0]
    if isinstance(error, str):
        return error
    return response.reason_phrase


class OutlookConnector(CalendarConnector):
    """Outlook (Microsoft Graph) calendar connector."""

    provider = "outlook"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_store: TokenStore,
        tenant_id: str = "common",
        redirect_uri: str = "",
        mode: AuthMode = "delegated",
        mailbox: str = "",
        timezone: str = "America/Chicago",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(token_store, timezone, timeout)
        self.client_id = client_id.strip()
        self.client_secret = client_secret.strip()
        self.tenant_id = (tenant_id or "common").strip()
        self.redirect_uri = redirect_uri.strip()
        self.mode = mode
        self.mailbox = mailbox.strip()
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings, token_store: TokenStore | None = None) -> "OutlookConnector":
        """Build from settings.

        Raises:
            ConfigurationError: If application mode is combined with a
                delegated ``MICROSOFT_TOKEN``.
        """
        mode = settings.MICROSOFT_AUTH_MODE
        if token_store is None:
            if mode == "application":
                if settings.MICROSOFT_TOKEN:
                    raise ConfigurationError(
                        "MICROSOFT_TOKEN is a delegated user token and cannot be used with "
                        "MICROSOFT_AUTH_MODE=application",
                        details={"variable": "MICROSOFT_TOKEN"},
                    )
                # App-only tokens are cheap to re-acquire and never persisted
                token_store = TokenStore("outlook")
            else:
                token_store = TokenStore(
                    "outlook",
                    env_name="MICROSOFT_TOKEN",
                    env_value=settings.MICROSOFT_TOKEN,
                    path=settings.microsoft_token_path,
                )
        return cls(
            client_id=settings.MICROSOFT_CLIENT_ID,
            client_secret=settings.MICROSOFT_CLIENT_SECRET,
            token_store=token_store,
            tenant_id=settings.MICROSOFT_TENANT_ID,
            redirect_uri=settings.microsoft_redirect_uri,
            mode=mode,
            mailbox=settings.MICROSOFT_USER_EMAIL,
            timezone=settings.CALENDAR_TIMEZONE,
            timeout=settings.CALENDAR_TIMEOUT_SEC,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    # ------------------------------------------------------------------
    # Configuration checks
    # ------------------------------------------------------------------

    def _require_credentials(self) -> None:
        for name, value in (
            ("MICROSOFT_CLIENT_ID", self.client_id),
            ("MICROSOFT_CLIENT_SECRET", self.client_secret),
        ):
            if not value:
                raise ConfigurationError(f"Missing required configuration: {name}", details={"variable": name})

    def _require_delegated(self, operation: str) -> None:
        if self.mode != "delegated":
            raise ConfigurationError(
                f"Outlook {operation} requires MICROSOFT_AUTH_MODE=delegated "
                f"(currently {self.mode}); application mode has no user consent step",
                details={"variable": "MICROSOFT_AUTH_MODE"},
            )

    def _require_application(self) -> None:
        self._require_credentials()
        if not self.mailbox:
            raise ConfigurationError(
                "Missing required configuration: MICROSOFT_USER_EMAIL",
                details={"variable": "MICROSOFT_USER_EMAIL"},
            )
        if self.tenant_id in ("common", "organizations", "consumers"):
            raise ConfigurationError(
                "MICROSOFT_TENANT_ID must be a specific tenant for application credentials",
                details={"variable": "MICROSOFT_TENANT_ID"},
            )

    @property
    def token_url(self) -> str:
        return f"{AUTHORITY_URL}/{self.tenant_id}/oauth2/v2.0/token"

    @property
    def authorize_url(self) -> str:
        return f"{AUTHORITY_URL}/{self.tenant_id}/oauth2/v2.0/authorize"

    @property
    def events_url(self) -> str:
        if self.mode == "application":
            return f"{GRAPH_URL}/users/{quote(self.mailbox)}/events"
        return f"{GRAPH_URL}/me/calendar/events"

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectorState:
        if self.mode == "application":
            return ConnectorState.AUTHORIZED if self.is_authorized() else ConnectorState.UNAUTHORIZED
        return super().state

    def is_authorized(self) -> bool:
        if self.mode == "application":
            try:
                self._require_application()
            except ConfigurationError as e:
                logger.error(f"[OUTLOOK] {e.message}")
                return False
            return True
        return super().is_authorized()

    def get_auth_url(self) -> str:
        self._require_delegated("authorization")
        return super().get_auth_url()

    async def handle_callback(
        self,
        code: str | None,
        state: str | None = None,
        allow_missing_state: bool = False,
    ) -> OAuthToken:
        self._require_delegated("authorization callback")
        return await super().handle_callback(code, state, allow_missing_state)

    def _build_auth_url(self, state: str) -> str:
        self._require_credentials()
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "response_mode": "query",
            "scope": " ".join(DELEGATED_SCOPES),
            "state": state,
            "prompt": "consent",  # Force consent to get refresh token
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    async def _token_request(self, data: dict[str, str]) -> OAuthToken:
        """POST a grant to the token endpoint."""
        self._require_credentials()
        client = await self._get_client()
        form = {"client_id": self.client_id, "client_secret": self.client_secret, **data}
        try:
            response = await client.post(self.token_url, data=form)
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(f"Microsoft token request timed out after {self.timeout:.0f}s") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Microsoft token request failed: {e}") from e

        if not response.is_success:
            message = _graph_error_message(response)
            logger.error(f"[OUTLOOK] Token request ({data['grant_type']}) failed: {response.status_code} - {message}")
            # Rejected grants are always an authorization problem
            status = 401 if response.status_code in (400, 401) else response.status_code
            raise ProviderError(status, message)

        token_data = response.json()
        expires_in = int(token_data.get("expires_in", 3600))
        return OAuthToken(
            access_token=token_data["access_token"],
            refresh_token=token_data.get("refresh_token"),
            expires_at=datetime.now(UTC) + timedelta(seconds=expires_in),
            scope=token_data.get("scope"),
            token_type=token_data.get("token_type", "Bearer"),
        )

    async def _exchange_code(self, code: str) -> OAuthToken:
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "scope": " ".join(DELEGATED_SCOPES),
            }
        )

    async def _refresh_token(self, token: OAuthToken) -> OAuthToken:
        return await self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": token.refresh_token or "",
                "scope": " ".join(DELEGATED_SCOPES),
            }
        )

    async def _acquire_app_token(self, current: OAuthToken | None) -> OAuthToken:
        logger.info("[OUTLOOK] Requesting application token (client credentials)")
        return await self._token_request({"grant_type": "client_credentials", "scope": APPLICATION_SCOPE})

    async def get_valid_token(self) -> OAuthToken:
        if self.mode != "application":
            return await super().get_valid_token()
        self._require_application()
        token = self.token_store.get()
        if token is not None and not token.is_expired:
            return token
        return await self.token_store.refresh(self._acquire_app_token)

    def _on_auth_failure(self, error: ProviderError) -> CalendarResult:
        if self.mode == "application":
            # No consent URL to offer; the app registration itself is wrong
            raise UpstreamError(
                f"Outlook application credentials were rejected: {error.message}",
                details={"provider": self.provider, "status": error.status},
            )
        return super()._on_auth_failure(error)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def build_event_body(self, event: CalendarEvent) -> dict[str, Any]:
        body: dict[str, Any] = {
            "subject": event.title,
            "start": {"dateTime": format_wall_clock(event.start), "timeZone": event.timezone},
            "end": {"dateTime": format_wall_clock(event.end), "timeZone": event.timezone},
        }
        if event.notes:
            body["body"] = {"contentType": "Text", "content": event.notes}
        if event.reminder_minutes is not None:
            body["isReminderOn"] = True
            body["reminderMinutesBeforeStart"] = event.reminder_minutes
        return body

    async def _insert_event(self, token: OAuthToken, event: CalendarEvent) -> CalendarResult:
        client = await self._get_client()
        try:
            response = await client.post(
                self.events_url,
                json=self.build_event_body(event),
                headers={"Authorization": f"Bearer {token.access_token}"},
            )
        except httpx.TimeoutException as e:
            logger.error(f"[OUTLOOK] Request timed out after {self.timeout:.0f}s")
            raise UpstreamTimeoutError(f"Outlook Calendar request timed out after {self.timeout:.0f}s") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Outlook Calendar request failed: {e}") from e

        if not response.is_success:
            raise ProviderError(response.status_code, _graph_error_message(response))

        created = response.json()
        return CalendarResult(
            success=True,
            provider=self.provider,
            event_id=created.get("id"),
            link=created.get("webLink"),
            message="Event created successfully!",
        )
