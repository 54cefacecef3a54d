"""
Calendar connector interface.

Each provider implements ``CalendarConnector``. The base class owns the
authorization state machine, OAuth ``state`` bookkeeping, token refresh
and the translation of provider failures into either a ``needsAuth``
result or an ``UpstreamError``::

    UNAUTHORIZED --get_auth_url()--> AUTHORIZING --handle_callback()--> AUTHORIZED
         ^                                                                  |
         +------------------- refresh failed / token revoked ---------------+
"""

import logging
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from shared.errors import (
    APIException,
    AuthRequiredError,
    ConfigurationError,
    UpstreamError,
    ValidationError,
)

from .tokens import OAuthToken, TokenStore

logger = logging.getLogger(__name__)

WALL_CLOCK_FORMAT = "%Y-%m-%dT%H:%M:%S"
DEFAULT_EVENT_DURATION = timedelta(hours=1)

# Consent links older than this are refused on callback
OAUTH_STATE_TTL_SECONDS = 600
MAX_PENDING_STATES = 32


class ConnectorState(str, Enum):
    UNAUTHORIZED = "unauthorized"
    AUTHORIZING = "authorizing"
    AUTHORIZED = "authorized"


class ProviderError(Exception):
    """Failure reported by a calendar provider API."""

    def __init__(self, status: int | None, message: str):
        self.status = status
        self.message = message
        super().__init__(message)

    @property
    def is_auth_failure(self) -> bool:
        return self.status == 401 or "token" in self.message.lower()


def get_zone(timezone: str) -> ZoneInfo:
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Unknown timezone: {timezone}", details={"variable": "CALENDAR_TIMEZONE"}) from e


def to_wall_clock(value: str | datetime, tz: ZoneInfo, field: str = "datetime") -> datetime:
    """Parse an ISO-8601 value into a naive local datetime in ``tz``.

    Naive input is taken as already local. Aware input (including a trailing
    ``Z``) is converted to ``tz`` and the offset dropped.

    Raises:
        ValidationError: If the value cannot be parsed.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip())
        except ValueError as e:
            raise ValidationError(f"Invalid {field}: {value!r}") from e
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(tz).replace(tzinfo=None)
    return parsed.replace(microsecond=0)


def format_wall_clock(value: datetime) -> str:
    return value.strftime(WALL_CLOCK_FORMAT)


@dataclass(frozen=True)
class CalendarEvent:
    """Event to create; ``start``/``end`` are naive wall-clock times in ``timezone``."""

    title: str
    start: datetime
    end: datetime
    timezone: str
    notes: str | None = None
    reminder_minutes: int | None = None

    @classmethod
    def build(
        cls,
        title: str | None,
        start: str | datetime | None,
        end: str | datetime | None,
        timezone: str,
        notes: str | None = None,
        reminder_minutes: int | None = None,
    ) -> "CalendarEvent":
        """Validate request fields into an event.

        Raises:
            ValidationError: On missing title/start, unparseable times,
                ``end <= start`` or a negative reminder.
        """
        if not title or not title.strip():
            raise ValidationError("Missing required field: title")
        if not start:
            raise ValidationError("Missing required field: start")

        tz = get_zone(timezone)
        start_at = to_wall_clock(start, tz, "start")
        end_at = to_wall_clock(end, tz, "end") if end else start_at + DEFAULT_EVENT_DURATION
        if end_at <= start_at:
            raise ValidationError("Event end must be after start")
        if reminder_minutes is not None and reminder_minutes < 0:
            raise ValidationError("reminderMinutes must not be negative")

        return cls(
            title=title.strip(),
            start=start_at,
            end=end_at,
            timezone=timezone,
            notes=notes or None,
            reminder_minutes=reminder_minutes,
        )


@dataclass
class CalendarResult:
    """Outcome of ``create_event``."""

    success: bool
    provider: str
    event_id: str | None = None
    link: str | None = None
    needs_auth: bool = False
    auth_url: str | None = None
    message: str | None = None

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": self.success, "provider": self.provider}
        if self.success:
            body.update(eventId=self.event_id, link=self.link)
        if self.needs_auth:
            body.update(needsAuth=True, authUrl=self.auth_url)
        if self.message:
            body["message"] = self.message
        return body


class CalendarConnector(ABC):
    """Provider-neutral calendar connector."""

    provider: str = ""

    def __init__(self, token_store: TokenStore, timezone: str, timeout: float):
        self.token_store = token_store
        self.timezone = timezone
        self.timeout = timeout
        # state -> expiry (monotonic seconds), oldest first
        self._pending_states: dict[str, float] = {}

    # ------------------------------------------------------------------
    # Authorization state
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectorState:
        if self.is_authorized():
            return ConnectorState.AUTHORIZED
        self._expire_states()
        if self._pending_states:
            return ConnectorState.AUTHORIZING
        return ConnectorState.UNAUTHORIZED

    def is_authorized(self) -> bool:
        """True if a usable (or refreshable) token is stored."""
        try:
            token = self.token_store.get()
        except ConfigurationError as e:
            logger.error(f"[CALENDAR] {self.provider}: {e.message}")
            return False
        return token is not None and (not token.is_expired or bool(token.refresh_token))

    def get_auth_url(self) -> str:
        """Build the provider consent URL and record a pending ``state``."""
        state = f"{self.provider}:{secrets.token_urlsafe(24)}"
        url = self._build_auth_url(state)
        self._expire_states()
        while len(self._pending_states) >= MAX_PENDING_STATES:
            self._pending_states.pop(next(iter(self._pending_states)))
        self._pending_states[state] = time.monotonic() + OAUTH_STATE_TTL_SECONDS
        return url

    def _expire_states(self) -> None:
        now = time.monotonic()
        expired = [s for s, expires_at in self._pending_states.items() if expires_at <= now]
        for s in expired:
            self._pending_states.pop(s, None)

    def owns_state(self, state: str | None) -> bool:
        self._expire_states()
        return bool(state) and state in self._pending_states

    async def handle_callback(
        self,
        code: str | None,
        state: str | None = None,
        allow_missing_state: bool = False,
    ) -> OAuthToken:
        """Exchange an authorization code and persist the resulting token.

        ``state`` must be one this connector issued within the last
        ``OAUTH_STATE_TTL_SECONDS``. A missing ``state`` is only tolerated
        when ``allow_missing_state`` is set (client-posted bare codes).

        Raises:
            ValidationError: On a missing code or an unknown or expired ``state``.
        """
        if not code:
            raise ValidationError("No authorization code provided")
        if state is None and allow_missing_state:
            logger.warning(f"[CALENDAR] {self.provider} callback without state parameter")
        elif not self.owns_state(state):
            raise ValidationError("Invalid or expired OAuth state")
        else:
            self._pending_states.pop(state, None)

        try:
            token = await self._exchange_code(code)
        except ProviderError as e:
            logger.error(f"[CALENDAR] {self.provider} code exchange failed: {e.message}")
            raise UpstreamError(
                f"{self.provider} authorization failed: {e.message}",
                details={"provider": self.provider, "status": e.status},
            ) from e
        self.token_store.persist(token)
        logger.info(f"[CALENDAR] {self.provider} authorized")
        return token

    async def get_valid_token(self) -> OAuthToken:
        """Return an unexpired token, refreshing it if needed.

        Raises:
            AuthRequiredError: If no token is stored or refresh fails.
        """
        try:
            token = self.token_store.get()
        except ConfigurationError as e:
            raise AuthRequiredError(e.message, provider=self.provider) from e
        if token is None:
            raise AuthRequiredError(f"{self.provider} calendar is not authorized", provider=self.provider)
        if not token.is_expired:
            return token
        if not token.refresh_token:
            raise AuthRequiredError(
                f"{self.provider} token expired and no refresh token is stored",
                provider=self.provider,
            )

        try:
            return await self.token_store.refresh(self._refresh)
        except ProviderError as e:
            # Keep the stored refresh token; the user must re-consent
            logger.error(f"[CALENDAR] {self.provider} token refresh failed: {e.message}")
            raise AuthRequiredError(
                f"{self.provider} token refresh failed: {e.message}",
                provider=self.provider,
            ) from e

    async def _refresh(self, current: OAuthToken | None) -> OAuthToken:
        if current is None or not current.refresh_token:
            raise ProviderError(401, "no refresh token available")
        logger.info(f"[CALENDAR] Refreshing {self.provider} token")
        return await self._refresh_token(current)

    # ------------------------------------------------------------------
    # Event creation
    # ------------------------------------------------------------------

    async def create_event(self, event: CalendarEvent) -> CalendarResult:
        """Create ``event`` on the user's primary calendar.

        Returns a ``needs_auth`` result instead of raising when the user must
        (re)authorize.

        Raises:
            UpstreamError: On any other provider failure.
            UpstreamTimeoutError: If the provider did not answer in time.
        """
        try:
            token = await self.get_valid_token()
            result = await self._insert_event(token, event)
        except (AuthRequiredError, ConfigurationError) as e:
            return self._needs_auth(e.message)
        except ProviderError as e:
            if e.is_auth_failure:
                logger.warning(f"[CALENDAR] {self.provider} rejected token: {e.message}")
                return self._on_auth_failure(e)
            logger.error(f"[CALENDAR] {self.provider} event creation failed ({e.status}): {e.message}")
            raise UpstreamError(
                f"Failed to create {self.provider} calendar event: {e.message}",
                details={"provider": self.provider, "status": e.status},
            ) from e

        logger.info(f"[CALENDAR] Created {self.provider} event {result.event_id}", extra={"provider": self.provider})
        return result

    def _on_auth_failure(self, error: ProviderError) -> CalendarResult:
        return self._needs_auth(f"{self.provider} authorization expired or revoked: {error.message}")

    def _needs_auth(self, message: str) -> CalendarResult:
        try:
            auth_url = self.get_auth_url()
        except APIException as e:
            logger.error(f"[CALENDAR] Cannot build {self.provider} auth URL: {e.message}")
            auth_url = None
            message = f"{message}. {e.message}"
        return CalendarResult(
            success=False,
            provider=self.provider,
            needs_auth=True,
            auth_url=auth_url,
            message=message,
        )

    # ------------------------------------------------------------------
    # Provider hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _build_auth_url(self, state: str) -> str:
        """Return the consent URL embedding ``state``."""

    @abstractmethod
    async def _exchange_code(self, code: str) -> OAuthToken:
        """Exchange an authorization code for a token."""

    @abstractmethod
    async def _refresh_token(self, token: OAuthToken) -> OAuthToken:
        """Refresh ``token``; raise ProviderError on rejection."""

    @abstractmethod
    def build_event_body(self, event: CalendarEvent) -> dict[str, Any]:
        """Provider request body for ``event``."""

    @abstractmethod
    async def _insert_event(self, token: OAuthToken, event: CalendarEvent) -> CalendarResult:
        """Create the event; raise ProviderError on a provider failure."""
