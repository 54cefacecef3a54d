"""
Calendar Router - event creation and the OAuth flows for Google and Outlook.
"""

import html
import json
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, RedirectResponse

from shared.errors import APIException, ConfigurationError, ValidationError
from shared.logging.safe_logging import token_presence

from ..calendar.base import CalendarConnector, CalendarEvent
from ..calendar.registry import ConnectorRegistry
from ..config import Settings, get_settings
from ..dependencies import get_connector_registry
from ..models import (
    AuthCallbackRequest,
    AuthStatusResponse,
    AuthUrlResponse,
    CalendarCreateRequest,
    CalendarCreateResponse,
    SuccessResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar", tags=["calendar"])


def _callback_page(title: str, message: str, settings: Settings, success: bool, token_json: str | None = None) -> str:
    color = "#28a745" if success else "#dc3545"
    origins = settings.allowed_origins_list
    return_url = html.escape(origins[0] if origins else "/")
    token_block = ""
    if token_json:
        token_block = f"""
    <div style="background: #f8f9fa; border: 1px solid #dee2e6; border-radius: 8px; padding: 20px; margin: 20px 0;">
      <h3 style="margin-top: 0;">Update GOOGLE_TOKEN</h3>
      <p>If this deployment reads its token from the environment, copy the value below into <code>GOOGLE_TOKEN</code>:</p>
      <textarea id="token" readonly style="width: 100%; height: 150px; font-family: monospace; font-size: 12px;">{html.escape(token_json)}</textarea>
      <button onclick="navigator.clipboard.writeText(document.getElementById('token').value); this.textContent='Copied!'">Copy Token</button>
    </div>"""
    return f"""<html>
  <body style="font-family: Arial; padding: 40px; max-width: 800px; margin: 0 auto; text-align: center;">
    <h1 style="color: {color};">{html.escape(title)}</h1>
    <p>{html.escape(message)}</p>{token_block}
    <a href="{return_url}" style="color: #007bff;">Return to App</a>
  </body>
</html>"""


async def _browser_callback(
    connector: CalendarConnector,
    code: str | None,
    state: str | None,
    error: str | None,
    settings: Settings,
    show_token: bool = False,
) -> HTMLResponse:
    """Finish an OAuth redirect and render a result page."""
    name = connector.provider.capitalize()
    if error:
        logger.warning(f"[CALENDAR] {connector.provider} consent denied: {error}")
        page = _callback_page("Authorization Failed", f"{name} returned an error: {error}", settings, success=False)
        return HTMLResponse(page, status_code=400)
    try:
        token = await connector.handle_callback(code, state)
    except APIException as e:
        logger.error(f"[CALENDAR] {connector.provider} callback failed: {e.message}")
        page = _callback_page("Authorization Failed", e.message, settings, success=False)
        return HTMLResponse(page, status_code=e.status_code)

    logger.info(f"[CALENDAR] {connector.provider} callback ok ({token_presence('refresh_token', token.refresh_token)})")
    token_json = json.dumps(token.to_dict()) if show_token and connector.token_store.source != "file" else None
    page = _callback_page(
        "Authorization Successful!",
        f"Your {name} Calendar is now connected. You can close this window.",
        settings,
        success=True,
        token_json=token_json,
    )
    return HTMLResponse(page)


@router.post("/create", response_model=CalendarCreateResponse, response_model_exclude_none=True)
async def create_event(
    request: CalendarCreateRequest,
    registry: ConnectorRegistry = Depends(get_connector_registry),
    settings: Settings = Depends(get_settings),
):
    """Create a calendar event.

    Returns ``{"success": false, "needsAuth": true, "authUrl": ...}`` with
    status 200 when the provider must be (re)authorized.
    """
    connector = registry.get(request.provider)
    event = CalendarEvent.build(
        title=request.title,
        start=request.start,
        end=request.end,
        timezone=settings.CALENDAR_TIMEZONE,
        notes=request.notes,
        reminder_minutes=request.reminder_minutes,
    )
    result = await connector.create_event(event)
    return CalendarCreateResponse(**result.to_response())


@router.get("/auth-status", response_model=AuthStatusResponse, response_model_exclude_none=True)
async def auth_status(
    provider: str | None = Query(None, description='"google" or "outlook"'),
    registry: ConnectorRegistry = Depends(get_connector_registry),
):
    """Report whether a provider is authorized; include a consent URL if not."""
    connector = registry.get(provider)
    if connector.is_authorized():
        return AuthStatusResponse(authorized=True, provider=connector.provider, state=connector.state.value)
    try:
        auth_url = connector.get_auth_url()
    except ConfigurationError as e:
        return AuthStatusResponse(
            authorized=False,
            provider=connector.provider,
            state=connector.state.value,
            error=e.message,
        )
    return AuthStatusResponse(
        authorized=False,
        provider=connector.provider,
        state=connector.state.value,
        auth_url=auth_url,
    )


@router.get("/auth-url", response_model=AuthUrlResponse)
async def auth_url(
    provider: str | None = Query(None, description='"google" or "outlook"'),
    registry: ConnectorRegistry = Depends(get_connector_registry),
):
    """Return the provider consent URL."""
    connector = registry.get(provider)
    return AuthUrlResponse(auth_url=connector.get_auth_url(), provider=connector.provider)


@router.get("/reauthorize")
async def reauthorize(
    provider: str | None = Query(None, description='"google" or "outlook"'),
    registry: ConnectorRegistry = Depends(get_connector_registry),
):
    """Redirect the browser to the provider consent page."""
    connector = registry.get(provider)
    return RedirectResponse(connector.get_auth_url(), status_code=302)


@router.get("/oauth-callback", response_class=HTMLResponse)
async def google_oauth_callback(
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
    registry: ConnectorRegistry = Depends(get_connector_registry),
    settings: Settings = Depends(get_settings),
):
    """Google redirect target."""
    return await _browser_callback(registry.get("google"), code, state, error, settings, show_token=True)


@router.get("/outlook-callback", response_class=HTMLResponse)
async def outlook_oauth_callback(
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
    error_description: str | None = Query(None),
    registry: ConnectorRegistry = Depends(get_connector_registry),
    settings: Settings = Depends(get_settings),
):
    """Microsoft redirect target (delegated mode only)."""
    return await _browser_callback(registry.get("outlook"), code, state, error_description or error, settings)


@router.post("/auth-callback", response_model=SuccessResponse)
async def auth_callback(
    request: AuthCallbackRequest,
    registry: ConnectorRegistry = Depends(get_connector_registry),
):
    """Exchange an authorization code posted by the client."""
    if not request.code:
        raise ValidationError("Missing authorization code")
    connector = registry.for_state(request.state) or registry.get(request.provider)
    await connector.handle_callback(request.code, request.state, allow_missing_state=True)
    return SuccessResponse(message="Authorization successful! You can now create calendar events.")
