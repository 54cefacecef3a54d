"""
Health Router.
"""

import logging

from fastapi import APIRouter, Depends

from shared.errors import ConfigurationError

from .. import __version__
from ..config import Settings, get_settings
from ..dependencies import get_memory_store
from ..models import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(get_settings)):
    """Health check endpoint.

    ``store`` is ``ok``, ``unreachable`` or ``unconfigured``; the service
    itself reports ``healthy`` unless the store is configured but down.
    """
    try:
        store = get_memory_store()
    except ConfigurationError:
        store_status = "unconfigured"
    else:
        store_status = "ok" if await store.ping() else "unreachable"

    return HealthResponse(
        status="degraded" if store_status == "unreachable" else "healthy",
        service=settings.SERVICE_NAME,
        store=store_status,
        version=__version__,
    )
