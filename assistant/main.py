"""
Personal Assistant Service - Main FastAPI Application.

Routes natural-language requests through the LLM gateway, stores memories
in the hosted memory table, creates Google / Outlook calendar events and
transcribes voice notes.

Every router is mounted twice: at the root and under ``/api`` (the path the
web client and the OAuth redirect URIs use).
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from shared.errors import APIError, APIException, AuthRequiredError, ErrorCode
from shared.logging.safe_logging import token_presence
from shared.logging.structured import configure_logging

from . import __version__
from .config import get_settings
from .dependencies import close_dependencies
from .routers import ai_router, calendar_router, health_router, memory_router, whisper_router

logger = logging.getLogger("assistant-service")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Adds request logging with latency tracking."""

    async def dispatch(self, request: Request, call_next):
        req_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex[:12]
        request.state.request_id = req_id
        start = time.monotonic()
        path = request.url.path
        method = request.method

        try:
            response = await call_next(request)
            duration_ms = int((time.monotonic() - start) * 1000)
            response.headers["X-Request-Id"] = req_id
            logger.info(
                f"[ACCESS] {method} {path} {response.status_code} rid={req_id} {duration_ms}ms",
                extra={"request_id": req_id, "duration_ms": duration_ms},
            )
            return response
        except Exception as exc:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.error(f"[ERROR] {method} {path} rid={req_id} {duration_ms}ms err={exc}")
            raise


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"[{exc.error_code.value}] {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"[{exc.error_code.value}] {request.method} {request.url.path}: {exc.message}")

    body = exc.to_response(_request_id(request))
    if isinstance(exc, AuthRequiredError):
        body.update(success=False, needsAuth=True, authUrl=exc.auth_url, provider=exc.provider)
    return JSONResponse(status_code=exc.status_code, content=body)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"Invalid request: {field} {first.get('msg', '')}".strip() if field else "Invalid request body"
    error = APIError(
        error=message,
        error_code=ErrorCode.VALIDATION_ERROR.value,
        details={"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors]},
    )
    if _request_id(request):
        error.request_id = _request_id(request)
    return JSONResponse(status_code=400, content=error.model_dump(exclude_none=True))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    error = APIError(error="Internal server error", error_code=ErrorCode.INTERNAL_ERROR.value)
    if _request_id(request):
        error.request_id = _request_id(request)
    return JSONResponse(status_code=500, content=error.model_dump(exclude_none=True))


# Lifespan context manager
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown."""
    settings = get_settings()
    logger.info("Starting Personal Assistant Service...")
    logger.info("=" * 60)
    logger.info(f"LLM model: {settings.OPENAI_MODEL} ({token_presence('api_key', settings.OPENAI_API_KEY)})")
    logger.info(f"Memory store: {settings.SUPABASE_URL or 'not configured'}")
    logger.info(f"Google token: {token_presence('GOOGLE_TOKEN', settings.GOOGLE_TOKEN)}")
    logger.info(
        f"Outlook mode: {settings.MICROSOFT_AUTH_MODE} "
        f"({token_presence('MICROSOFT_TOKEN', settings.MICROSOFT_TOKEN)})"
    )
    logger.info(f"Calendar timezone: {settings.CALENDAR_TIMEZONE}")
    logger.info("Personal Assistant Service started successfully")
    logger.info("=" * 60)

    yield

    logger.info("Shutting down Personal Assistant Service...")
    await close_dependencies()


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.SERVICE_NAME, settings.LOG_LEVEL, structured=settings.STRUCTURED_LOGGING)

    app = FastAPI(
        title="Personal Assistant Service",
        description="LLM-backed text, email, calendar and memory assistant",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    for router in (health_router, ai_router, calendar_router, memory_router, whisper_router):
        app.include_router(router)
        app.include_router(router, prefix="/api", include_in_schema=False)

    return app


app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "assistant.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
        reload=False,
    )
