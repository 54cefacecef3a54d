"""
Shared Errors Module - Standardized API Error Responses.

Every failure the assistant service can surface is an ``APIException``
subclass carrying a machine-readable error code and an HTTP status. The
application-level exception handlers render them as::

    {"error": "...", "error_code": "...", "request_id": "..."}

so clients never need to parse free-form error bodies.
"""

import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Standardized error codes for API responses.

    Error codes are prefixed by category:
    - VALIDATION_*: Input validation errors
    - AUTH*: Calendar OAuth state
    - RESOURCE_*: Resource-related errors
    - SERVICE_*: Upstream provider errors
    """

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Authentication errors
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"

    # Resource errors
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"

    # Service errors
    SERVICE_TIMEOUT = "SERVICE_TIMEOUT"
    SERVICE_UPSTREAM_ERROR = "SERVICE_UPSTREAM_ERROR"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    STORAGE_ERROR = "STORAGE_ERROR"

    # Internal errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


class APIError(BaseModel):
    """Standardized API error response model.

    Attributes:
        error: Human-readable error description.
        error_code: Machine-readable error code from ErrorCode enum.
        details: Optional additional context (field errors, etc.).
        request_id: Unique identifier for request tracing.
    """

    error: str = Field(..., description="Human-readable error message")
    error_code: str = Field(
        ...,
        description="Machine-readable error code",
        examples=["VALIDATION_ERROR", "SERVICE_TIMEOUT"],
    )
    details: dict[str, Any] | None = Field(default=None, description="Additional error context")
    request_id: str = Field(
        default_factory=lambda: f"req_{uuid.uuid4().hex[:12]}",
        description="Unique request identifier for tracing",
    )


class APIException(Exception):
    """Base exception for structured API errors.

    Attributes:
        error_code: The ErrorCode value for this failure.
        message: Human-readable message returned as ``error``.
        details: Optional structured context.
        status_code: HTTP status code for the response.
    """

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
    ):
        self.message = message
        self.details = details
        self.status_code = status_code or get_status_code(self.error_code.value)
        super().__init__(message)

    def to_error(self, request_id: str | None = None) -> APIError:
        error = APIError(error=self.message, error_code=self.error_code.value, details=self.details)
        if request_id:
            error.request_id = request_id
        return error

    def to_response(self, request_id: str | None = None) -> dict[str, Any]:
        """Convert to dictionary for JSONResponse."""
        return self.to_error(request_id).model_dump(exclude_none=True)


class ValidationError(APIException):
    """Missing or malformed client input."""

    error_code = ErrorCode.VALIDATION_ERROR


class NotFoundError(APIException):
    """Requested resource does not exist."""

    error_code = ErrorCode.RESOURCE_NOT_FOUND


class UpstreamError(APIException):
    """LLM, transcription or calendar provider returned a failure."""

    error_code = ErrorCode.SERVICE_UPSTREAM_ERROR


class UpstreamTimeoutError(UpstreamError):
    """An upstream call exceeded its deadline."""

    error_code = ErrorCode.SERVICE_TIMEOUT


class MalformedResponseError(APIException):
    """The LLM returned output that could not be parsed or validated.

    ``raw`` keeps the offending text for diagnosis; it is logged, never
    returned to the client.
    """

    error_code = ErrorCode.MALFORMED_RESPONSE

    def __init__(self, message: str, raw: str = "", details: dict[str, Any] | None = None):
        self.raw = raw
        super().__init__(message, details=details)


class StorageError(APIException):
    """Hosted memory store unreachable or rejected the request."""

    error_code = ErrorCode.STORAGE_ERROR


class ConfigurationError(APIException):
    """Required configuration is missing or inconsistent."""

    error_code = ErrorCode.CONFIGURATION_ERROR


class AuthRequiredError(APIException):
    """A calendar connector needs the user to (re)authorize.

    This is an expected, actionable state: routers translate it into a 200
    response carrying ``needsAuth: true`` and the provider consent URL.
    """

    error_code = ErrorCode.AUTHENTICATION_FAILED

    def __init__(self, message: str, provider: str = "", auth_url: str | None = None):
        self.provider = provider
        self.auth_url = auth_url
        super().__init__(message, details={"provider": provider} if provider else None)


# HTTP status code mappings
ERROR_STATUS_CODES: dict[str, int] = {
    ErrorCode.VALIDATION_ERROR.value: 400,
    ErrorCode.AUTHENTICATION_FAILED.value: 200,
    ErrorCode.RESOURCE_NOT_FOUND.value: 404,
    ErrorCode.SERVICE_UPSTREAM_ERROR.value: 502,
    ErrorCode.SERVICE_TIMEOUT.value: 504,
    ErrorCode.MALFORMED_RESPONSE.value: 500,
    ErrorCode.STORAGE_ERROR.value: 500,
    ErrorCode.INTERNAL_ERROR.value: 500,
    ErrorCode.CONFIGURATION_ERROR.value: 500,
}


def get_status_code(error_code: str) -> int:
    """Get HTTP status code for error code.

    Args:
        error_code: Error code string.

    Returns:
        int: Appropriate HTTP status code.
    """
    return ERROR_STATUS_CODES.get(error_code, 500)
