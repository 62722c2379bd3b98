"""Unified API response format and error handling."""

from typing import Any
from datetime import datetime
from uuid import uuid4

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from utils.timezone import now_utc


class APIError(BaseModel):
    """Error details in API response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")


class APIMeta(BaseModel):
    """Metadata included in every API response."""

    timestamp: datetime = Field(..., description="Response timestamp (UTC)")
    request_id: str = Field(..., description="Unique request identifier for tracing")


class APIResponse(BaseModel):
    """
    Unified response format for all API endpoints.

    Every endpoint returns this structure, making client parsing predictable.
    """

    success: bool
    data: Any | None = None
    error: APIError | None = None
    meta: APIMeta


def _meta() -> APIMeta:
    return APIMeta(timestamp=now_utc(), request_id=str(uuid4()))


def success_response(data: Any) -> APIResponse:
    """Create a success response."""
    return APIResponse(success=True, data=data, error=None, meta=_meta())


def error_response(code: str, message: str) -> APIResponse:
    """Create an error response."""
    return APIResponse(
        success=False,
        data=None,
        error=APIError(code=code, message=message),
        meta=_meta(),
    )


class ErrorCodes:
    """
    Standard error codes for consistent error handling.

    The auth codes match AuthError.code on the exceptions in auth/exceptions.py.
    """

    # Authentication
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    AUTH_ERROR = "AUTH_ERROR"

    # One-time passwords
    OTP_NOT_FOUND = "OTP_NOT_FOUND"
    OTP_EXPIRED = "OTP_EXPIRED"
    INVALID_OTP = "INVALID_OTP"
    DELIVERY_FAILED = "DELIVERY_FAILED"

    # Resource Errors
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Infrastructure
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


# Error code -> HTTP status. Anything unlisted is a 400.
STATUS_BY_CODE = {
    ErrorCodes.NOT_FOUND: 404,
    ErrorCodes.OTP_NOT_FOUND: 404,
    ErrorCodes.ALREADY_EXISTS: 409,
    ErrorCodes.NOT_AUTHENTICATED: 401,
    ErrorCodes.INVALID_OTP: 401,
    ErrorCodes.OTP_EXPIRED: 410,
    ErrorCodes.VALIDATION_ERROR: 422,
    ErrorCodes.DELIVERY_FAILED: 502,
    ErrorCodes.SERVICE_UNAVAILABLE: 503,
    ErrorCodes.INTERNAL_ERROR: 500,
}


def error_json(code: str | None, message: str | None) -> JSONResponse:
    """Error envelope with the HTTP status its code maps to."""
    code = code or ErrorCodes.INVALID_REQUEST
    return JSONResponse(
        status_code=STATUS_BY_CODE.get(code, 400),
        content=error_response(code, message or "Request failed").model_dump(mode="json"),
    )
