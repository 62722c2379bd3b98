"""Global exception handlers mapping auth and request errors onto the envelope."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from api.base import error_json, ErrorCodes
from auth.exceptions import AuthError

logger = logging.getLogger(__name__)


def _describe(errors: list[dict]) -> str:
    parts = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        if exc.code == ErrorCodes.SERVICE_UNAVAILABLE:
            logger.error(f"Auth backend unavailable on {request.url.path}: {exc}")
            return error_json(exc.code, "Authentication service unavailable")
        return error_json(exc.code, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return error_json(ErrorCodes.VALIDATION_ERROR, _describe(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return error_json(ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
