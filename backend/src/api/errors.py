"""
Exception handlers mapping errors onto the API's JSON error shape.

Every error body is ``{"message": str, ...details}``. Driver-specific errors
are normalized here so their shapes never reach the client.
"""
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.rate_limit_config import RateLimitExceededError
from services.exceptions import ServiceError

logger = logging.getLogger(__name__)

VALIDATION_FAILED = "Validation failed"

# Location prefixes that carry no meaning for the client
_LOCATION_ROOTS = {"body", "query", "path", "header", "cookie"}


def _field_name(loc: tuple[Any, ...]) -> str:
    parts = [str(p) for p in loc if str(p) not in _LOCATION_ROOTS]
    return ".".join(parts) or "body"


def _error_message(error: dict[str, Any]) -> str:
    """Prefer the message of a ValueError raised by a field validator."""
    cause = error.get("ctx", {}).get("error")
    if isinstance(cause, ValueError):
        return str(cause)
    return error.get("msg", "Invalid value")


def format_validation_errors(exc: RequestValidationError) -> list[dict[str, str]]:
    """Flatten pydantic errors into ``[{"field", "message"}]``."""
    return [
        {"field": _field_name(tuple(error.get("loc", ()))), "message": _error_message(error)}
        for error in exc.errors()
    ]


async def service_error_handler(_request: Request, exc: ServiceError) -> JSONResponse:
    """Render a service-layer error."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, **exc.details},
    )


async def rate_limit_exception_handler(
    _request: Request, exc: RateLimitExceededError,
) -> JSONResponse:
    """Handle rate limit exceeded with proper headers."""
    return JSONResponse(
        status_code=429,
        content={"message": exc.message, **exc.details},
        headers={
            "Retry-After": str(exc.result.retry_after),
            "X-RateLimit-Limit": str(exc.result.limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(exc.result.reset),
        },
    )


async def validation_exception_handler(
    _request: Request, exc: RequestValidationError,
) -> JSONResponse:
    """Reject malformed input with 400 and per-field messages."""
    return JSONResponse(
        status_code=400,
        content={"message": VALIDATION_FAILED, "errors": format_validation_errors(exc)},
    )


async def http_exception_handler(
    _request: Request, exc: StarletteHTTPException,
) -> JSONResponse:
    """Render HTTPException detail as ``message``, keeping its headers."""
    detail = exc.detail
    content = detail if isinstance(detail, dict) else {"message": str(detail)}
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


async def database_error_handler(request: Request, exc: DBAPIError) -> JSONResponse:
    """A driver or connection failure the request could not recover from."""
    logger.error(
        "database_error",
        exc_info=exc,
        extra={"path": request.url.path, "method": request.method},
    )
    return JSONResponse(status_code=500, content={"message": "Database unavailable"})


def register_exception_handlers(app: FastAPI) -> None:
    """Install every handler on the app."""
    app.add_exception_handler(RateLimitExceededError, rate_limit_exception_handler)
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(DBAPIError, database_error_handler)
