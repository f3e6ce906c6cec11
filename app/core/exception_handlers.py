"""Global exception handlers for consistent error responses.

Design:
- RateLimitAppError → 429 with a flat body carrying ``error`` and ``retryAfterMs``
- Other AppError subclasses → appropriate HTTP status (400, 401, 503)
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for distributed tracing
"""

from __future__ import annotations

import logging
import math

from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.errors import AppError, AuthenticationAppError, RateLimitAppError, StorageAppError
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)


def _status_for(exc: AppError) -> int:
    if isinstance(exc, AuthenticationAppError):
        return 401
    if isinstance(exc, StorageAppError):
        return 503
    return 400


def _include_headers(request: Request) -> bool:
    app_settings = getattr(request.app.state, "settings", None)
    if app_settings is None:
        return True
    return app_settings.app.rate_limit_include_headers


async def rate_limit_error_handler(request: Request, exc: RateLimitAppError) -> JSONResponse:
    """Translate a limiter denial into HTTP 429.

    Body: ``{"error", "code", "retryAfterMs", "request_id"}`` plus ``details``
    when present. ``Retry-After`` (whole seconds, rounded up) and
    ``X-RateLimit-*`` headers are sent unless disabled in settings.
    """
    content: dict = {
        "error": exc.message,
        "code": exc.code,
        "retryAfterMs": exc.retry_after_ms,
        "request_id": get_request_id(),
    }
    if exc.details:
        content["details"] = exc.details

    headers: dict[str, str] = {}
    if _include_headers(request):
        headers["Retry-After"] = str(math.ceil(exc.retry_after_ms / 1000))
        if exc.limit is not None:
            headers["X-RateLimit-Limit"] = str(exc.limit)
            headers["X-RateLimit-Remaining"] = "0"

    return JSONResponse(status_code=429, content=content, headers=headers or None)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Routes domain errors to appropriate HTTP status codes:
    - any other AppError → 400 Bad Request (client fault)
    - AuthenticationAppError → 401 Unauthorized
    - StorageAppError → 503 Service Unavailable

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    if isinstance(exc, RateLimitAppError):
        return await rate_limit_error_handler(request, exc)

    status_code = _status_for(exc)

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors.

    Logs the failure for debugging while returning a generic message; no
    stack traces or exception text reach the client.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(RateLimitAppError)(rate_limit_error_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
