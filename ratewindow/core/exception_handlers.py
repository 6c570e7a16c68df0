"""FastAPI exception handlers for limiter outcomes and failures.

Design:
- RateLimitExceededAppError → 429 with Retry-After / X-RateLimit-* headers,
  unless the route dependency turned headers off
- StoreAppError (incl. StoreConnectionAppError) → 503 (store unavailable)
- ValidationAppError → 400
- Any other AppError → 500

The handlers never turn a store failure into an allowed request; the caller
sees a 503 and decides whether to retry.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ratewindow.core.config import settings
from ratewindow.core.errors import (
    AppError,
    RateLimitExceededAppError,
    StoreAppError,
    ValidationAppError,
)

logger = logging.getLogger(__name__)


def _status_for(exc: AppError) -> int:
    if isinstance(exc, RateLimitExceededAppError):
        return 429
    if isinstance(exc, StoreAppError):
        return 503
    if isinstance(exc, ValidationAppError):
        return 400
    return 500


def rate_limit_headers(exc: RateLimitExceededAppError) -> dict[str, str]:
    """Build throttling headers from the error details."""

    details = exc.details or {}
    headers: dict[str, str] = {}
    if exc.retry_after is not None:
        headers["Retry-After"] = str(exc.retry_after)
        headers["X-RateLimit-Reset"] = str(exc.retry_after)
    if "limit" in details:
        headers["X-RateLimit-Limit"] = str(details["limit"])
        headers["X-RateLimit-Remaining"] = "0"
    return headers


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle limiter errors with a consistent JSON format.

    Responses carry ``error.code``, ``error.message`` and, when present,
    ``error.details``. Store error details are withheld from clients.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the mapped status code.
    """
    status_code = _status_for(exc)

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "status_code": status_code,
            "request_path": request.url.path,
        },
    )

    error_content: dict = {"code": exc.code, "message": exc.message}
    headers: dict[str, str] | None = None

    if isinstance(exc, RateLimitExceededAppError):
        if exc.details:
            error_content["details"] = exc.details
        if getattr(request.state, "rate_limit_headers", settings.limiter.include_headers):
            headers = rate_limit_headers(exc)
    elif isinstance(exc, StoreAppError):
        error_content["message"] = "Rate limit store unavailable. Please try again later."
    elif exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the AppError handler with a FastAPI app.

    Example:
        >>> from fastapi import FastAPI
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
    """
    app.exception_handler(AppError)(app_error_handler)
