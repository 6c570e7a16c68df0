"""Rate limiting dependency for FastAPI routes.

This module wires a limiter into the HTTP layer.

Strategy:
- One fixed-window budget per API key.
- If the API key is missing, fall back to the client IP.
- Allowed responses carry X-RateLimit-* headers; rejected requests raise
  RateLimitExceededAppError, which setup_exception_handlers() maps to 429.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.concurrency import run_in_threadpool

from ratewindow.core.config import settings
from ratewindow.core.logging import hash_identifier
from ratewindow.services.limiter import AsyncWindowedLimiter, RateLimitResult, WindowedLimiter

KeyFunc = Callable[[Request], str]


def client_identifier(request: Request) -> str:
    """Build the limiter identifier for the current request.

    API keys are hashed so they never reach the store in clear text.

    Args:
        request: FastAPI request.

    Returns:
        str: ``api_key:<hash>`` or ``ip:<host>``.
    """

    api_key = request.headers.get("X-API-Key")
    if api_key:
        return f"api_key:{hash_identifier(api_key)}"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


def _apply_headers(response: Response, result: RateLimitResult) -> None:
    response.headers["X-RateLimit-Limit"] = str(result.limit)
    response.headers["X-RateLimit-Remaining"] = str(result.remaining)
    response.headers["X-RateLimit-Reset"] = str(result.reset_after_seconds)


def rate_limit(
    limiter: WindowedLimiter | AsyncWindowedLimiter,
    *,
    key_func: KeyFunc = client_identifier,
    include_headers: bool | None = None,
) -> Callable[[Request, Response], Awaitable[RateLimitResult]]:
    """Return a FastAPI dependency that counts each request against ``limiter``.

    Blocking limiters run in the threadpool so the event loop is not held
    during the store round-trip.

    Args:
        limiter: Limiter enforcing the budget.
        key_func: Maps a request to the limiter identifier.
        include_headers: Override LIMITER_INCLUDE_HEADERS.

    Example:
        >>> limiter = AsyncWindowedLimiter("redis://localhost", "api", 10, "1m")
        >>> @app.get("/items", dependencies=[Depends(rate_limit(limiter))])
        ... async def items(): ...
    """

    async def _dependency(request: Request, response: Response) -> RateLimitResult:
        identifier = key_func(request)
        if isinstance(limiter, AsyncWindowedLimiter):
            result = await limiter.consume(identifier)
        else:
            result = await run_in_threadpool(limiter.consume, identifier)

        with_headers = settings.limiter.include_headers if include_headers is None else include_headers
        # Read by app_error_handler when ensure_allowed() raises.
        request.state.rate_limit_headers = with_headers
        if with_headers and result.allowed:
            _apply_headers(response, result)

        limiter.ensure_allowed(result)
        return result

    return _dependency
