"""Fixed-window rate limiter over a shared counter store.

Every identifier gets one counter key, ``<prefix>:<identifier>``. The first
request of a window creates the key and anchors the window by attaching a
TTL; later requests only increment it, and the store's expiry ends the
window. The limiter holds no state of its own, so any number of threads,
processes or hosts may share a store and prefix.

Trade-off: the counter is incremented unconditionally and compared
afterwards. Rejected calls therefore still cost a store write and keep the
counter climbing above the ceiling, but the decision depends only on the
atomically obtained post-increment value: of N+k concurrent calls exactly N
succeed, in the order the store serialized them.

Errors are surfaced, never masked: store failures raise StoreAppError (or
StoreConnectionAppError) and the limiter neither fails open nor closed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ratewindow.adapters.store.base import (
    TTL_NO_EXPIRY,
    TTL_NO_KEY,
    AbstractAsyncCounterStore,
    AbstractCounterStore,
    WindowCount,
)
from ratewindow.adapters.store.factory import (
    create_async_counter_store,
    create_counter_store,
    store_options,
)
from ratewindow.core.config import Settings, settings as default_settings
from ratewindow.core.errors import RateLimitExceededAppError, ValidationAppError
from ratewindow.core.logging import hash_identifier
from ratewindow.utils.durations import DurationLike, window_to_ttl_seconds

logger = logging.getLogger(__name__)

# Returned by time_to_reset() when the identifier has no active window.
NO_ACTIVE_WINDOW = -1


@dataclass(frozen=True)
class RateLimitResult:
    """Decision for a single request.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        count: Requests seen in the current window, including this one.
        remaining: Requests left in the current window (0 when blocked).
        reset_after_seconds: Seconds until the current window resets.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    limit: int
    count: int
    remaining: int
    reset_after_seconds: int
    retry_after_seconds: int | None


class _WindowedLimiterBase:
    """Validation, key derivation and result building shared by both limiters."""

    def __init__(self, key_prefix: str, max_requests: int, window: DurationLike) -> None:
        if not isinstance(key_prefix, str) or not key_prefix:
            raise ValidationAppError(
                code="invalid_key_prefix",
                message="key_prefix must be a non-empty string",
            )
        if isinstance(max_requests, bool) or not isinstance(max_requests, int) or max_requests < 1:
            raise ValidationAppError(
                code="invalid_max_requests",
                message=f"max_requests must be a positive integer, got {max_requests!r}",
            )

        self._key_prefix = key_prefix
        self._max_requests = max_requests
        self._window_seconds = window_to_ttl_seconds(window)

    @property
    def key_prefix(self) -> str:
        return self._key_prefix

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_seconds(self) -> int:
        """Window length as the whole-second TTL given to counter keys."""
        return self._window_seconds

    def key_for(self, identifier: str) -> str:
        """Return the counter key for ``identifier``."""
        return f"{self._key_prefix}:{identifier}"

    def _build_result(self, window_count: WindowCount) -> RateLimitResult:
        allowed = window_count.count <= self._max_requests
        reset_after = window_count.ttl if window_count.ttl >= 0 else self._window_seconds
        return RateLimitResult(
            allowed=allowed,
            limit=self._max_requests,
            count=window_count.count,
            remaining=max(0, self._max_requests - window_count.count),
            reset_after_seconds=reset_after,
            retry_after_seconds=None if allowed else reset_after,
        )

    def _log_result(self, identifier: str, result: RateLimitResult) -> None:
        fields = {
            "key_prefix": self._key_prefix,
            "key_hash": hash_identifier(identifier),
            "limit": result.limit,
            "count": result.count,
            "remaining": result.remaining,
            "window_s": self._window_seconds,
        }
        if result.allowed:
            logger.debug("rate_limit.allowed", extra=fields)
        else:
            logger.warning(
                "rate_limit.exceeded",
                extra={**fields, "retry_after_s": result.retry_after_seconds},
            )

    def ensure_allowed(self, result: RateLimitResult) -> None:
        """Raise RateLimitExceededAppError when ``result`` was rejected."""
        if result.allowed:
            return
        raise RateLimitExceededAppError(
            code="rate_limit_exceeded",
            message="Rate limit exceeded",
            details={
                "limit": result.limit,
                "count": result.count,
                "window_seconds": self._window_seconds,
                "retry_after": result.reset_after_seconds,
            },
        )

    def _remaining_from(self, count: int | None) -> int:
        return max(0, self._max_requests - (count or 0))

    def _reset_from(self, identifier: str, ttl: int) -> int:
        if ttl == TTL_NO_KEY:
            return NO_ACTIVE_WINDOW
        if ttl == TTL_NO_EXPIRY:
            # Only a foreign writer can leave a counter without expiry; the
            # next check() attaches one.
            logger.warning(
                "rate_limit.counter_without_ttl",
                extra={
                    "key_prefix": self._key_prefix,
                    "key_hash": hash_identifier(identifier),
                },
            )
            return NO_ACTIVE_WINDOW
        return ttl

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"{type(self).__name__}(key_prefix={self._key_prefix!r}, "
            f"max_requests={self._max_requests}, window_seconds={self._window_seconds})"
        )


class WindowedLimiter(_WindowedLimiterBase):
    """Blocking fixed-window limiter.

    Each operation performs exactly one round-trip to the store.

    Example:
        >>> limiter = WindowedLimiter("redis://localhost:6379/0", "api", 100, "1m")
        >>> limiter.check("user-42")  # raises RateLimitExceededAppError when over
    """

    def __init__(
        self,
        store: str | AbstractCounterStore,
        key_prefix: str,
        max_requests: int,
        window: DurationLike,
        **store_kwargs,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Store URL, or an already built counter store.
            key_prefix: Namespace for this limiter's counter keys.
            max_requests: Requests allowed per window (>= 1).
            window: Window duration; must be at least one second.
            **store_kwargs: Client options used when ``store`` is a URL.

        Raises:
            StoreConnectionAppError: If the store URL is malformed.
            ValidationAppError: If prefix, ceiling or window are invalid.
        """

        super().__init__(key_prefix, max_requests, window)
        if isinstance(store, AbstractCounterStore):
            self._store = store
        else:
            self._store = create_counter_store(store, **store_kwargs)

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "WindowedLimiter":
        """Build a limiter from LIMITER_* and STORE_* settings."""

        cfg = config or default_settings
        return cls(
            cfg.store.url,
            cfg.limiter.key_prefix,
            cfg.limiter.max_requests,
            cfg.limiter.window,
            **store_options(cfg.store),
        )

    @property
    def store(self) -> AbstractCounterStore:
        return self._store

    def consume(self, identifier: str) -> RateLimitResult:
        """Count one request for ``identifier`` and report the decision.

        The counter is incremented even when the request is rejected.

        Raises:
            StoreAppError: If the store operation fails.
        """

        window_count = self._store.increment_window(self.key_for(identifier), self._window_seconds)
        result = self._build_result(window_count)
        self._log_result(identifier, result)
        return result

    def check(self, identifier: str) -> None:
        """Count one request for ``identifier``; raise when over the ceiling.

        Raises:
            RateLimitExceededAppError: If the window budget is exhausted.
            StoreAppError: If the store operation fails.
        """

        self.ensure_allowed(self.consume(identifier))

    def remaining(self, identifier: str) -> int:
        """Return requests left in the current window, floored at 0.

        Advisory only: a concurrent check() may race with the read.
        """

        return self._remaining_from(self._store.get_count(self.key_for(identifier)))

    def time_to_reset(self, identifier: str) -> int:
        """Return whole seconds until the window resets, or -1 with no window."""

        return self._reset_from(identifier, self._store.get_ttl(self.key_for(identifier)))

    def close(self) -> None:
        self._store.close()


class AsyncWindowedLimiter(_WindowedLimiterBase):
    """Asyncio fixed-window limiter; same contract as WindowedLimiter."""

    def __init__(
        self,
        store: str | AbstractAsyncCounterStore,
        key_prefix: str,
        max_requests: int,
        window: DurationLike,
        **store_kwargs,
    ) -> None:
        super().__init__(key_prefix, max_requests, window)
        if isinstance(store, AbstractAsyncCounterStore):
            self._store = store
        else:
            self._store = create_async_counter_store(store, **store_kwargs)

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "AsyncWindowedLimiter":
        cfg = config or default_settings
        return cls(
            cfg.store.url,
            cfg.limiter.key_prefix,
            cfg.limiter.max_requests,
            cfg.limiter.window,
            **store_options(cfg.store),
        )

    @property
    def store(self) -> AbstractAsyncCounterStore:
        return self._store

    async def consume(self, identifier: str) -> RateLimitResult:
        window_count = await self._store.increment_window(
            self.key_for(identifier), self._window_seconds
        )
        result = self._build_result(window_count)
        self._log_result(identifier, result)
        return result

    async def check(self, identifier: str) -> None:
        self.ensure_allowed(await self.consume(identifier))

    async def remaining(self, identifier: str) -> int:
        return self._remaining_from(await self._store.get_count(self.key_for(identifier)))

    async def time_to_reset(self, identifier: str) -> int:
        return self._reset_from(identifier, await self._store.get_ttl(self.key_for(identifier)))

    async def aclose(self) -> None:
        await self._store.aclose()
