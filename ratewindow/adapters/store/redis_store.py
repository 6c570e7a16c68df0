"""Redis counter stores (blocking and asyncio).

The window increment runs as a Lua script so Redis executes INCR and the
conditional EXPIRE as one unit. A client-side "GET, INCR, EXPIRE" sequence
would let two concurrent callers read the same stale count and both pass.

Both stores register the script once; redis-py sends EVALSHA and falls back
to EVAL when the server answers NOSCRIPT (e.g. after a restart or
SCRIPT FLUSH).

Security Note:
    Use ``rediss://`` URLs when the store is reached over an untrusted
    network. Store URLs may embed passwords and are never logged.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

import redis
import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from ratewindow.adapters.store.base import (
    AbstractAsyncCounterStore,
    AbstractCounterStore,
    WindowCount,
)
from ratewindow.core.errors import StoreAppError, StoreConnectionAppError

logger = logging.getLogger(__name__)

# KEYS[1] = counter key, ARGV[1] = window length in seconds.
# Returns {count, ttl}. The expiry is attached when this increment created the
# key, or when a counter without expiry is found; an existing TTL is never
# extended.
INCREMENT_WINDOW_SCRIPT = """
local current = redis.call("INCR", KEYS[1])
local ttl = redis.call("TTL", KEYS[1])
if current == 1 or ttl < 0 then
    redis.call("EXPIRE", KEYS[1], ARGV[1])
    ttl = tonumber(ARGV[1])
end
return {current, ttl}
"""


def _connection_options(
    socket_timeout: float | None,
    socket_connect_timeout: float | None,
    extra: dict[str, Any],
) -> dict[str, Any]:
    options: dict[str, Any] = {
        "decode_responses": True,
        "socket_timeout": socket_timeout,
        "socket_connect_timeout": socket_connect_timeout,
    }
    options.update(extra)
    return options


def _invalid_url_error(exc: Exception) -> StoreConnectionAppError:
    return StoreConnectionAppError(
        code="store_invalid_url",
        message=f"Cannot parse store URL: {exc}",
        details={"error_type": type(exc).__name__},
    )


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Map redis-py exceptions onto the limiter's error hierarchy.

    Connection-level failures become StoreConnectionAppError; every other
    RedisError (timeouts, protocol and script errors) becomes StoreAppError.
    The original exception is kept as ``__cause__``.
    """

    try:
        yield
    except RedisConnectionError as exc:
        logger.error(
            "rate_limit.store_error",
            extra={"operation": operation, "error_type": type(exc).__name__},
        )
        raise StoreConnectionAppError(
            code="store_unreachable",
            message=f"Store connection failed during {operation}: {exc}",
            details={"error_type": type(exc).__name__},
        ) from exc
    except RedisError as exc:
        logger.error(
            "rate_limit.store_error",
            extra={"operation": operation, "error_type": type(exc).__name__},
        )
        raise StoreAppError(
            code="store_error",
            message=f"Store operation {operation} failed: {exc}",
            details={"error_type": type(exc).__name__},
        ) from exc


def _parse_window_reply(reply: Any) -> WindowCount:
    try:
        count, ttl = reply
        return WindowCount(count=int(count), ttl=int(ttl))
    except (TypeError, ValueError) as exc:
        raise StoreAppError(
            code="store_bad_reply",
            message=f"Unexpected reply from window script: {reply!r}",
            details={"error_type": type(exc).__name__},
        ) from exc


def _parse_count(raw: Any) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise StoreAppError(
            code="store_bad_reply",
            message=f"Counter holds a non-integer value: {raw!r}",
            details={"error_type": type(exc).__name__},
        ) from exc


class RedisCounterStore(AbstractCounterStore):
    """Blocking counter store backed by redis-py.

    Connections are opened lazily from the client's pool on first use, so
    constructing the store performs no network I/O.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client
        self._increment_script = client.register_script(INCREMENT_WINDOW_SCRIPT)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        socket_timeout: float | None = None,
        socket_connect_timeout: float | None = None,
        **options: Any,
    ) -> "RedisCounterStore":
        """Build a store from a ``redis://``, ``rediss://`` or ``unix://`` URL.

        Raises:
            StoreConnectionAppError: If the URL cannot be parsed.
        """

        try:
            client = redis.Redis.from_url(
                url,
                **_connection_options(socket_timeout, socket_connect_timeout, options),
            )
        except (ValueError, TypeError) as exc:
            raise _invalid_url_error(exc) from exc
        return cls(client)

    def increment_window(self, key: str, ttl_seconds: int) -> WindowCount:
        with _translate_errors("increment_window"):
            reply = self._increment_script(keys=[key], args=[ttl_seconds])
        return _parse_window_reply(reply)

    def get_count(self, key: str) -> int | None:
        with _translate_errors("get_count"):
            raw = self._client.get(key)
        return _parse_count(raw)

    def get_ttl(self, key: str) -> int:
        with _translate_errors("get_ttl"):
            return int(self._client.ttl(key))

    def close(self) -> None:
        self._client.close()


class AsyncRedisCounterStore(AbstractAsyncCounterStore):
    """Asyncio counter store backed by ``redis.asyncio``."""

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client
        self._increment_script = client.register_script(INCREMENT_WINDOW_SCRIPT)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        socket_timeout: float | None = None,
        socket_connect_timeout: float | None = None,
        **options: Any,
    ) -> "AsyncRedisCounterStore":
        """Build a store from a Redis URL without connecting.

        Raises:
            StoreConnectionAppError: If the URL cannot be parsed.
        """

        try:
            client = aioredis.Redis.from_url(
                url,
                **_connection_options(socket_timeout, socket_connect_timeout, options),
            )
        except (ValueError, TypeError) as exc:
            raise _invalid_url_error(exc) from exc
        return cls(client)

    async def increment_window(self, key: str, ttl_seconds: int) -> WindowCount:
        with _translate_errors("increment_window"):
            reply = await self._increment_script(keys=[key], args=[ttl_seconds])
        return _parse_window_reply(reply)

    async def get_count(self, key: str) -> int | None:
        with _translate_errors("get_count"):
            raw = await self._client.get(key)
        return _parse_count(raw)

    async def get_ttl(self, key: str) -> int:
        with _translate_errors("get_ttl"):
            return int(await self._client.ttl(key))

    async def aclose(self) -> None:
        await self._client.aclose()
