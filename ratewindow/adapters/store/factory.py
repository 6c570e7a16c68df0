"""Factory functions for creating counter stores from a connection URL."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlsplit

from ratewindow.adapters.store.base import AbstractAsyncCounterStore, AbstractCounterStore
from ratewindow.adapters.store.in_memory import AsyncInMemoryCounterStore, InMemoryCounterStore
from ratewindow.adapters.store.redis_store import AsyncRedisCounterStore, RedisCounterStore
from ratewindow.core.config import StoreSettings
from ratewindow.core.errors import StoreConnectionAppError

logger = logging.getLogger(__name__)

REDIS_SCHEMES = {"redis", "rediss", "unix"}
MEMORY_SCHEMES = {"memory"}


def _scheme_of(url: str) -> str:
    """Return the lower-cased URL scheme.

    Raises:
        StoreConnectionAppError: If the URL is empty or has an unsupported scheme.
    """

    if not isinstance(url, str) or not url.strip():
        raise StoreConnectionAppError(
            code="store_invalid_url",
            message="Store URL must be a non-empty string",
        )

    try:
        scheme = urlsplit(url.strip()).scheme.lower()
    except ValueError as exc:
        raise StoreConnectionAppError(
            code="store_invalid_url",
            message=f"Cannot parse store URL: {exc}",
        ) from exc
    if scheme not in REDIS_SCHEMES | MEMORY_SCHEMES:
        supported = ", ".join(sorted(f"{s}://" for s in REDIS_SCHEMES | MEMORY_SCHEMES))
        raise StoreConnectionAppError(
            code="store_unsupported_scheme",
            message=f"Unsupported store URL scheme: '{scheme}'. Supported: {supported}",
            details={"hint": "Use e.g. redis://localhost:6379/0"},
        )
    return scheme


def create_counter_store(url: str, **options: Any) -> AbstractCounterStore:
    """Instantiate a blocking counter store for ``url``.

    Args:
        url: ``redis://``, ``rediss://``, ``unix://`` or ``memory://`` URL.
        **options: Extra keyword arguments for the Redis client
            (e.g. ``socket_timeout``). Ignored by the in-memory store.

    Returns:
        AbstractCounterStore: Configured store; no connection is opened yet.

    Raises:
        StoreConnectionAppError: If the URL is malformed or unsupported.
    """

    scheme = _scheme_of(url)
    logger.debug("store.created", extra={"scheme": scheme, "mode": "sync"})
    if scheme in MEMORY_SCHEMES:
        return InMemoryCounterStore()
    return RedisCounterStore.from_url(url, **options)


def create_async_counter_store(url: str, **options: Any) -> AbstractAsyncCounterStore:
    """Instantiate an asyncio counter store for ``url``.

    See create_counter_store() for arguments and errors.
    """

    scheme = _scheme_of(url)
    logger.debug("store.created", extra={"scheme": scheme, "mode": "async"})
    if scheme in MEMORY_SCHEMES:
        return AsyncInMemoryCounterStore()
    return AsyncRedisCounterStore.from_url(url, **options)


def store_options(store_settings: StoreSettings) -> dict[str, Any]:
    """Extract client options from StoreSettings."""

    return {
        "socket_timeout": store_settings.socket_timeout,
        "socket_connect_timeout": store_settings.socket_connect_timeout,
    }
