"""Counter store interfaces.

The limiter should depend on these abstractions (not a concrete client) so
the storage backend can be substituted, e.g. with an in-memory fake in tests.

TTL sentinels follow Redis semantics:
- ``TTL_NO_KEY`` (-2): the key does not exist.
- ``TTL_NO_EXPIRY`` (-1): the key exists but carries no expiry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

TTL_NO_KEY = -2
TTL_NO_EXPIRY = -1


@dataclass(frozen=True)
class WindowCount:
    """Outcome of an atomic window increment.

    Attributes:
        count: Counter value after the increment.
        ttl: Remaining time-to-live of the counter in whole seconds.
    """

    count: int
    ttl: int


class AbstractCounterStore(ABC):
    """Interface for blocking counter stores."""

    @abstractmethod
    def increment_window(self, key: str, ttl_seconds: int) -> WindowCount:
        """Increment a counter and start its window when it is created.

        The increment and the conditional expiry must happen atomically:
        when the post-increment value is 1, the key receives a TTL of
        ``ttl_seconds``. Later increments never touch the TTL.

        Args:
            key: Counter key.
            ttl_seconds: Window length in whole seconds.

        Returns:
            WindowCount with the post-increment value and remaining TTL.
        """
        raise NotImplementedError

    @abstractmethod
    def get_count(self, key: str) -> int | None:
        """Return the counter value, or None when the key is absent."""
        raise NotImplementedError

    @abstractmethod
    def get_ttl(self, key: str) -> int:
        """Return the remaining TTL in seconds or a TTL_* sentinel."""
        raise NotImplementedError

    def close(self) -> None:
        """Release any resources held by the store."""


class AbstractAsyncCounterStore(ABC):
    """Interface for asyncio counter stores.

    Mirrors AbstractCounterStore; every method is a suspension point.
    """

    @abstractmethod
    async def increment_window(self, key: str, ttl_seconds: int) -> WindowCount:
        raise NotImplementedError

    @abstractmethod
    async def get_count(self, key: str) -> int | None:
        raise NotImplementedError

    @abstractmethod
    async def get_ttl(self, key: str) -> int:
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release any resources held by the store."""
