"""In-memory counter store.

Notes:
- Per-process only: running multiple workers gives each its own counters.
- Thread-safe: uses a lock around shared state, so the increment and the
  conditional expiry are atomic within the process.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from ratewindow.adapters.store.base import (
    TTL_NO_EXPIRY,
    TTL_NO_KEY,
    AbstractAsyncCounterStore,
    AbstractCounterStore,
    WindowCount,
)


@dataclass
class _Counter:
    count: int
    expires_at: float | None


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store keeping expiring integers in a dict.

    Expiry is evaluated lazily against the injected clock, which lets tests
    move time forward without sleeping.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the store.

        Args:
            clock: Time source returning seconds; only differences matter.
        """

        self._clock = clock
        self._lock = threading.RLock()
        self._counters: dict[str, _Counter] = {}

    def _live_counter(self, key: str, now: float) -> _Counter | None:
        counter = self._counters.get(key)
        if counter is None:
            return None
        if counter.expires_at is not None and counter.expires_at <= now:
            del self._counters[key]
            return None
        return counter

    @staticmethod
    def _ttl_of(counter: _Counter | None, now: float) -> int:
        if counter is None:
            return TTL_NO_KEY
        if counter.expires_at is None:
            return TTL_NO_EXPIRY
        return int(math.ceil(counter.expires_at - now))

    def increment_window(self, key: str, ttl_seconds: int) -> WindowCount:
        with self._lock:
            now = self._clock()
            counter = self._live_counter(key, now)
            if counter is None:
                counter = _Counter(count=0, expires_at=None)
                self._counters[key] = counter
            counter.count += 1
            if counter.count == 1 or counter.expires_at is None:
                counter.expires_at = now + ttl_seconds
            return WindowCount(count=counter.count, ttl=self._ttl_of(counter, now))

    def get_count(self, key: str) -> int | None:
        with self._lock:
            counter = self._live_counter(key, self._clock())
            return counter.count if counter else None

    def get_ttl(self, key: str) -> int:
        with self._lock:
            now = self._clock()
            return self._ttl_of(self._live_counter(key, now), now)

    def set_raw(self, key: str, count: int, *, ttl_seconds: float | None = None) -> None:
        """Write a counter directly, bypassing window semantics.

        Mirrors a plain ``SET`` issued by some other writer sharing the store.
        """

        with self._lock:
            now = self._clock()
            expires_at = now + ttl_seconds if ttl_seconds is not None else None
            self._counters[key] = _Counter(count=count, expires_at=expires_at)

    def keys(self) -> list[str]:
        """Return the keys of all live counters."""

        with self._lock:
            now = self._clock()
            return [k for k in list(self._counters) if self._live_counter(k, now)]


class AsyncInMemoryCounterStore(AbstractAsyncCounterStore):
    """Asyncio facade over InMemoryCounterStore.

    Operations never block on I/O, so they run inline on the event loop.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        store: InMemoryCounterStore | None = None,
    ) -> None:
        self.sync_store = store or InMemoryCounterStore(clock=clock)

    async def increment_window(self, key: str, ttl_seconds: int) -> WindowCount:
        return self.sync_store.increment_window(key, ttl_seconds)

    async def get_count(self, key: str) -> int | None:
        return self.sync_store.get_count(key)

    async def get_ttl(self, key: str) -> int:
        return self.sync_store.get_ttl(key)
