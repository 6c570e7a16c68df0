"""End-to-end tests against a live Redis.

Skipped unless a Redis server answers at REDIS_URL
(default redis://127.0.0.1:6379/15). These tests sleep through real windows.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor

import pytest
import redis

from ratewindow.core.errors import RateLimitExceededAppError
from ratewindow.services.limiter import NO_ACTIVE_WINDOW, AsyncWindowedLimiter, WindowedLimiter

pytestmark = pytest.mark.integration


def test_basic_rate_limiting(redis_url: str, unique_prefix: str) -> None:
    limiter = WindowedLimiter(redis_url, unique_prefix, 3, 1)

    limiter.check("user_1")
    limiter.check("user_1")
    limiter.check("user_1")
    with pytest.raises(RateLimitExceededAppError):
        limiter.check("user_1")

    time.sleep(2)

    limiter.check("user_1")
    assert limiter.remaining("user_1") == 2
    limiter.close()


def test_multiple_identifiers(redis_url: str, unique_prefix: str) -> None:
    limiter = WindowedLimiter(redis_url, unique_prefix, 2, 1)

    limiter.check("user_1")
    limiter.check("user_2")
    limiter.check("user_1")
    limiter.check("user_2")
    with pytest.raises(RateLimitExceededAppError):
        limiter.check("user_1")
    with pytest.raises(RateLimitExceededAppError):
        limiter.check("user_2")

    time.sleep(2)

    limiter.check("user_1")
    limiter.check("user_2")
    limiter.close()


def test_remaining(redis_url: str, unique_prefix: str) -> None:
    limiter = WindowedLimiter(redis_url, unique_prefix, 5, 5)

    assert limiter.remaining("user_3") == 5
    limiter.check("user_3")
    assert limiter.remaining("user_3") == 4
    limiter.check("user_3")
    assert limiter.remaining("user_3") == 3
    limiter.close()


def test_time_to_reset(redis_url: str, unique_prefix: str) -> None:
    limiter = WindowedLimiter(redis_url, unique_prefix, 2, 3)

    assert limiter.time_to_reset("user_4") == NO_ACTIVE_WINDOW
    limiter.check("user_4")
    assert 0 < limiter.time_to_reset("user_4") <= 3

    time.sleep(2)
    assert 0 <= limiter.time_to_reset("user_4") <= 1

    time.sleep(2)
    assert limiter.time_to_reset("user_4") == NO_ACTIVE_WINDOW
    limiter.close()


def test_ttl_is_not_refreshed_by_later_requests(redis_url: str, unique_prefix: str) -> None:
    limiter = WindowedLimiter(redis_url, unique_prefix, 10, 3)

    limiter.check("u")
    time.sleep(1.5)
    limiter.check("u")

    assert limiter.time_to_reset("u") <= 2
    limiter.close()


def test_counter_key_layout(redis_url: str, unique_prefix: str) -> None:
    limiter = WindowedLimiter(redis_url, unique_prefix, 5, 10)
    client = redis.Redis.from_url(redis_url, decode_responses=True)
    try:
        limiter.check("u")
        limiter.check("u")

        assert client.get(f"{unique_prefix}:u") == "2"
        assert 0 < client.ttl(f"{unique_prefix}:u") <= 10
        assert client.exists(f"{unique_prefix}:never-seen") == 0
    finally:
        client.delete(f"{unique_prefix}:u")
        client.close()
        limiter.close()


def test_concurrent_checks_across_instances(redis_url: str, unique_prefix: str) -> None:
    limiters = [WindowedLimiter(redis_url, unique_prefix, 10, 30) for _ in range(4)]

    def _attempt(idx: int) -> bool:
        return limiters[idx % len(limiters)].consume("burst").allowed

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(_attempt, range(40)))

    assert outcomes.count(True) == 10
    for limiter in limiters:
        limiter.close()


@pytest.mark.asyncio
async def test_async_limiter(redis_url: str, unique_prefix: str) -> None:
    limiter = AsyncWindowedLimiter(redis_url, unique_prefix, 2, 5)
    try:
        await limiter.check("u")
        await limiter.check("u")
        with pytest.raises(RateLimitExceededAppError):
            await limiter.check("u")

        assert await limiter.remaining("u") == 0
        assert 0 < await limiter.time_to_reset("u") <= 5
    finally:
        await limiter.aclose()
