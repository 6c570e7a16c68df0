"""Pytest configuration and fixtures shared across all test modules.

Environment defaults are set before anything imports the settings module so
tests never depend on a developer's .env file or a running Redis.
"""

import os
import uuid

# CRITICAL: Set this before any imports that might load settings
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("STORE_URL", "memory://")
os.environ.setdefault("LIMITER_KEY_PREFIX", "test")
os.environ.setdefault("LOG_FORMAT", "json")

import pytest

from ratewindow.adapters.store.in_memory import InMemoryCounterStore


class FakeTime:
    """Deterministic clock used to test window expiry without sleeping."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def memory_store(fake_time: FakeTime) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=fake_time)


@pytest.fixture
def redis_url() -> str:
    """URL of a live Redis; skips the test when none is reachable."""

    import redis

    url = os.getenv("REDIS_URL", "redis://127.0.0.1:6379/15")
    client = redis.Redis.from_url(url, socket_connect_timeout=0.5, socket_timeout=0.5)
    try:
        client.ping()
    except redis.exceptions.RedisError:
        pytest.skip(f"Redis not reachable at {url}")
    finally:
        client.close()
    return url


@pytest.fixture
def unique_prefix() -> str:
    return f"test_rate_limiter_{uuid.uuid4().hex[:12]}"
