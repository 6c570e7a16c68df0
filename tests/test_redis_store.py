"""Unit tests for the Redis counter stores using a mocked client."""

from __future__ import annotations

from unittest.mock import AsyncMock, Mock

import pytest
import redis

from ratewindow.adapters.store.redis_store import (
    INCREMENT_WINDOW_SCRIPT,
    AsyncRedisCounterStore,
    RedisCounterStore,
)
from ratewindow.core.errors import (
    RateLimitExceededAppError,
    StoreAppError,
    StoreConnectionAppError,
)
from ratewindow.services.limiter import NO_ACTIVE_WINDOW, WindowedLimiter


@pytest.fixture
def script() -> Mock:
    return Mock(return_value=[1, 60])


@pytest.fixture
def client(script: Mock) -> Mock:
    mock_client = Mock()
    mock_client.register_script.return_value = script
    return mock_client


class TestScript:
    def test_registered_once_per_store(self, client: Mock) -> None:
        RedisCounterStore(client)

        client.register_script.assert_called_once_with(INCREMENT_WINDOW_SCRIPT)


class TestRedisCounterStore:
    def test_increment_window_runs_script_in_one_call(self, client: Mock, script: Mock) -> None:
        script.return_value = [3, 42]
        store = RedisCounterStore(client)

        result = store.increment_window("p:u", 60)

        script.assert_called_once_with(keys=["p:u"], args=[60])
        assert result.count == 3
        assert result.ttl == 42
        client.incr.assert_not_called()
        client.expire.assert_not_called()

    def test_get_count(self, client: Mock) -> None:
        store = RedisCounterStore(client)

        client.get.return_value = "7"
        assert store.get_count("p:u") == 7

        client.get.return_value = None
        assert store.get_count("p:u") is None

    def test_get_count_rejects_non_integer_values(self, client: Mock) -> None:
        client.get.return_value = "not-a-number"
        store = RedisCounterStore(client)

        with pytest.raises(StoreAppError) as exc_info:
            store.get_count("p:u")

        assert exc_info.value.code == "store_bad_reply"

    def test_get_ttl_passes_sentinels_through(self, client: Mock) -> None:
        store = RedisCounterStore(client)

        client.ttl.return_value = -2
        assert store.get_ttl("p:u") == -2
        client.ttl.return_value = 17
        assert store.get_ttl("p:u") == 17

    def test_connection_errors_are_mapped(self, client: Mock, script: Mock) -> None:
        original = redis.exceptions.ConnectionError("Connection refused")
        script.side_effect = original
        store = RedisCounterStore(client)

        with pytest.raises(StoreConnectionAppError) as exc_info:
            store.increment_window("p:u", 60)

        assert exc_info.value.__cause__ is original
        assert exc_info.value.details["error_type"] == "ConnectionError"

    @pytest.mark.parametrize(
        "error",
        [
            redis.exceptions.TimeoutError("Timeout reading from socket"),
            redis.exceptions.ResponseError("ERR Error running script"),
            redis.exceptions.ResponseError("WRONGTYPE Operation against a key"),
        ],
    )
    def test_other_redis_errors_become_store_errors(self, client: Mock, script: Mock, error) -> None:
        script.side_effect = error
        store = RedisCounterStore(client)

        with pytest.raises(StoreAppError) as exc_info:
            store.increment_window("p:u", 60)

        assert not isinstance(exc_info.value, StoreConnectionAppError)
        assert exc_info.value.__cause__ is error

    def test_read_errors_are_mapped(self, client: Mock) -> None:
        client.get.side_effect = redis.exceptions.ConnectionError("down")
        client.ttl.side_effect = redis.exceptions.TimeoutError("slow")
        store = RedisCounterStore(client)

        with pytest.raises(StoreConnectionAppError):
            store.get_count("p:u")
        with pytest.raises(StoreAppError):
            store.get_ttl("p:u")

    def test_malformed_reply(self, client: Mock, script: Mock) -> None:
        script.return_value = "OK"
        store = RedisCounterStore(client)

        with pytest.raises(StoreAppError):
            store.increment_window("p:u", 60)

    def test_from_url_does_not_connect(self) -> None:
        store = RedisCounterStore.from_url("redis://127.0.0.1:1/0", socket_timeout=0.1)

        assert isinstance(store, RedisCounterStore)
        store.close()

    def test_from_url_rejects_bad_scheme(self) -> None:
        with pytest.raises(StoreConnectionAppError) as exc_info:
            RedisCounterStore.from_url("http://localhost:6379")

        assert exc_info.value.code == "store_invalid_url"

    def test_unreachable_store_surfaces_from_check(self) -> None:
        limiter = WindowedLimiter(
            "redis://127.0.0.1:1/0", "test", 3, 1, socket_connect_timeout=0.2
        )

        with pytest.raises(StoreConnectionAppError):
            limiter.check("u")


class TestLimiterOverRedisStore:
    def test_check_uses_prefixed_key_and_window_ttl(self, client: Mock, script: Mock) -> None:
        limiter = WindowedLimiter(RedisCounterStore(client), "api", 3, "1m")

        limiter.check("user-1")

        script.assert_called_once_with(keys=["api:user-1"], args=[60])

    def test_count_above_ceiling_raises(self, client: Mock, script: Mock) -> None:
        script.return_value = [4, 12]
        limiter = WindowedLimiter(RedisCounterStore(client), "api", 3, 60)

        with pytest.raises(RateLimitExceededAppError) as exc_info:
            limiter.check("user-1")

        assert exc_info.value.retry_after == 12

    def test_queries_map_redis_sentinels(self, client: Mock) -> None:
        limiter = WindowedLimiter(RedisCounterStore(client), "api", 3, 60)

        client.get.return_value = None
        client.ttl.return_value = -2
        assert limiter.remaining("u") == 3
        assert limiter.time_to_reset("u") == NO_ACTIVE_WINDOW

        client.get.return_value = "10"
        client.ttl.return_value = -1
        assert limiter.remaining("u") == 0
        assert limiter.time_to_reset("u") == NO_ACTIVE_WINDOW


class TestAsyncRedisCounterStore:
    @pytest.fixture
    def async_script(self) -> AsyncMock:
        return AsyncMock(return_value=[1, 30])

    @pytest.fixture
    def async_client(self, async_script: AsyncMock) -> Mock:
        mock_client = Mock()
        mock_client.register_script.return_value = async_script
        mock_client.get = AsyncMock(return_value="2")
        mock_client.ttl = AsyncMock(return_value=25)
        mock_client.aclose = AsyncMock()
        return mock_client

    @pytest.mark.asyncio
    async def test_operations(self, async_client: Mock, async_script: AsyncMock) -> None:
        store = AsyncRedisCounterStore(async_client)

        result = await store.increment_window("p:u", 30)

        async_script.assert_awaited_once_with(keys=["p:u"], args=[30])
        assert (result.count, result.ttl) == (1, 30)
        assert await store.get_count("p:u") == 2
        assert await store.get_ttl("p:u") == 25

        await store.aclose()
        async_client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_errors_are_mapped(self, async_client: Mock, async_script: AsyncMock) -> None:
        async_script.side_effect = redis.exceptions.ConnectionError("down")
        async_client.get.side_effect = redis.exceptions.ResponseError("WRONGTYPE")
        store = AsyncRedisCounterStore(async_client)

        with pytest.raises(StoreConnectionAppError):
            await store.increment_window("p:u", 30)
        with pytest.raises(StoreAppError):
            await store.get_count("p:u")

    def test_from_url_rejects_bad_scheme(self) -> None:
        with pytest.raises(StoreConnectionAppError):
            AsyncRedisCounterStore.from_url("mysql://localhost")
