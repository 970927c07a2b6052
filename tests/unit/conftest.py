"""Shared fixtures and fakes for unit tests."""

from __future__ import annotations

from unittest.mock import AsyncMock, Mock

import fakeredis
import pytest
from fakeredis import aioredis as fake_aioredis

from market_cache.cache.local_cache import LocalCache
from market_cache.cache.redis_cache import RedisCache
from market_cache.utils.resilience import CircuitBreaker, CircuitBreakerConfig


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class AsyncIterator:
    """Helper for creating async iterators in tests."""

    def __init__(self, items):
        self.items = list(items)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.items:
            raise StopAsyncIteration
        return self.items.pop(0)


@pytest.fixture
def clock():
    """A fake clock starting at t=1000s."""
    return FakeClock()


@pytest.fixture
def local_cache(clock):
    """Small LocalCache driven by the fake clock."""
    return LocalCache(max_size=10, ttl_seconds=60, clock=clock)


@pytest.fixture
def failing_redis():
    """Redis client whose every command fails as if the server were down."""
    client = AsyncMock()
    error = ConnectionError("Error 111 connecting to localhost:6379. Connection refused.")
    client.ping.side_effect = error
    client.get.side_effect = error
    client.set.side_effect = error
    client.delete.side_effect = error
    client.scan_iter = Mock(side_effect=error)
    return client


@pytest.fixture
def healthy_mock_redis():
    """AsyncMock client that answers PING and stores nothing."""
    client = AsyncMock()
    client.ping.return_value = True
    client.get.return_value = None
    client.set.return_value = True
    client.delete.return_value = 1
    client.scan_iter = Mock(return_value=AsyncIterator([]))
    return client


@pytest.fixture
def fake_redis():
    """In-process Redis server emulation, isolated per test."""
    return fake_aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def breaker(clock):
    """Circuit breaker that opens on the first failure and cools down for 30s."""
    return CircuitBreaker(CircuitBreakerConfig(failure_threshold=1, reset_timeout_seconds=30), clock=clock)


@pytest.fixture
def make_redis_cache(clock, breaker):
    """Factory for RedisCache instances sharing the fake clock."""

    def _make(client, **kwargs):
        kwargs.setdefault("fallback", LocalCache(max_size=10, ttl_seconds=60, clock=clock))
        kwargs.setdefault("breaker", breaker)
        kwargs.setdefault("key_prefix", "test")
        return RedisCache(client=client, **kwargs)

    return _make
