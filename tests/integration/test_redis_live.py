"""Integration tests against a real Redis server.

Set REDIS_URL (e.g. redis://localhost:6379/15) to run them.
"""

import os
import uuid

import pytest
import pytest_asyncio

from market_cache import CacheProvider, CacheSettings, RedisCache, check_cache_health
from market_cache.core import keys

REDIS_URL = os.environ.get("REDIS_URL")

pytestmark = pytest.mark.skipif(not REDIS_URL, reason="REDIS_URL not set")


@pytest_asyncio.fixture
async def redis_cache():
    """Provide a connected RedisCache under a throwaway prefix (skip if not available)."""
    settings = CacheSettings.from_dict(
        {"backend": "redis", "redis": {"url": REDIS_URL, "key_prefix": f"test_market_cache_{uuid.uuid4().hex}"}}
    )
    cache = CacheProvider(settings).get()
    assert isinstance(cache, RedisCache)
    if not await cache.connect():
        await cache.close()
        pytest.skip("Redis not available")
    yield cache
    await cache.clear()
    await cache.close()


@pytest.mark.asyncio
async def test_round_trip(redis_cache):
    """Test values survive a trip through a real server."""
    await redis_cache.set(keys.product_key("p1"), {"id": "p1", "price": 9.5}, ttl_seconds=30)

    assert await redis_cache.get(keys.product_key("p1")) == {"id": "p1", "price": 9.5}
    assert redis_cache.get_backend() == "redis"


@pytest.mark.asyncio
async def test_listing_invalidation(redis_cache):
    """Test a seller pattern clears only that seller's listings."""
    await redis_cache.set(keys.product_list_key("s1"), ["p1"])
    await redis_cache.set(keys.product_list_key("s1", {"page": 2}), ["p2"])
    await redis_cache.set(keys.product_list_key("s10"), ["p3"])

    await redis_cache.delete_pattern(keys.seller_products_pattern("s1"))

    assert await redis_cache.get(keys.product_list_key("s1")) is None
    assert await redis_cache.get(keys.product_list_key("s1", {"page": 2})) is None
    assert await redis_cache.get(keys.product_list_key("s10")) == ["p3"]


@pytest.mark.asyncio
async def test_health(redis_cache):
    """Test the health check reports the live backend."""
    result = await check_cache_health(redis_cache)

    assert result.is_up
    assert result.backend == "redis"
