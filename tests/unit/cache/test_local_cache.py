"""Unit tests for LocalCache."""

import asyncio
import random
import threading

import pytest

from market_cache.cache.local_cache import LocalCache
from market_cache.errors import ConfigurationError, InvalidPatternError


@pytest.mark.asyncio
class TestLocalCache:
    """Test LocalCache get/set/delete behaviour."""

    async def test_cache_get_miss(self, local_cache):
        """Test cache miss returns None and counts a miss."""
        result = await local_cache.get("nonexistent")

        assert result is None
        assert local_cache.get_metrics().misses == 1

    async def test_cache_set_and_get(self, local_cache):
        """Test basic cache set and get operations."""
        await local_cache.set("key1", "value1")
        assert await local_cache.get("key1") == "value1"

        # Set different types
        await local_cache.set("key2", 42)
        await local_cache.set("key3", {"nested": "dict"})
        await local_cache.set("key4", ["list", "items"])

        assert await local_cache.get("key2") == 42
        assert await local_cache.get("key3") == {"nested": "dict"}
        assert await local_cache.get("key4") == ["list", "items"]

    async def test_set_existing_key_replaces_value(self, local_cache):
        """Test that setting an existing key replaces it without growing the store."""
        await local_cache.set("key", "old")
        await local_cache.set("key", "new")

        assert await local_cache.get("key") == "new"
        assert len(local_cache) == 1

    async def test_values_are_held_by_reference(self, local_cache):
        """Test the in-process store returns the stored object itself, not a copy."""
        value = {"rates": [1.1, 0.9]}
        await local_cache.set("rates", value)

        assert await local_cache.get("rates") is value

    async def test_cache_delete(self, local_cache):
        """Test cache deletion."""
        await local_cache.set("to_delete", "value")
        assert await local_cache.get("to_delete") == "value"

        await local_cache.delete("to_delete")
        assert await local_cache.get("to_delete") is None

    async def test_delete_absent_key_is_noop(self, local_cache):
        """Test deleting a missing key neither raises nor changes state."""
        await local_cache.set("keep", "value")
        before = local_cache.get_metrics()

        await local_cache.delete("nonexistent")

        assert len(local_cache) == 1
        assert local_cache.get_metrics() == before

    async def test_cache_clear(self, local_cache):
        """Test clearing entire cache."""
        for i in range(5):
            await local_cache.set(f"key{i}", f"value{i}")

        await local_cache.clear()

        assert len(local_cache) == 0
        for i in range(5):
            assert await local_cache.get(f"key{i}") is None

    async def test_clear_keeps_cumulative_metrics(self, local_cache):
        """Test that clear() drops data but not hit/miss counters."""
        await local_cache.set("key", "value")
        await local_cache.get("key")
        await local_cache.get("missing")

        await local_cache.clear()

        metrics = local_cache.get_metrics()
        assert metrics.hits == 1
        assert metrics.misses == 1
        assert metrics.current_size == 0

    async def test_get_backend(self, local_cache):
        """Test backend identifier."""
        assert local_cache.get_backend() == "memory"


@pytest.mark.asyncio
class TestLocalCacheEviction:
    """Test LRU eviction and the capacity bound."""

    async def test_lru_evicts_least_recently_touched(self, clock):
        """Test set(a), set(b), get(a), set(c) evicts b."""
        cache = LocalCache(max_size=2, ttl_seconds=60, clock=clock)

        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.get("a")
        await cache.set("c", 3)

        assert await cache.get("a") == 1
        assert await cache.get("b") is None
        assert await cache.get("c") == 3

    async def test_lru_eviction(self, clock):
        """Test LRU eviction when cache is full."""
        cache = LocalCache(max_size=3, ttl_seconds=60, clock=clock)

        await cache.set("key1", "value1")
        await cache.set("key2", "value2")
        await cache.set("key3", "value3")

        # Access key1 and key3 to make them recently used
        await cache.get("key1")
        await cache.get("key3")

        # Add new item - should evict key2 (least recently used)
        await cache.set("key4", "value4")

        assert await cache.get("key1") == "value1"
        assert await cache.get("key2") is None
        assert await cache.get("key3") == "value3"
        assert await cache.get("key4") == "value4"

    async def test_untouched_entries_evicted_in_insertion_order(self, clock):
        """Test that, with no reads, the oldest inserted entry goes first."""
        cache = LocalCache(max_size=2, ttl_seconds=60, clock=clock)

        await cache.set("first", 1)
        await cache.set("second", 2)
        await cache.set("third", 3)

        assert await cache.get("first") is None
        assert await cache.get("second") == 2

    async def test_reset_refreshes_recency(self, clock):
        """Test that set() on an existing key makes it most recently used."""
        cache = LocalCache(max_size=2, ttl_seconds=60, clock=clock)

        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.set("a", 10)
        await cache.set("c", 3)

        assert await cache.get("a") == 10
        assert await cache.get("b") is None

    async def test_capacity_never_exceeded(self, clock):
        """Test |entries| <= max_size after every set."""
        cache = LocalCache(max_size=5, ttl_seconds=60, clock=clock)
        rng = random.Random(7)

        for _ in range(200):
            key = f"key{rng.randint(0, 20)}"
            if rng.random() < 0.3:
                await cache.get(key)
            await cache.set(key, key, ttl_seconds=rng.choice([None, 0, 1, 30]))
            assert len(cache) <= 5

    async def test_single_slot_cache(self, clock):
        """Test a cache of size one keeps only the newest entry."""
        cache = LocalCache(max_size=1, ttl_seconds=60, clock=clock)
        await cache.set("key1", "value1")
        await cache.set("key2", "value2")

        assert await cache.get("key1") is None
        assert await cache.get("key2") == "value2"


@pytest.mark.asyncio
class TestLocalCacheExpiry:
    """Test TTL handling."""

    async def test_ttl_expiration(self, local_cache, clock):
        """Test an entry is absent once its TTL has elapsed."""
        await local_cache.set("expires", "value", ttl_seconds=1)
        assert await local_cache.get("expires") == "value"

        clock.advance(1.0)

        assert await local_cache.get("expires") is None
        assert local_cache.get_metrics().misses == 1
        # Removed on read
        assert len(local_cache) == 0

    async def test_custom_ttl_per_item(self, clock):
        """Test setting custom TTL per item."""
        cache = LocalCache(max_size=10, ttl_seconds=10, clock=clock)

        await cache.set("custom", "value", ttl_seconds=0.1)
        await cache.set("default", "value2")

        clock.advance(0.15)

        assert await cache.get("custom") is None
        assert await cache.get("default") == "value2"

        clock.advance(10)
        assert await cache.get("default") is None

    async def test_zero_ttl_is_immediately_stale(self, local_cache):
        """Test ttl_seconds=0 stores an already-expired entry."""
        await local_cache.set("gone", "value", ttl_seconds=0)

        assert await local_cache.get("gone") is None

    async def test_set_resets_expiry(self, local_cache, clock):
        """Test that re-setting a key restarts its TTL."""
        await local_cache.set("key", "v1", ttl_seconds=5)
        clock.advance(4)
        await local_cache.set("key", "v2", ttl_seconds=5)
        clock.advance(4)

        assert await local_cache.get("key") == "v2"

    async def test_expired_entries_hold_slots_until_purged(self, local_cache, clock):
        """Test lazy expiry keeps unread entries until purge_expired()."""
        await local_cache.set("a", 1, ttl_seconds=1)
        await local_cache.set("b", 2, ttl_seconds=1)
        await local_cache.set("c", 3, ttl_seconds=100)
        clock.advance(2)

        assert len(local_cache) == 3
        assert local_cache.purge_expired() == 2
        assert len(local_cache) == 1
        assert await local_cache.get("c") == 3

    async def test_background_sweeper(self, clock):
        """Test the sweeper task purges expired entries on its own."""
        cache = LocalCache(max_size=10, ttl_seconds=1, sweep_interval_seconds=0.01, clock=clock)
        await cache.set("a", 1)
        clock.advance(5)

        task = cache.start_sweeper()
        assert task is not None
        try:
            for _ in range(50):
                if len(cache) == 0:
                    break
                await asyncio.sleep(0.01)
            assert len(cache) == 0
        finally:
            await cache.stop_sweeper()
        assert task.done()

    async def test_sweeper_disabled(self):
        """Test an interval of 0 disables sweeping."""
        cache = LocalCache(sweep_interval_seconds=0)

        assert cache.start_sweeper() is None
        await cache.stop_sweeper()


@pytest.mark.asyncio
class TestLocalCachePatterns:
    """Test delete_pattern."""

    async def test_delete_pattern_removes_only_matches(self, local_cache):
        """Test product:* removes both product keys and leaves order keys."""
        await local_cache.set("product:1:x", 1)
        await local_cache.set("product:2:x", 2)
        await local_cache.set("order:1:x", 3)

        await local_cache.delete_pattern("product:*")

        assert await local_cache.get("product:1:x") is None
        assert await local_cache.get("product:2:x") is None
        assert await local_cache.get("order:1:x") == 3

    async def test_pattern_is_anchored_and_literal(self, local_cache):
        """Test regex metacharacters in a pattern are matched literally."""
        await local_cache.set("a.b", 1)
        await local_cache.set("axb", 2)
        await local_cache.set("xa.b", 3)

        await local_cache.delete_pattern("a.b")

        assert await local_cache.get("a.b") is None
        assert await local_cache.get("axb") == 2
        assert await local_cache.get("xa.b") == 3

    async def test_wildcard_in_middle(self, local_cache):
        """Test * matches any run of characters, including none."""
        await local_cache.set("products:seller:1:all", 1)
        await local_cache.set("products:seller:1:abc", 2)
        await local_cache.set("products:buyer:1:all", 3)

        await local_cache.delete_pattern("products:*:1:all")

        assert await local_cache.get("products:seller:1:all") is None
        assert await local_cache.get("products:buyer:1:all") is None
        assert await local_cache.get("products:seller:1:abc") == 2

    @pytest.mark.parametrize("pattern", ["", "product:?", "product:[12]", "product:\\*", None])
    async def test_malformed_pattern_rejected(self, local_cache, pattern):
        """Test unsupported glob syntax fails fast."""
        await local_cache.set("product:1", 1)

        with pytest.raises(InvalidPatternError):
            await local_cache.delete_pattern(pattern)

        assert await local_cache.get("product:1") == 1


class TestLocalCacheConcurrency:
    """Test thread safety."""

    def test_concurrent_access_keeps_invariants(self):
        """Test many threads mixing operations never break the size bound."""
        cache = LocalCache(max_size=50, ttl_seconds=60)
        errors = []

        async def worker(seed: int) -> None:
            rng = random.Random(seed)
            for _ in range(500):
                key = f"key{rng.randint(0, 200)}"
                op = rng.random()
                if op < 0.5:
                    await cache.set(key, seed)
                elif op < 0.9:
                    await cache.get(key)
                else:
                    await cache.delete(key)

        def run(seed: int) -> None:
            try:
                asyncio.run(worker(seed))
            except Exception as exc:  # pragma: no cover - surfaced by the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=run, args=(seed,)) for seed in range(8)]
        for th in threads:
            th.start()
        for th in threads:
            th.join()

        assert errors == []
        assert len(cache) <= 50
        metrics = cache.get_metrics()
        assert metrics.total_requests == metrics.hits + metrics.misses
        assert metrics.total_requests > 0


class TestLocalCacheConstruction:
    """Test constructor validation."""

    def test_invalid_construction(self):
        """Test non-positive sizes and negative TTLs are rejected."""
        with pytest.raises(ConfigurationError):
            LocalCache(max_size=0)
        with pytest.raises(ConfigurationError):
            LocalCache(max_size=-1)
        with pytest.raises(ConfigurationError):
            LocalCache(max_size=10, ttl_seconds=-1)
