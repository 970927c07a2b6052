from __future__ import annotations

import asyncio
import logging
import threading
import time
import typing as t
from collections import OrderedDict
from dataclasses import dataclass

from market_cache.errors import ConfigurationError
from market_cache.monitoring.metrics import CacheMetrics, MetricsRecorder
from market_cache.utils.config import LocalCacheConfig

from .base import CacheService, pattern_to_regex

_logger = logging.getLogger(__name__)

BACKEND_NAME = "memory"


@dataclass
class CacheEntry:
    value: t.Any
    expires_at: float
    inserted_at: float
    last_accessed_at: float


class LocalCache(CacheService):
    """Bounded in-process LRU + TTL cache.

    The OrderedDict doubles as the recency list: the first key is the least
    recently touched, so eviction ties fall back to insertion order. Every
    mutation of the map happens under a single lock, which keeps the map and
    the recency order consistent for concurrent callers.

    Expiry is lazy. An expired entry still occupies a slot until it is read,
    evicted or removed by `purge_expired` (optionally on a background sweep).

    Values are stored by reference and returned as is; callers must not mutate
    them.
    """

    def __init__(
        self,
        max_size: int = 1000,
        ttl_seconds: float = 300,
        *,
        latency_sample_size: int = 1000,
        sweep_interval_seconds: float = 60,
        clock: t.Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size <= 0:
            raise ConfigurationError(f"max_size must be positive, got {max_size}")
        if ttl_seconds < 0:
            raise ConfigurationError(f"ttl_seconds must be >= 0, got {ttl_seconds}")
        self._store: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._max_size = max_size
        self._ttl = ttl_seconds
        self._clock = clock
        self._sweep_interval = sweep_interval_seconds
        self._sweeper: t.Optional["asyncio.Task[None]"] = None
        self._metrics = MetricsRecorder(BACKEND_NAME, sample_size=latency_sample_size)
        _logger.info("Local cache initialized (max_size=%s, default_ttl=%ss)", max_size, ttl_seconds)

    @classmethod
    def from_config(cls, config: LocalCacheConfig, **kwargs: t.Any) -> "LocalCache":
        return cls(
            max_size=config.max_size,
            ttl_seconds=config.default_ttl_seconds,
            latency_sample_size=config.latency_sample_size,
            sweep_interval_seconds=config.sweep_interval_seconds,
            **kwargs,
        )

    @property
    def max_size(self) -> int:
        return self._max_size

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    async def get(self, key: str) -> t.Optional[t.Any]:
        with self._metrics.timed("get"):
            now = self._clock()
            with self._lock:
                entry = self._store.get(key)
                if entry is not None and now >= entry.expires_at:
                    del self._store[key]
                    entry = None
                if entry is not None:
                    entry.last_accessed_at = now
                    self._store.move_to_end(key)
            if entry is None:
                self._metrics.record_miss()
                return None
            self._metrics.record_hit()
            return entry.value

    async def set(self, key: str, value: t.Any, ttl_seconds: t.Optional[float] = None) -> None:
        with self._metrics.timed("set"):
            now = self._clock()
            ttl = self._ttl if ttl_seconds is None else ttl_seconds
            evicted: t.List[str] = []
            with self._lock:
                existing = self._store.get(key)
                if existing is not None:
                    existing.value = value
                    existing.expires_at = now + ttl
                    existing.last_accessed_at = now
                    self._store.move_to_end(key)
                else:
                    while len(self._store) >= self._max_size:
                        oldest, _ = self._store.popitem(last=False)
                        evicted.append(oldest)
                    self._store[key] = CacheEntry(value=value, expires_at=now + ttl, inserted_at=now, last_accessed_at=now)
            for oldest in evicted:
                _logger.debug("Evicted LRU entry %s", oldest)

    async def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    async def delete_pattern(self, pattern: str) -> None:
        regex = pattern_to_regex(pattern)
        with self._lock:
            doomed = [key for key in self._store if regex.match(key)]
            for key in doomed:
                del self._store[key]
        _logger.debug("Deleted pattern %s (%d keys)", pattern, len(doomed))

    async def clear(self) -> None:
        with self._lock:
            self._store.clear()
        _logger.info("Local cache cleared")

    def get_metrics(self) -> CacheMetrics:
        return self._metrics.snapshot(current_size=len(self), max_size=self._max_size, backend=BACKEND_NAME)

    def get_backend(self) -> str:
        return BACKEND_NAME

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._store.items() if now >= entry.expires_at]
            for key in expired:
                del self._store[key]
        if expired:
            _logger.debug("Cleaned up %d expired entries", len(expired))
        return len(expired)

    def start_sweeper(self) -> t.Optional["asyncio.Task[None]"]:
        """Start the periodic expiry sweep on the running event loop.

        Returns None when sweeping is disabled (interval of 0).
        """
        if self._sweep_interval <= 0:
            return None
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())
        return self._sweeper

    async def stop_sweeper(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.purge_expired()
