from __future__ import annotations

import asyncio
import json
import logging
import typing as t
from collections import OrderedDict

from redis.asyncio import Redis

from market_cache.errors import ConfigurationError
from market_cache.monitoring.metrics import CacheMetrics, MetricsRecorder
from market_cache.utils.config import CacheSettings
from market_cache.utils.resilience import CircuitBreaker, CircuitBreakerConfig

from .base import CacheService, validate_pattern
from .local_cache import LocalCache

_logger = logging.getLogger(__name__)

BACKEND_NAME = "redis"
DEGRADED_BACKEND_NAME = "redis (fallback to memory)"

_DELETE_BATCH = 500

# kinds of invalidation owed to Redis
_KEY = "key"
_PATTERN = "pattern"


class RedisCache(CacheService):
    """Redis-backed cache that degrades to an embedded LocalCache.

    - Values are stored as JSON strings at key `{prefix}:{key}` with a PX expiry.
      The fallback holds the same JSON text, so callers get a freshly decoded
      copy whichever tier answers.
    - Each remote call is bounded by `operation_timeout_seconds` and goes through
      a circuit breaker. The first failure switches the cache to the fallback.
    - While degraded no data-plane call touches the network. A single background
      reconnect (PING) is scheduled by traffic, at most one per cooldown period.
    - Writes and invalidations served by the fallback are remembered and
      replayed against Redis by that reconnect before the cache reports healthy
      again; past `max_pending_invalidations` the whole prefix is cleared
      instead. The fallback is then emptied, so neither a value written while
      degraded nor one invalidated while degraded can be read afterwards.

    Hit/miss metrics are counted here against the logical cache, whichever tier
    answered.
    """

    def __init__(
        self,
        url: t.Optional[str] = None,
        *,
        client: t.Optional[t.Any] = None,
        fallback: t.Optional[LocalCache] = None,
        key_prefix: str = "cache",
        default_ttl_seconds: float = 300,
        operation_timeout_seconds: float = 0.5,
        connect_timeout_seconds: float = 1.0,
        breaker: t.Optional[CircuitBreaker] = None,
        latency_sample_size: int = 1000,
        max_pending_invalidations: int = 1000,
    ) -> None:
        if client is None and not url:
            raise ConfigurationError("RedisCache needs a redis url or a client")
        if default_ttl_seconds < 0:
            raise ConfigurationError(f"default_ttl_seconds must be >= 0, got {default_ttl_seconds}")
        if max_pending_invalidations <= 0:
            raise ConfigurationError(f"max_pending_invalidations must be positive, got {max_pending_invalidations}")
        self._prefix = key_prefix.rstrip(":")
        if set("*?[]\\").intersection(self._prefix):
            raise ConfigurationError(f"key_prefix must not contain glob characters, got {key_prefix!r}")
        self._url = url
        # from_url only builds a pool; nothing connects until the first command
        if client is None:
            client = Redis.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=connect_timeout_seconds,
                socket_timeout=operation_timeout_seconds,
            )
        self._client = client
        self._fallback = fallback if fallback is not None else LocalCache(ttl_seconds=default_ttl_seconds)
        self._default_ttl = default_ttl_seconds
        self._op_timeout = operation_timeout_seconds
        self._connect_timeout = connect_timeout_seconds
        self._breaker = breaker or CircuitBreaker(CircuitBreakerConfig())
        self._connected = False
        self._reconnect_task: t.Optional["asyncio.Task[bool]"] = None
        self._pending: "OrderedDict[t.Tuple[str, str], None]" = OrderedDict()
        self._pending_limit = max_pending_invalidations
        self._pending_clear = False
        self._metrics = MetricsRecorder(BACKEND_NAME, sample_size=latency_sample_size)
        _logger.info("Redis cache created (prefix=%r); serving from memory until connected", self._prefix)

    @classmethod
    def from_settings(
        cls,
        settings: CacheSettings,
        *,
        client: t.Optional[t.Any] = None,
        fallback: t.Optional[LocalCache] = None,
    ) -> "RedisCache":
        return cls(
            settings.redis.url,
            client=client,
            fallback=fallback if fallback is not None else LocalCache.from_config(settings.local),
            key_prefix=settings.redis.key_prefix,
            default_ttl_seconds=settings.local.default_ttl_seconds,
            operation_timeout_seconds=settings.redis.operation_timeout_seconds,
            connect_timeout_seconds=settings.redis.connect_timeout_seconds,
            breaker=CircuitBreaker(
                CircuitBreakerConfig(
                    failure_threshold=settings.resilience.failure_threshold,
                    reset_timeout_seconds=settings.resilience.cooldown_seconds,
                )
            ),
            latency_sample_size=settings.local.latency_sample_size,
        )

    @property
    def fallback(self) -> LocalCache:
        return self._fallback

    @property
    def is_degraded(self) -> bool:
        return not self._connected

    @property
    def pending_invalidations(self) -> int:
        """Invalidations waiting to be replayed against Redis (-1 for a full clear)."""
        return -1 if self._pending_clear else len(self._pending)

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}" if self._prefix else key

    # -- connectivity -------------------------------------------------

    async def connect(self) -> bool:
        """PING the server and resync; returns whether Redis is usable right now."""
        if not self._breaker.can_attempt():
            return False
        return await self._reconnect()

    async def _reconnect(self) -> bool:
        try:
            await asyncio.wait_for(self._client.ping(), self._connect_timeout)
            # re-checked here: nothing may be owed once the cache reports healthy
            while self._pending or self._pending_clear:
                await asyncio.wait_for(self._replay_pending(), self._connect_timeout)
        except asyncio.CancelledError:
            self._breaker.release()
            raise
        except Exception as exc:
            self._breaker.record_failure()
            self._connected = False
            _logger.warning("Redis unavailable at %s (%s); serving from in-memory fallback", self._url, exc)
            return False
        was_degraded = not self._connected
        self._breaker.record_success()
        self._connected = True
        if was_degraded:
            _logger.info("Redis cache connected; dropping %d entries held by the fallback", len(self._fallback))
            await self._fallback.clear()
        return True

    def _schedule_reconnect(self) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        if not self._breaker.can_attempt():
            return
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect())

    def _owe(self, kind: str, value: str) -> None:
        if self._pending_clear:
            return
        self._pending[(kind, value)] = None
        self._pending.move_to_end((kind, value))
        if len(self._pending) > self._pending_limit:
            _logger.warning(
                "More than %d invalidations missed while degraded; Redis prefix %r will be cleared on recovery",
                self._pending_limit,
                self._prefix,
            )
            self._owe_clear()

    def _owe_clear(self) -> None:
        self._pending.clear()
        self._pending_clear = True

    async def _replay_pending(self) -> None:
        """Apply to Redis every write and invalidation it missed while degraded.

        Loops until nothing is owed, so invalidations recorded while a replay
        is running are applied too. What was not confirmed is kept on failure.
        """
        while self._pending_clear or self._pending:
            if self._pending_clear:
                self._pending_clear = False
                try:
                    await self._delete_matching(self._key("*"))
                except BaseException:
                    self._owe_clear()
                    raise
                continue
            batch, self._pending = self._pending, OrderedDict()
            try:
                keys = [self._key(value) for kind, value in batch if kind == _KEY]
                for start in range(0, len(keys), _DELETE_BATCH):
                    await self._client.delete(*keys[start : start + _DELETE_BATCH])
                for kind, value in batch:
                    if kind == _PATTERN:
                        await self._delete_matching(self._key(value))
            except BaseException:
                if not self._pending_clear:
                    batch.update(self._pending)
                    self._pending = batch
                    if len(batch) > self._pending_limit:
                        self._owe_clear()
                raise
            _logger.debug("Replayed %d missed invalidations against Redis", len(batch))

    async def _route(
        self,
        operation: str,
        remote: t.Callable[[], t.Awaitable[t.Any]],
        local: t.Callable[[], t.Awaitable[t.Any]],
    ) -> t.Any:
        if not self._connected:
            self._schedule_reconnect()
            _logger.debug("Redis unavailable; %s served by fallback", operation)
            return await local()
        try:
            return await self._breaker.run(lambda: asyncio.wait_for(remote(), self._op_timeout))
        except Exception as exc:
            self._connected = False
            _logger.warning(
                "Redis %s failed (%s: %s); degraded to in-memory fallback", operation, type(exc).__name__, exc
            )
        return await local()

    # -- data plane ---------------------------------------------------

    async def _remote_get(self, key: str) -> t.Optional[t.Any]:
        return self._decode(key, await self._client.get(self._key(key)))

    async def _local_get(self, key: str) -> t.Optional[t.Any]:
        return self._decode(key, await self._fallback.get(key))

    @staticmethod
    def _decode(key: str, raw: t.Optional[str]) -> t.Optional[t.Any]:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            _logger.warning("Discarding undecodable cache value at %s", key)
            return None

    async def get(self, key: str) -> t.Optional[t.Any]:
        with self._metrics.timed("get"):
            value = await self._route("get", lambda: self._remote_get(key), lambda: self._local_get(key))
        if value is None:
            self._metrics.record_miss()
        else:
            self._metrics.record_hit()
        return value

    async def set(self, key: str, value: t.Any, ttl_seconds: t.Optional[float] = None) -> None:
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        with self._metrics.timed("set"):
            try:
                payload = json.dumps(value)
            except (TypeError, ValueError) as exc:
                _logger.warning("Value for %s is not JSON serializable (%s); dropping the key instead", key, exc)
                await self.delete(key)
                return

            async def remote() -> None:
                if ttl <= 0:
                    await self._client.delete(self._key(key))
                    return
                await self._client.set(self._key(key), payload, px=max(1, int(ttl * 1000)))

            async def local() -> None:
                self._owe(_KEY, key)
                await self._fallback.set(key, payload, ttl)

            await self._route("set", remote, local)

    async def delete(self, key: str) -> None:
        async def local() -> None:
            self._owe(_KEY, key)

        await self._route("delete", lambda: self._client.delete(self._key(key)), local)
        await self._fallback.delete(key)

    async def _delete_matching(self, match: str) -> int:
        batch: t.List[str] = []
        deleted = 0
        async for redis_key in self._client.scan_iter(match=match):
            batch.append(redis_key)
            if len(batch) >= _DELETE_BATCH:
                deleted += await self._client.delete(*batch)
                batch = []
        if batch:
            deleted += await self._client.delete(*batch)
        return deleted

    async def delete_pattern(self, pattern: str) -> None:
        validate_pattern(pattern)

        async def local() -> None:
            self._owe(_PATTERN, pattern)

        deleted = await self._route("delete_pattern", lambda: self._delete_matching(self._key(pattern)), local)
        await self._fallback.delete_pattern(pattern)
        if deleted is not None:
            _logger.debug("Deleted pattern %s (%d remote keys)", pattern, deleted)

    async def clear(self) -> None:
        async def local() -> None:
            self._owe_clear()

        await self._route("clear", lambda: self._delete_matching(self._key("*")), local)
        await self._fallback.clear()
        _logger.info("Redis cache cleared (prefix=%r)", self._prefix)

    # -- observability ------------------------------------------------

    def get_backend(self) -> str:
        return DEGRADED_BACKEND_NAME if self.is_degraded else BACKEND_NAME

    def get_metrics(self) -> CacheMetrics:
        degraded = self.is_degraded
        return self._metrics.snapshot(
            # a shared remote keyspace has no cheap local size
            current_size=len(self._fallback) if degraded else -1,
            max_size=self._fallback.max_size,
            backend=DEGRADED_BACKEND_NAME if degraded else BACKEND_NAME,
        )

    async def close(self) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        closer = getattr(self._client, "aclose", None) or self._client.close
        await closer()
