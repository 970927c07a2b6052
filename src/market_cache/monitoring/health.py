from __future__ import annotations

import logging
import time
import typing as t
import uuid
from dataclasses import dataclass

if t.TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from market_cache.cache.base import CacheService

_logger = logging.getLogger(__name__)

HEALTH_KEY_PREFIX = "health-check"
HEALTH_TTL_SECONDS = 10


@dataclass
class HealthCheckResult:
    status: str  # up | down
    backend: str
    response_time_ms: float = 0.0
    error: t.Optional[str] = None

    @property
    def is_up(self) -> bool:
        return self.status == "up"


async def check_cache_health(cache: "CacheService") -> HealthCheckResult:
    """Round-trip a throwaway value through the cache.

    A degraded distributed cache still reports "up" because its fallback store
    answers; the `backend` field tells the two apart.
    """
    key = f"{HEALTH_KEY_PREFIX}:{uuid.uuid4().hex}"
    expected = "ok"
    start = time.perf_counter()
    try:
        await cache.set(key, expected, HEALTH_TTL_SECONDS)
        retrieved = await cache.get(key)
        if retrieved != expected:
            raise RuntimeError("cache value mismatch")
        await cache.delete(key)
    except Exception as exc:
        _logger.error("Cache health check failed: %s", exc)
        return HealthCheckResult(status="down", backend=cache.get_backend(), error=str(exc))
    elapsed_ms = (time.perf_counter() - start) * 1000.0
    _logger.debug("Cache health check passed (%.2fms)", elapsed_ms)
    return HealthCheckResult(status="up", backend=cache.get_backend(), response_time_ms=elapsed_ms)
