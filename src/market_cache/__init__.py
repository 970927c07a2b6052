"""market_cache

Read-through cache for the marketplace backend: a bounded in-process LRU/TTL
store, a Redis tier that fails open to that store, per-process backend
selection, and the shared key and TTL policy used by every caller.
"""

from .cache import CacheService, LocalCache, RedisCache
from .core import TTL, CacheProvider, CacheTTL, build_cache, cached, invalidate
from .errors import CacheError, ConfigurationError, InvalidPatternError
from .monitoring import CacheMetrics, HealthCheckResult, check_cache_health
from .utils.config import CacheSettings

__all__ = [
    "CacheService",
    "LocalCache",
    "RedisCache",
    "CacheProvider",
    "build_cache",
    "CacheSettings",
    "CacheTTL",
    "TTL",
    "cached",
    "invalidate",
    "CacheMetrics",
    "HealthCheckResult",
    "check_cache_health",
    "CacheError",
    "ConfigurationError",
    "InvalidPatternError",
]

__version__ = "0.1.0"
