from .base import CacheService, pattern_to_regex, validate_pattern
from .local_cache import CacheEntry, LocalCache
from .redis_cache import RedisCache

__all__ = [
    "CacheService",
    "CacheEntry",
    "LocalCache",
    "RedisCache",
    "pattern_to_regex",
    "validate_pattern",
]
