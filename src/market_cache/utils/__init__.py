"""Configuration and resilience helpers."""

from .config import CacheSettings, LocalCacheConfig, RedisConfig, ResilienceConfig
from .resilience import CircuitBreaker, CircuitBreakerConfig, CircuitOpenError, CircuitState

__all__ = [
    "CacheSettings",
    "LocalCacheConfig",
    "RedisConfig",
    "ResilienceConfig",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitOpenError",
    "CircuitState",
]
