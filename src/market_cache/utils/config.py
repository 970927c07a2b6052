from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from market_cache.errors import ConfigurationError

BACKEND_MEMORY = "memory"
BACKEND_REDIS = "redis"


@dataclass
class LocalCacheConfig:
    max_size: int = 1000
    default_ttl_seconds: float = 300
    latency_sample_size: int = 1000
    sweep_interval_seconds: float = 60

    def __post_init__(self) -> None:
        if self.max_size <= 0:
            raise ConfigurationError(f"max_size must be positive, got {self.max_size}")
        if self.default_ttl_seconds < 0:
            raise ConfigurationError(f"default_ttl_seconds must be >= 0, got {self.default_ttl_seconds}")
        if self.latency_sample_size <= 0:
            raise ConfigurationError(f"latency_sample_size must be positive, got {self.latency_sample_size}")
        if self.sweep_interval_seconds < 0:
            raise ConfigurationError(f"sweep_interval_seconds must be >= 0, got {self.sweep_interval_seconds}")


@dataclass
class RedisConfig:
    url: Optional[str] = None
    key_prefix: str = "cache"
    operation_timeout_seconds: float = 0.5
    connect_timeout_seconds: float = 1.0

    def __post_init__(self) -> None:
        if self.operation_timeout_seconds <= 0 or self.connect_timeout_seconds <= 0:
            raise ConfigurationError("redis timeouts must be positive")


@dataclass
class ResilienceConfig:
    failure_threshold: int = 1
    cooldown_seconds: float = 30.0

    def __post_init__(self) -> None:
        if self.failure_threshold <= 0:
            raise ConfigurationError(f"failure_threshold must be positive, got {self.failure_threshold}")
        if self.cooldown_seconds < 0:
            raise ConfigurationError(f"cooldown_seconds must be >= 0, got {self.cooldown_seconds}")


@dataclass
class CacheSettings:
    backend: Optional[str] = None  # memory | redis; None picks redis iff a url is configured
    local: LocalCacheConfig = dataclasses.field(default_factory=LocalCacheConfig)
    redis: RedisConfig = dataclasses.field(default_factory=RedisConfig)
    resilience: ResilienceConfig = dataclasses.field(default_factory=ResilienceConfig)

    def __post_init__(self) -> None:
        if self.backend is not None:
            self.backend = self.backend.strip().lower() or None
        if self.backend not in (None, BACKEND_MEMORY, BACKEND_REDIS):
            raise ConfigurationError(f"unknown cache backend {self.backend!r}")
        if self.backend == BACKEND_REDIS and not self.redis.url:
            raise ConfigurationError("redis backend selected but no redis url is configured")

    @property
    def uses_redis(self) -> bool:
        if self.backend is None:
            return bool(self.redis.url)
        return self.backend == BACKEND_REDIS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheSettings":
        def build(dc_cls, key):
            values = data.get(key, {})
            return dc_cls(**values)

        return cls(
            backend=data.get("backend"),
            local=build(LocalCacheConfig, "local"),
            redis=build(RedisConfig, "redis"),
            resilience=build(ResilienceConfig, "resilience"),
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CacheSettings":
        env = os.environ if environ is None else environ

        def number(name: str, default: float, cast=float):
            raw = env.get(name)
            if raw is None or raw.strip() == "":
                return default
            try:
                return cast(raw)
            except ValueError as exc:
                raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc

        return cls(
            backend=env.get("CACHE_BACKEND") or None,
            local=LocalCacheConfig(
                max_size=number("CACHE_MAX_SIZE", 1000, int),
                default_ttl_seconds=number("CACHE_DEFAULT_TTL", 300),
                sweep_interval_seconds=number("CACHE_SWEEP_INTERVAL", 60),
            ),
            redis=RedisConfig(
                url=env.get("REDIS_URL") or None,
                key_prefix=env.get("CACHE_KEY_PREFIX", "cache"),
                operation_timeout_seconds=number("CACHE_REDIS_TIMEOUT", 0.5),
            ),
            resilience=ResilienceConfig(
                cooldown_seconds=number("CACHE_REDIS_COOLDOWN", 30.0),
            ),
        )
