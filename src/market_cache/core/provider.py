from __future__ import annotations

import logging
import threading
import typing as t

from market_cache.cache.base import CacheService
from market_cache.cache.local_cache import LocalCache
from market_cache.cache.redis_cache import RedisCache
from market_cache.utils.config import CacheSettings

_logger = logging.getLogger(__name__)


def build_cache(settings: CacheSettings) -> CacheService:
    """Resolve settings to a concrete backend.

    A configured redis endpoint yields a RedisCache wrapping a LocalCache built
    from the same local settings; otherwise the bare LocalCache is returned.
    """
    if settings.uses_redis:
        return RedisCache.from_settings(settings)
    return LocalCache.from_config(settings.local)


class CacheProvider:
    """Hands out the one cache instance shared by a process.

    The backend is chosen on the first `get()` and memoized; later calls never
    re-read configuration. Construct one provider at the application entry
    point and pass it to whatever needs caching.
    """

    def __init__(
        self,
        settings: t.Optional[CacheSettings] = None,
        *,
        factory: t.Callable[[CacheSettings], CacheService] = build_cache,
    ) -> None:
        self._settings = settings
        self._factory = factory
        self._lock = threading.Lock()
        self._cache: t.Optional[CacheService] = None

    @property
    def selected(self) -> t.Optional[CacheService]:
        return self._cache

    def get(self) -> CacheService:
        cache = self._cache
        if cache is not None:
            return cache
        with self._lock:
            if self._cache is None:
                settings = self._settings if self._settings is not None else CacheSettings.from_env()
                self._cache = self._factory(settings)
                _logger.info("Cache backend selected: %s", self._cache.get_backend())
            return self._cache
