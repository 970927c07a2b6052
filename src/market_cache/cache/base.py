from __future__ import annotations

import re
import typing as t
from abc import ABC, abstractmethod

from market_cache.errors import InvalidPatternError
from market_cache.monitoring.metrics import CacheMetrics

# Glob syntax we refuse rather than silently treat as literal text
_UNSUPPORTED_GLOB = set("?[]\\")


def validate_pattern(pattern: t.Any) -> str:
    if not isinstance(pattern, str):
        raise InvalidPatternError(f"pattern must be a string, got {type(pattern).__name__}")
    if not pattern:
        raise InvalidPatternError("pattern must not be empty")
    bad = sorted(_UNSUPPORTED_GLOB.intersection(pattern))
    if bad:
        raise InvalidPatternError(f"pattern {pattern!r} uses unsupported glob syntax {''.join(bad)!r}; only '*' is allowed")
    return pattern


def pattern_to_regex(pattern: str) -> "re.Pattern[str]":
    """Compile a `*`-only glob into an anchored regex."""
    validate_pattern(pattern)
    body = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.compile(f"^{body}$", re.DOTALL)


class CacheService(ABC):
    """Contract shared by every cache backend.

    Data-plane operations never raise for backend reasons: a lookup that cannot
    be served is a miss. Only `delete_pattern` rejects malformed input.

    Values must be JSON-compatible. The in-process store hands back the very
    object it was given, while the Redis tier returns a decoded copy, so treat
    both what you store and what you read as read-only.
    """

    @abstractmethod
    async def get(self, key: str) -> t.Optional[t.Any]:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: t.Any, ttl_seconds: t.Optional[float] = None) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def clear(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    def get_metrics(self) -> CacheMetrics:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    def get_backend(self) -> str:  # pragma: no cover - interface
        raise NotImplementedError

    async def get_or_set(
        self,
        key: str,
        loader: t.Callable[[], t.Awaitable[t.Any]],
        ttl_seconds: t.Optional[float] = None,
    ) -> t.Any:
        """Return the cached value for `key`, computing and storing it on a miss.

        `None` results are returned but not cached. Concurrent misses on the
        same key may each call the loader; the last write wins.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached
        value = await loader()
        if value is not None:
            await self.set(key, value, ttl_seconds)
        return value
