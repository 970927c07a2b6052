"""Backend selection, key policy and read-through helpers."""

from .keys import TTL, CacheTTL, fingerprint, generic
from .provider import CacheProvider, build_cache
from .read_through import cached, invalidate

__all__ = [
    # Backend selection
    "CacheProvider",
    "build_cache",
    # Key & freshness policy
    "CacheTTL",
    "TTL",
    "fingerprint",
    "generic",
    # Read-through
    "cached",
    "invalidate",
]
