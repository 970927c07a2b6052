from __future__ import annotations

import functools
from typing import Any, Awaitable, Callable, Iterable, Optional

from .provider import CacheProvider


def cached(provider: CacheProvider, key_fn: Callable[..., str], ttl_seconds: Optional[float] = None):
    """
    @cached(provider, lambda product_id: product_key(product_id), ttl_seconds=TTL.products)
    async def load_product(product_id: str): ...
    """

    def wrap(fn: Callable[..., Awaitable[Any]]):
        @functools.wraps(fn)
        async def inner(*args, **kwargs):
            key = key_fn(*args, **kwargs)
            return await provider.get().get_or_set(key, lambda: fn(*args, **kwargs), ttl_seconds)

        return inner

    return wrap


def invalidate(
    provider: CacheProvider,
    *key_fns: Callable[..., str],
    patterns: Iterable[Callable[..., str]] = (),
):
    """
    @invalidate(provider, lambda pid, seller_id, data: product_key(pid),
                patterns=[lambda pid, seller_id, data: seller_products_pattern(seller_id)])
    async def update_product(pid, seller_id, data): ...

    Keys are dropped only after the wrapped call succeeds. Cache deletes do not
    raise for backend failures, so the writer's result is always returned;
    a malformed pattern raises InvalidPatternError.
    """
    pattern_fns = list(patterns)

    def wrap(fn: Callable[..., Awaitable[Any]]):
        @functools.wraps(fn)
        async def inner(*args, **kwargs):
            out = await fn(*args, **kwargs)
            cache = provider.get()
            for key_fn in key_fns:
                await cache.delete(key_fn(*args, **kwargs))
            for pattern_fn in pattern_fns:
                await cache.delete_pattern(pattern_fn(*args, **kwargs))
            return out

        return inner

    return wrap
