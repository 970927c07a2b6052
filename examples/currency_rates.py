#!/usr/bin/env python3

import asyncio
import json
import logging
import random
import time
from dataclasses import asdict
from typing import Dict, Optional

import click

from market_cache import TTL, CacheProvider, CacheSettings, check_cache_health
from market_cache.core import keys


async def fetch_exchange_rates() -> Dict[str, object]:
    # Stand-in for the upstream rates API
    await asyncio.sleep(0.2)
    return {
        "baseCurrency": "USD",
        "rates": {"USD": 1.0, "EUR": round(0.9 + random.random() / 20, 4), "GBP": round(0.78 + random.random() / 20, 4)},
        "lastUpdated": int(time.time()),
    }


async def run(provider: CacheProvider, lookups: int) -> None:
    cache = provider.get()
    for i in range(lookups):
        start = time.perf_counter()
        rates = await cache.get_or_set(keys.currency_rates_key(), fetch_exchange_rates, TTL.currency)
        print(f"lookup {i + 1}: {rates['rates']} in {(time.perf_counter() - start) * 1000:.1f}ms")

    health = await check_cache_health(cache)
    print("health:", json.dumps(asdict(health)))
    print("metrics:", json.dumps(cache.get_metrics().as_dict(), indent=2))


@click.command()
@click.option("--redis-url", default=None, help="Redis URL; omit to use the in-process cache only")
@click.option("--lookups", default=2, type=int, help="How many times to read the rates")
@click.option("--verbose/--quiet", default=False, help="Show cache logs")
def main(redis_url: Optional[str], lookups: int, verbose: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)
    settings = CacheSettings.from_env()
    if redis_url:
        settings = CacheSettings.from_dict({"backend": "redis", "redis": {"url": redis_url}})
    asyncio.run(run(CacheProvider(settings), lookups))


if __name__ == "__main__":
    main()
