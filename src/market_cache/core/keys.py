from __future__ import annotations

import hashlib
import json
import os
import typing as t
from dataclasses import dataclass, fields
from urllib.parse import quote

from market_cache.errors import ConfigurationError

# Single place for cache key construction and cache lifetimes.
# Keys are `<entity>:<component>:...`; components are percent-encoded so that a
# `:` or `*` inside an id can never change the shape of a key or a pattern.

SEPARATOR = ":"


def _part(value: t.Any) -> str:
    return quote(str(value), safe="-_.~@+=,")


def fingerprint(value: t.Any) -> str:
    """Stable short digest of a JSON-compatible structure (key order ignored)."""
    canonical = json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:32]


def generic(bucket: str, *parts: t.Any) -> str:
    return SEPARATOR.join([bucket, *(_part(p) for p in parts)])


def _listing_key(namespace: t.Sequence[t.Any], filters: t.Optional[t.Mapping[str, t.Any]]) -> str:
    return generic(*namespace, fingerprint(filters) if filters else "all")


def product_key(product_id: t.Any) -> str:
    return generic("product", product_id)


def product_slug_key(seller_id: t.Any, slug: str) -> str:
    return generic("product", "slug", seller_id, slug)


def product_list_key(seller_id: t.Any, filters: t.Optional[t.Mapping[str, t.Any]] = None) -> str:
    return _listing_key(("products", "seller", seller_id), filters)


def pricing_key(seller_id: t.Any, items: t.Any) -> str:
    return generic("pricing", seller_id, fingerprint(items))


def currency_rates_key() -> str:
    return generic("currency", "rates")


def currency_conversion_key(from_currency: str, to_currency: str) -> str:
    return generic("currency", from_currency.upper(), to_currency.upper())


def quotation_key(quotation_id: t.Any) -> str:
    return generic("quotation", quotation_id)


def seller_quotations_key(seller_id: t.Any) -> str:
    return generic("quotations", "seller", seller_id)


def wholesale_rules_key(seller_id: t.Any) -> str:
    return generic("wholesale", "rules", seller_id)


def store_key(seller_id: t.Any) -> str:
    return generic("store", seller_id)


def wholesale_invitations_key(seller_id: t.Any, filters: t.Optional[t.Mapping[str, t.Any]] = None) -> str:
    return _listing_key(("wholesale", "invitations", "seller", seller_id), filters)


def wholesale_grants_key(party: str, party_id: t.Any, filters: t.Optional[t.Mapping[str, t.Any]] = None) -> str:
    """`party` is "buyer" or "seller"."""
    return _listing_key(("wholesale", "grants", party, party_id), filters)


def wholesale_orders_key(party: str, party_id: t.Any, filters: t.Optional[t.Mapping[str, t.Any]] = None) -> str:
    return _listing_key(("wholesale", "orders", party, party_id), filters)


# Invalidation patterns. Each matches every listing variant of one owner and
# nothing belonging to an owner whose id merely shares a prefix.


def seller_products_pattern(seller_id: t.Any) -> str:
    return generic("products", "seller", seller_id) + SEPARATOR + "*"


def wholesale_invitations_pattern(seller_id: t.Any) -> str:
    return generic("wholesale", "invitations", "seller", seller_id) + SEPARATOR + "*"


def wholesale_grants_pattern(party: str, party_id: t.Any) -> str:
    return generic("wholesale", "grants", party, party_id) + SEPARATOR + "*"


def wholesale_orders_pattern(party: str, party_id: t.Any) -> str:
    return generic("wholesale", "orders", party, party_id) + SEPARATOR + "*"


@dataclass(frozen=True)
class CacheTTL:
    """Default lifetime, in seconds, per cached entity type."""

    products: int = 300
    quotations: int = 300
    pricing: int = 300
    currency: int = 3600
    volatile: int = 60
    session: int = 86400

    def __post_init__(self) -> None:
        for f in fields(self):
            if getattr(self, f.name) < 0:
                raise ConfigurationError(f"TTL for {f.name} must be >= 0, got {getattr(self, f.name)}")

    @classmethod
    def from_env(cls, environ: t.Optional[t.Mapping[str, str]] = None) -> "CacheTTL":
        """Read `CACHE_TTL_<ENTITY>` overrides, e.g. CACHE_TTL_CURRENCY=7200."""
        env = os.environ if environ is None else environ
        overrides: t.Dict[str, int] = {}
        for f in fields(cls):
            raw = env.get(f"CACHE_TTL_{f.name.upper()}")
            if raw is None or raw.strip() == "":
                continue
            try:
                overrides[f.name] = int(raw)
            except ValueError as exc:
                raise ConfigurationError(f"CACHE_TTL_{f.name.upper()} must be an integer, got {raw!r}") from exc
        return cls(**overrides)


TTL = CacheTTL.from_env()
