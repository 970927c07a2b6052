from __future__ import annotations


class CacheError(Exception):
    """Base class for errors raised by market_cache."""


class ConfigurationError(CacheError, ValueError):
    """Invalid construction parameters. Fatal at startup."""


class InvalidPatternError(CacheError, ValueError):
    """A delete pattern uses syntax other than the `*` wildcard."""
