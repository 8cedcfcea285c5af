"""
Portfolio caching package.

Provides the cache primitives shared by route handlers: namespaced keys, a
store that fails open when Redis is unreachable, and memoization of expensive
work. The cache is always a derived view of authoritative data; prefer explicit
invalidation over long TTLs.
"""

from .namespaces import CACHE_KEYS, KeyNamespace
from .cache_store import CacheStore, get_cache_store, set_cache_store
from .memoize import build_memo_key, memoize, memoized

__all__ = [
    "CACHE_KEYS",
    "KeyNamespace",
    "CacheStore",
    "get_cache_store",
    "set_cache_store",
    "build_memo_key",
    "memoize",
    "memoized",
]
