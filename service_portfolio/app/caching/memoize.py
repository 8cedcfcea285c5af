"""
Memoization of expensive work through the cache store.

There is no request coalescing: two concurrent calls on a cold key may both
run the work. Wrapped work must be idempotent.
"""

import functools
import hashlib
import json
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from .cache_store import CacheStore, get_cache_store

KeyBuilder = Callable[[str, Tuple[Any, ...], Dict[str, Any]], str]


def build_memo_key(key_prefix: str, args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> str:
    """Derive ``<prefix>:<md5 of arguments>``."""
    material = json.dumps([list(args), kwargs], sort_keys=True, default=str, separators=(",", ":"))
    digest = hashlib.md5(material.encode("utf-8")).hexdigest()
    return f"{key_prefix.rstrip(':')}:{digest}"


def memoize(
    key_prefix: str,
    ttl: Optional[int],
    work: Callable[..., Union[Any, Awaitable[Any]]],
    *,
    store: Optional[CacheStore] = None,
    key_builder: Optional[KeyBuilder] = None,
) -> Callable[..., Awaitable[Any]]:
    """Wrap work so repeated calls with equal arguments reuse the stored result.

    Args:
        key_prefix: Namespace for the derived keys, usually a KeyNamespace value
            plus an operation name.
        ttl: Seconds the result stays valid; None defers to the store default.
        work: Coroutine function or plain callable. None results are not stored.
        store: Cache store to use; the process-wide store when omitted.
        key_builder: Override for key derivation.
    """
    make_key = key_builder or build_memo_key

    def _store() -> CacheStore:
        return store if store is not None else get_cache_store()

    @functools.wraps(work)
    async def memoized_work(*args, **kwargs):
        key = make_key(key_prefix, args, kwargs)
        return await _store().remember(key, lambda: work(*args, **kwargs), ttl)

    def cache_key(*args, **kwargs) -> str:
        return make_key(key_prefix, args, kwargs)

    async def invalidate(*args, **kwargs) -> int:
        return await _store().delete(cache_key(*args, **kwargs))

    memoized_work.cache_key = cache_key
    memoized_work.invalidate = invalidate
    return memoized_work


def memoized(key_prefix: str, ttl: Optional[int] = None, *, store: Optional[CacheStore] = None):
    """Decorator form of memoize for module-level functions."""

    def decorator(func):
        return memoize(key_prefix, ttl, func, store=store)

    return decorator
