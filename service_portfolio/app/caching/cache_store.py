"""
Cache store with Redis primary and in-process fallback.

A cache failure degrades performance, never correctness: every public method
fails open to a miss or a no-op, and backend health is only observable through
``is_available``, logs and metrics.
"""

import inspect
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, TYPE_CHECKING, Union

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from shared.config import BaseConfig
from shared.errors import CacheSerializationError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception
from .backends import CacheBackend, InMemoryCacheBackend, RedisCacheBackend
from .serialization import decode_value, encode_value

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


CONNECTION_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)

RECONNECT_STEP_SECONDS = 0.1
RECONNECT_MAX_DELAY_SECONDS = 3.0


class CacheStore:
    """Single point of access to cached values."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        *,
        remote: Optional[CacheBackend] = None,
        default_ttl: Optional[int] = None,
        connect_retry: Optional[RetryConfig] = None,
        socket_timeout: float = 5.0,
        reconnect: bool = True,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.logger = get_logger("portfolio.cache.store")
        self.metrics = metrics
        self.default_ttl = default_ttl
        self.reconnect = reconnect
        self.connect_retry = connect_retry or RetryConfig(
            max_attempts=3, base_delay=RECONNECT_STEP_SECONDS, max_delay=RECONNECT_MAX_DELAY_SECONDS
        )

        if remote is None and redis_url:
            remote = RedisCacheBackend(redis_url, socket_timeout=socket_timeout)
        self._remote = remote
        self._memory = InMemoryCacheBackend()

        self._available = False
        self._fallback_warned = False
        self._reconnect_attempts = 0
        self._next_reconnect_at = 0.0

        # Mutations made while Redis is unreachable, replayed on reconnect so
        # Redis never serves an entry that was invalidated during the outage
        self._pending_keys: Set[str] = set()
        self._pending_patterns: Set[str] = set()

    @classmethod
    def from_config(cls, config: BaseConfig, metrics: Optional["MetricsCollector"] = None) -> "CacheStore":
        """Build a store from service settings."""
        return cls(
            config.redis_url,
            default_ttl=config.cache_default_ttl,
            connect_retry=RetryConfig(
                max_attempts=config.cache_connect_attempts,
                base_delay=config.cache_connect_base_delay,
                max_delay=config.cache_connect_max_delay,
            ),
            socket_timeout=config.cache_socket_timeout,
            reconnect=config.cache_reconnect,
            metrics=metrics,
        )

    @property
    def is_available(self) -> bool:
        """Whether the networked backend is currently in use."""
        return self._available

    @property
    def is_configured(self) -> bool:
        return self._remote is not None

    @property
    def backend_name(self) -> str:
        return self._remote.name if self._available and self._remote else self._memory.name

    # ------------------------------------------------------------------ lifecycle

    async def connect(self) -> bool:
        """Connect to Redis. Never raises; returns the resulting availability."""
        if self._remote is None:
            if not self._fallback_warned:
                self.logger.warning("Redis URL not configured; using in-memory cache")
                self._fallback_warned = True
            return False

        @retry_on_exception(CONNECTION_ERRORS, self.connect_retry)
        async def _connect_remote():
            await self._remote.connect()

        try:
            await _connect_remote()
        except RetryError as exc:
            self.logger.error("Redis connection failed", error=str(exc.last_exception), attempts=exc.attempts)
            self._mark_unavailable()
            return False
        except Exception as exc:
            self.logger.error("Redis connection failed", error=str(exc))
            self._mark_unavailable()
            return False

        await self._mark_available()
        if self._available:
            self.logger.info("Redis cache connected", backend=self._remote.name)
        return self._available

    async def disconnect(self) -> None:
        """Release Redis and discard the fallback's entries."""
        if self._remote is not None:
            try:
                await self._remote.close()
            except Exception as exc:
                self.logger.warning("Error closing Redis connection", error=str(exc))
        await self._memory.close()
        self._pending_keys.clear()
        self._pending_patterns.clear()
        self._available = False
        self._publish_availability()
        self.logger.info("Cache store disconnected")

    # ----------------------------------------------------------------- operations

    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None on absence or any failure."""
        backend = await self._backend()
        try:
            raw = await backend.get(key)
        except Exception as exc:
            self._handle_backend_error("get", backend, exc, key=key)
            return None

        if raw is None:
            self._record("get", backend, "miss")
            return None

        try:
            value = decode_value(raw)
        except CacheSerializationError as exc:
            self.logger.error("Failed to deserialize cache value", key=key, error=exc.message)
            self._record("get", backend, "error")
            return None

        self._record("get", backend, "hit")
        return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store value under key. Returns False when nothing was stored."""
        try:
            data = encode_value(value)
        except CacheSerializationError as exc:
            self.logger.error("Failed to serialize cache value", key=key, error=exc.details.get("error"))
            return False

        backend = await self._backend()
        effective_ttl = ttl if ttl is not None else self.default_ttl
        try:
            await backend.set(key, data, effective_ttl)
        except Exception as exc:
            if self._handle_backend_error("set", backend, exc, key=key):
                # Redis may still hold the previous value
                self._pending_keys.add(key)
            return False

        self._track_degraded_key(backend, key)
        self._record("set", backend, "ok")
        return True

    async def delete(self, *keys: str) -> int:
        """Remove keys; deleting an absent key is not an error."""
        if not keys:
            return 0

        backend = await self._backend()
        try:
            removed = await backend.delete(*keys)
        except Exception as exc:
            if self._handle_backend_error("delete", backend, exc, keys=list(keys)):
                self._pending_keys.update(keys)
                await self._memory.delete(*keys)
            return 0

        for key in keys:
            self._track_degraded_key(backend, key)
        self._record("delete", backend, "ok")
        return removed

    async def clear_pattern(self, pattern: str) -> int:
        """Best-effort removal of every key matching a single-wildcard glob."""
        backend = await self._backend()
        try:
            removed = await backend.clear_pattern(pattern)
        except Exception as exc:
            if self._handle_backend_error("clear_pattern", backend, exc, pattern=pattern):
                self._pending_patterns.add(pattern)
                await self._memory.clear_pattern(pattern)
            return 0

        if backend is self._memory and self._remote is not None:
            self._pending_patterns.add(pattern)
        if removed:
            self.logger.info("Cleared cache pattern", pattern=pattern, keys_count=removed, backend=backend.name)
        self._record("clear_pattern", backend, "ok")
        return removed

    async def keys(self, pattern: str) -> List[str]:
        """Keys currently matching pattern, or [] on failure."""
        backend = await self._backend()
        try:
            return await backend.keys(pattern)
        except Exception as exc:
            self._handle_backend_error("keys", backend, exc, pattern=pattern)
            return []

    async def get_ttl(self, key: str) -> int:
        """Remaining lifetime in seconds; -1 for missing or non-expiring keys."""
        backend = await self._backend()
        try:
            return await backend.ttl(key)
        except Exception as exc:
            self._handle_backend_error("get_ttl", backend, exc, key=key)
            return -1

    async def extend(self, key: str, ttl: int) -> bool:
        """Reset the expiry of an existing key."""
        backend = await self._backend()
        try:
            return await backend.expire(key, ttl)
        except Exception as exc:
            self._handle_backend_error("extend", backend, exc, key=key)
            return False

    async def remember(
        self,
        key: str,
        factory: Callable[[], Union[Any, Awaitable[Any]]],
        ttl: Optional[int] = None,
    ) -> Any:
        """Return the cached value or compute, store and return it.

        ``None`` results are returned but never stored. Exceptions raised by
        ``factory`` propagate, since they belong to the caller's work.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = factory()
        if inspect.isawaitable(value):
            value = await value

        if value is not None:
            await self.set(key, value, ttl)
        return value

    async def health_check(self) -> Dict[str, Any]:
        """Report backend state for health endpoints."""
        backend = await self._backend()
        try:
            ping = await backend.ping()
        except Exception as exc:
            self._handle_backend_error("ping", backend, exc)
            ping = False

        return {
            "backend": self.backend_name,
            "configured": self.is_configured,
            "available": self._available,
            "ping": ping,
        }

    async def get_stats(self) -> Dict[str, Any]:
        """Lightweight statistics for admin endpoints."""
        return {
            "backend": self.backend_name,
            "configured": self.is_configured,
            "available": self._available,
            "fallback_entries": len(self._memory),
            "pending_invalidations": len(self._pending_keys) + len(self._pending_patterns),
        }

    # ------------------------------------------------------------------ internals

    async def _backend(self) -> CacheBackend:
        """Pick the backend for one operation, attempting a due reconnect."""
        if self._available and self._remote is not None:
            return self._remote

        if self._remote is not None and self.reconnect and self._reconnect_attempts and self._reconnect_due():
            await self._try_reconnect()
            if self._available:
                return self._remote

        return self._memory

    def _reconnect_due(self) -> bool:
        return time.monotonic() >= self._next_reconnect_at

    async def _try_reconnect(self) -> None:
        try:
            await self._remote.connect()
        except Exception as exc:
            self._reconnect_attempts += 1
            self._schedule_reconnect()
            self.logger.debug("Redis reconnect failed", error=str(exc), attempt=self._reconnect_attempts)
            return

        await self._mark_available()
        if self._available:
            self.logger.info("Redis cache reconnected")

    def _schedule_reconnect(self) -> None:
        delay = min(self._reconnect_attempts * RECONNECT_STEP_SECONDS, RECONNECT_MAX_DELAY_SECONDS)
        self._next_reconnect_at = time.monotonic() + delay

    async def _mark_available(self) -> None:
        """Switch to Redis, replaying outage invalidations first."""
        if self._pending_keys or self._pending_patterns:
            try:
                if self._pending_keys:
                    await self._remote.delete(*sorted(self._pending_keys))
                for pattern in sorted(self._pending_patterns):
                    await self._remote.clear_pattern(pattern)
            except Exception as exc:
                self.logger.error("Failed to replay invalidations; staying on fallback", error=str(exc))
                self._mark_unavailable()
                return
            self.logger.info(
                "Replayed invalidations from fallback period",
                keys=len(self._pending_keys),
                patterns=len(self._pending_patterns),
            )
            self._pending_keys.clear()
            self._pending_patterns.clear()

        # Fallback entries are dropped so a later outage cannot resurface them
        await self._memory.close()
        self._available = True
        self._reconnect_attempts = 0
        self._publish_availability()

    def _mark_unavailable(self) -> None:
        was_available = self._available
        self._available = False
        if self._reconnect_attempts == 0:
            self._reconnect_attempts = 1
        self._schedule_reconnect()
        self._publish_availability()
        if was_available:
            self.logger.warning("Redis unavailable; falling back to in-memory cache")

    def _track_degraded_key(self, backend: CacheBackend, key: str) -> None:
        if backend is self._memory and self._remote is not None:
            self._pending_keys.add(key)

    def _handle_backend_error(self, operation: str, backend: CacheBackend, exc: Exception, **context) -> bool:
        """Log and count a failed operation. True when Redis was lost and the store fell back."""
        self.logger.error("Cache operation failed", operation=operation, backend=backend.name, error=str(exc), **context)
        self._record(operation, backend, "error")
        if backend is self._remote and isinstance(exc, CONNECTION_ERRORS):
            self._mark_unavailable()
            return True
        return False

    def _record(self, operation: str, backend: CacheBackend, result: str) -> None:
        if self.metrics:
            self.metrics.record_cache_operation(operation, backend.name, result)

    def _publish_availability(self) -> None:
        if self.metrics:
            self.metrics.set_cache_availability(self._available)


_default_store: Optional[CacheStore] = None


def get_cache_store() -> CacheStore:
    """Process-wide store used by collaborators that are not handed one."""
    global _default_store
    if _default_store is None:
        _default_store = CacheStore.from_config(BaseConfig())
    return _default_store


def set_cache_store(store: Optional[CacheStore]) -> None:
    """Install (or reset with None) the process-wide store."""
    global _default_store
    _default_store = store
