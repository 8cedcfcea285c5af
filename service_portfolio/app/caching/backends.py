"""
Cache backends.

``CacheStore`` talks to one of two interchangeable backends: Redis when it is
reachable, and an in-process mapping otherwise. Backends move encoded bytes and
raise freely; failure handling belongs to the store.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError

from .serialization import glob_to_redis_match, glob_to_regex, matches

# Redis DEL accepts many keys; keep batches bounded for large invalidations
DELETE_BATCH_SIZE = 500


class CacheBackend(ABC):
    """Key-value backend holding encoded cache payloads."""

    name: str = "abstract"

    @abstractmethod
    async def connect(self) -> None:
        """Establish the backend connection, raising on failure."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Return the raw payload for key, or None."""

    @abstractmethod
    async def set(self, key: str, data: bytes, ttl: Optional[int] = None) -> None:
        """Store a raw payload."""

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Remove keys, returning how many existed."""

    @abstractmethod
    async def keys(self, pattern: str) -> List[str]:
        """List keys matching a single-wildcard glob."""

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """Remaining lifetime in seconds, -1 when missing or not expiring."""

    @abstractmethod
    async def expire(self, key: str, ttl: int) -> bool:
        """Reset the lifetime of an existing key."""

    @abstractmethod
    async def ping(self) -> bool:
        """Round-trip health probe."""

    @abstractmethod
    async def close(self) -> None:
        """Release resources."""

    async def clear_pattern(self, pattern: str) -> int:
        """Delete every key matching pattern."""
        matched = await self.keys(pattern)
        removed = 0
        for start in range(0, len(matched), DELETE_BATCH_SIZE):
            removed += await self.delete(*matched[start:start + DELETE_BATCH_SIZE])
        return removed


class RedisCacheBackend(CacheBackend):
    """Redis backend built on redis.asyncio."""

    name = "redis"

    def __init__(
        self,
        redis_url: str,
        *,
        client: Optional[redis.Redis] = None,
        socket_timeout: float = 5.0,
        scan_count: int = 500,
    ):
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self.scan_count = scan_count
        self._client = client
        self._injected = client is not None

    def _build_client(self) -> redis.Redis:
        return redis.from_url(
            self.redis_url,
            socket_connect_timeout=self.socket_timeout,
            socket_timeout=self.socket_timeout,
            retry_on_timeout=True,
            health_check_interval=30,
            # per-command retries back off exponentially from 100ms, capped at 3s
            retry=Retry(ExponentialBackoff(cap=3.0, base=0.1), 3),
        )

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RedisConnectionError("Redis client is not connected")
        return self._client

    async def connect(self) -> None:
        if self._client is None:
            self._client = self._build_client()
        await self._client.ping()

    async def get(self, key: str) -> Optional[bytes]:
        return await self.client.get(key)

    async def set(self, key: str, data: bytes, ttl: Optional[int] = None) -> None:
        if ttl:
            await self.client.set(key, data, ex=ttl)
        else:
            await self.client.set(key, data)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self.client.delete(*keys))

    async def keys(self, pattern: str) -> List[str]:
        found: List[str] = []
        async for key in self.client.scan_iter(match=glob_to_redis_match(pattern), count=self.scan_count):
            found.append(key.decode("utf-8") if isinstance(key, bytes) else key)
        return found

    async def ttl(self, key: str) -> int:
        remaining = int(await self.client.ttl(key))
        return remaining if remaining >= 0 else -1

    async def expire(self, key: str, ttl: int) -> bool:
        return bool(await self.client.expire(key, ttl))

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def close(self) -> None:
        if self._client is None:
            return
        await self._client.aclose()
        if not self._injected:
            self._client = None


class InMemoryCacheBackend(CacheBackend):
    """Process-local fallback. Entries never expire; only deletion removes them."""

    name = "memory"

    def __init__(self):
        self._entries: Dict[str, bytes] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def connect(self) -> None:
        return None

    async def get(self, key: str) -> Optional[bytes]:
        return self._entries.get(key)

    async def set(self, key: str, data: bytes, ttl: Optional[int] = None) -> None:
        self._entries[key] = data

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._entries.pop(key, None) is not None:
                removed += 1
        return removed

    async def keys(self, pattern: str) -> List[str]:
        compiled = glob_to_regex(pattern)
        return [key for key in list(self._entries) if matches(compiled, key)]

    async def ttl(self, key: str) -> int:
        return -1

    async def expire(self, key: str, ttl: int) -> bool:
        return False

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._entries.clear()
