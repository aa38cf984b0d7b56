# src/newswire/services/news_cache.py
"""
News Cache Layer
TTL key-value cache for aggregated results

Every backend degrades to a cold cache instead of raising: when Redis is
unreachable `get` returns None and `set`/`invalidate` do nothing, so callers
never branch on cache availability.
"""

import asyncio
import fnmatch
import hashlib
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from newswire.config import Settings

logger = logging.getLogger(__name__)

# Timeout settings
REDIS_CONNECT_TIMEOUT = 2   # seconds
REDIS_SOCKET_TIMEOUT = 2    # seconds
REDIS_CLOSE_TIMEOUT = 5     # seconds - for graceful close
REDIS_MAX_CONNECTIONS = 20

DEFAULT_TTL_SECONDS = 300
NEWS_KEY_PREFIX = "news:aggregated:"


def generate_news_key(payload: Dict[str, Any]) -> str:
    """
    Deterministic cache key for an aggregation request.

    Same query + options -> same key, independent of dict ordering.
    """
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return NEWS_KEY_PREFIX + hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:40]


class NewsCache(ABC):
    """Cache interface used by the aggregator"""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int = DEFAULT_TTL_SECONDS) -> bool:
        ...

    @abstractmethod
    async def invalidate(self, pattern: str) -> int:
        """Delete keys matching a glob pattern (e.g. 'news:*'); returns count"""
        ...

    async def close(self) -> None:
        return None


class NullNewsCache(NewsCache):
    """Always cold. Used when caching is disabled."""

    async def get(self, key: str) -> Optional[str]:
        return None

    async def set(self, key: str, value: str, ttl: int = DEFAULT_TTL_SECONDS) -> bool:
        return False

    async def invalidate(self, pattern: str) -> int:
        return 0


@dataclass
class _CacheEntry:
    value: str
    expires_at: float


class MemoryNewsCache(NewsCache):
    """In-process TTL cache. Expired entries are dropped on access."""

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.monotonic
        self._entries: Dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            return entry.value

    async def set(self, key: str, value: str, ttl: int = DEFAULT_TTL_SECONDS) -> bool:
        with self._lock:
            self._entries[key] = _CacheEntry(value=value, expires_at=self._clock() + ttl)
        return True

    async def invalidate(self, pattern: str) -> int:
        with self._lock:
            keys = [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]
            for key in keys:
                del self._entries[key]
        return len(keys)

    def __len__(self) -> int:
        return len(self._entries)


class RedisNewsCache(NewsCache):
    """
    Redis-backed cache.

    The client is created lazily. Connection errors, timeouts and decode
    errors are logged and treated as a miss.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        client: Optional[aioredis.Redis] = None,
        op_timeout: float = REDIS_SOCKET_TIMEOUT,
    ):
        self.redis_url = redis_url
        self._client = client
        self.op_timeout = op_timeout
        self._lock = asyncio.Lock()

    async def _get_client(self) -> Optional[aioredis.Redis]:
        """Get or create Redis client; None if it cannot be created"""
        if self._client is not None:
            return self._client
        if not self.redis_url:
            return None

        async with self._lock:
            if self._client is None:
                try:
                    self._client = aioredis.from_url(
                        self.redis_url,
                        encoding="utf-8",
                        decode_responses=True,
                        socket_connect_timeout=REDIS_CONNECT_TIMEOUT,
                        socket_timeout=REDIS_SOCKET_TIMEOUT,
                        max_connections=REDIS_MAX_CONNECTIONS,
                    )
                except (RedisError, ValueError) as e:
                    logger.error(f"[Cache] Failed to create Redis client: {e}")
                    return None
        return self._client

    async def get(self, key: str) -> Optional[str]:
        client = await self._get_client()
        if client is None:
            logger.debug(f"[Cache] Redis client not available, MISS for: {key}")
            return None

        try:
            value = await asyncio.wait_for(client.get(key), timeout=self.op_timeout)
        except asyncio.TimeoutError:
            logger.error(f"[Cache] Redis GET timeout for key: {key}")
            return None
        except (RedisError, OSError) as e:
            logger.error(f"[Cache] Redis GET error for key {key}: {e}")
            return None

        if value is None:
            return None
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        logger.info(f"[Cache] HIT for key: {key}")
        return value

    async def set(self, key: str, value: str, ttl: int = DEFAULT_TTL_SECONDS) -> bool:
        client = await self._get_client()
        if client is None:
            return False

        try:
            await asyncio.wait_for(client.set(key, value, ex=ttl), timeout=self.op_timeout)
            return True
        except asyncio.TimeoutError:
            logger.error(f"[Cache] Redis SET timeout for key: {key}")
        except (RedisError, OSError) as e:
            logger.error(f"[Cache] Redis SET error for key {key}: {e}")
        return False

    async def invalidate(self, pattern: str) -> int:
        """Delete keys matching `pattern`; every SCAN step and DEL is bounded by op_timeout"""
        client = await self._get_client()
        if client is None:
            return 0

        deleted = 0
        try:
            keys = client.scan_iter(match=pattern, count=500).__aiter__()
            batch = []
            while True:
                try:
                    key = await asyncio.wait_for(keys.__anext__(), timeout=self.op_timeout)
                except StopAsyncIteration:
                    break
                batch.append(key)
                if len(batch) >= 500:
                    deleted += await asyncio.wait_for(client.delete(*batch), timeout=self.op_timeout)
                    batch = []
            if batch:
                deleted += await asyncio.wait_for(client.delete(*batch), timeout=self.op_timeout)
        except asyncio.TimeoutError:
            logger.error(f"[Cache] Redis invalidate timeout for pattern {pattern} ({deleted} deleted)")
        except (RedisError, OSError) as e:
            logger.error(f"[Cache] Redis invalidate error for pattern {pattern}: {e}")
        return deleted

    async def close(self) -> None:
        """Close the client with a timeout so shutdown never hangs"""
        if self._client is None:
            return
        try:
            await asyncio.wait_for(self._client.aclose(), timeout=REDIS_CLOSE_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("[Cache] Redis close timed out, connection may leak")
        except (RedisError, OSError) as e:
            logger.warning(f"[Cache] Error closing Redis connection: {e}")
        finally:
            self._client = None


def create_news_cache(settings: Settings) -> NewsCache:
    """Pick the cache backend from NEWS_CACHE_BACKEND"""
    backend = (settings.NEWS_CACHE_BACKEND or "none").lower()
    if backend == "redis":
        return RedisNewsCache(redis_url=settings.redis_url())
    if backend == "memory":
        return MemoryNewsCache()
    if backend not in ("none", "disabled", "off"):
        logger.warning(f"[Cache] Unknown backend '{backend}', caching disabled")
    return NullNewsCache()
