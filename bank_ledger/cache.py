"""
Cache Layer

Cache-aside storage for account listings. The cache is never the source of
truth: a failed or missing entry is always treated as a miss.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple
import threading
import time

import redis

from .logging_config import get_logger


logger = get_logger("bank_ledger.cache")


class CacheClient(ABC):
    """Abstract interface for cache backends"""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the cached value, or None on a miss"""
        pass

    @abstractmethod
    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Store a value, expiring after ttl_seconds when given"""
        pass

    @abstractmethod
    def delete(self, *keys: str) -> int:
        """Remove keys, returning how many existed"""
        pass


class InMemoryCache(CacheClient):
    """Thread-safe TTL cache kept in process memory"""

    def __init__(self):
        self._entries: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and time.monotonic() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl_seconds if ttl_seconds else None
        with self._lock:
            self._entries[key] = (value, expires_at)

    def delete(self, *keys: str) -> int:
        with self._lock:
            removed = 0
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    removed += 1
            return removed

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class RedisCache(CacheClient):
    """
    Redis-backed cache. Keys are namespaced with a prefix; Redis errors are
    logged and degrade to cache misses so reads fall through to the database.
    """

    def __init__(self, redis_url: str, prefix: str = "ledger", client: Optional[redis.Redis] = None):
        self.client = client if client is not None else redis.Redis.from_url(redis_url, decode_responses=True)
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}" if self.prefix else key

    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(self._key(key))
        except redis.RedisError:
            logger.warning("Cache read failed for %s", key, exc_info=True)
            return None

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        try:
            if ttl_seconds and ttl_seconds > 0:
                self.client.setex(self._key(key), ttl_seconds, value)
            else:
                self.client.set(self._key(key), value)
        except redis.RedisError:
            logger.warning("Cache write failed for %s", key, exc_info=True)

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(self.client.delete(*(self._key(key) for key in keys)))
        except redis.RedisError:
            logger.error("Cache invalidation failed for %s", ", ".join(keys), exc_info=True)
            return 0


def create_cache(backend: str = "memory", redis_url: str = "", prefix: str = "ledger") -> CacheClient:
    """Create a cache backend by name (memory or redis)"""
    if backend == "memory":
        return InMemoryCache()
    if backend == "redis":
        if not redis_url:
            raise ValueError("cache_backend=redis requires redis_url to be set")
        return RedisCache(redis_url, prefix=prefix)
    raise ValueError(f"Unsupported cache backend: {backend}")
