import time
from typing import Callable, Dict, Optional, Tuple

import redis
from loguru import logger


class MemoryStore:
    """In-process key-value store used when Redis is not configured (and in tests)."""

    backend = "memory"

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def get(self, key: str) -> Optional[str]:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires = item
        if expires is not None and self._clock() >= expires:
            del self._data[key]
            return None
        return value

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        now = self._clock()
        self._sweep(now)
        self._data[key] = (value, now + ttl if ttl else None)

    def _sweep(self, now: float) -> None:
        expired = [k for k, (_, expires) in self._data.items() if expires is not None and now >= expires]
        for key in expired:
            del self._data[key]


class RedisStore:
    """Redis-backed key-value store shared by all app workers."""

    backend = "redis"

    def __init__(self, client: "redis.Redis", prefix: str = "leads:"):
        self.r = client
        self.prefix = prefix

    def get(self, key: str) -> Optional[str]:
        value = self.r.get(f"{self.prefix}{key}")
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        self.r.set(name=f"{self.prefix}{key}", value=value, ex=ttl or None)


def create_store(redis_url: Optional[str]):
    """Connect to Redis when configured, otherwise fall back to memory."""
    if not redis_url:
        logger.warning("No REDIS_URL configured, using in-memory key-value store")
        return MemoryStore()

    try:
        client = redis.from_url(redis_url, decode_responses=True)
        # Test connection
        client.ping()
        logger.info("Redis connection established successfully")
        return RedisStore(client)
    except redis.RedisError as e:
        logger.error(f"Redis connection failed: {e}")
        # Fallback to in-memory storage (not shared between workers)
        return MemoryStore()
