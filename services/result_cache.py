"""
Read-through TTL cache for search responses
"""

import asyncio
import hashlib
import json
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import redis.asyncio as redis

from utils.structured_logging import get_structured_logger

logger = get_structured_logger(__name__)


def cache_key(user_id: str, parts: Dict[str, Any]) -> str:
    payload = json.dumps(parts, sort_keys=True, default=str)
    digest = hashlib.sha256(f"{user_id}|{payload}".encode("utf-8")).hexdigest()
    return f"search_cache:{digest}"


class ResultCache:
    """
    Bounded in-process cache; entries expire after ttl_seconds

    Args:
        ttl_seconds: Entry lifetime, 0 disables caching
        max_entries: Least recently used entries are dropped beyond this
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        ttl_seconds: int = 30,
        max_entries: int = 512,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.clock = clock
        self._entries: "OrderedDict[str, Tuple[float, str]]" = OrderedDict()
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, payload = entry
            if expires_at <= self.clock():
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
        return json.loads(payload)

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        payload = json.dumps(value, default=str)
        async with self._lock:
            self._entries[key] = (self.clock() + self.ttl_seconds, payload)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[Dict[str, Any]]]
    ) -> Tuple[Dict[str, Any], bool]:
        """Return (value, cached); the lock is never held while computing"""
        if self.enabled:
            hit = await self.get(key)
            if hit is not None:
                return hit, True
        value = await compute()
        if self.enabled:
            await self.set(key, value)
        return value, False

    async def close(self) -> None:
        return None


class RedisResultCache(ResultCache):
    """Shared cache for multi-process deployments; Redis errors count as misses"""

    def __init__(self, redis_url: str, ttl_seconds: int = 30, client: Optional[redis.Redis] = None):
        super().__init__(ttl_seconds=ttl_seconds)
        self.redis_client = client or redis.from_url(redis_url, decode_responses=True)

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            payload = await self.redis_client.get(key)
        except redis.RedisError as e:
            logger.warning("Search cache read failed", error=str(e))
            return None
        return json.loads(payload) if payload else None

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        try:
            await self.redis_client.setex(key, self.ttl_seconds, json.dumps(value, default=str))
        except redis.RedisError as e:
            logger.warning("Search cache write failed", error=str(e))

    async def close(self) -> None:
        await self.redis_client.aclose()


def build_result_cache(config) -> ResultCache:
    if config.redis_url:
        return RedisResultCache(config.redis_url, ttl_seconds=config.search_cache_ttl_seconds)
    return ResultCache(config.search_cache_ttl_seconds, config.search_cache_max_entries)
