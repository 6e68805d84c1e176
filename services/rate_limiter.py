"""
Fixed-window rate limiter with Redis and in-process backends
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import redis.asyncio as redis

from utils.structured_logging import get_structured_logger

logger = get_structured_logger(__name__)

READ_BUCKET = "read"
WRITE_BUCKET = "write"
SEARCH_BUCKET = "search"
BULK_BUCKET = "bulk"


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset_time: int  # window end, epoch milliseconds
    retry_after: int  # seconds until reset_time

    def headers(self) -> Dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_time),
        }
        if not self.success:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimitBackend(ABC):
    """Atomic counter storage keyed by identity, bucket and window"""

    @abstractmethod
    async def increment(self, key: str, window_seconds: int) -> Optional[int]:
        """Increment and return the counter, or None when storage is unavailable"""
        pass

    async def close(self) -> None:
        return None


class MemoryRateLimitBackend(RateLimitBackend):
    """
    Per-process counters guarded by an asyncio lock

    At most max_keys counters are held; past that expired windows are
    dropped first, then the least recently used keys.
    """

    def __init__(self, max_keys: int = 10_000, clock: Callable[[], float] = time.time):
        self._counters: "OrderedDict[str, Tuple[int, float]]" = OrderedDict()
        self._lock = asyncio.Lock()
        self._max_keys = max_keys
        self._clock = clock

    def __len__(self) -> int:
        return len(self._counters)

    def _evict(self, now: float) -> None:
        expired = [key for key, (_, deadline) in self._counters.items() if deadline <= now]
        for key in expired:
            del self._counters[key]
        while len(self._counters) >= self._max_keys:
            self._counters.popitem(last=False)

    async def increment(self, key: str, window_seconds: int) -> Optional[int]:
        now = self._clock()
        async with self._lock:
            entry = self._counters.get(key)
            if entry is not None and entry[1] <= now:
                entry = None
            if entry is None:
                if len(self._counters) >= self._max_keys:
                    self._evict(now)
                entry = (0, now + window_seconds * 2)
            count = entry[0] + 1
            self._counters[key] = (count, entry[1])
            self._counters.move_to_end(key)
            return count


class RedisRateLimitBackend(RateLimitBackend):
    """Shared counters for multi-process deployments"""

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self.redis_client = client or redis.from_url(redis_url)

    async def increment(self, key: str, window_seconds: int) -> Optional[int]:
        try:
            # Use Redis pipeline for atomic operations
            pipe = self.redis_client.pipeline()
            pipe.incr(key)
            pipe.expire(key, window_seconds * 2)
            results = await pipe.execute()
            return int(results[0])
        except redis.RedisError as e:
            logger.error("Rate limiting check failed", error=str(e))
            return None

    async def close(self) -> None:
        await self.redis_client.aclose()


class RateLimiter:
    """
    Independent fixed-window budgets per (identity, bucket)

    Args:
        backend: Counter storage
        budgets: Requests allowed per window, by bucket name
        window_seconds: Default window length
        windows: Window length overrides, by bucket name
        clock: Time source in seconds, injectable for tests
    """

    def __init__(
        self,
        backend: RateLimitBackend,
        budgets: Dict[str, int],
        window_seconds: int = 60,
        clock: Callable[[], float] = time.time,
        windows: Optional[Dict[str, int]] = None,
    ):
        self.backend = backend
        self.budgets = budgets
        self.window_seconds = window_seconds
        self.windows = windows or {}
        self.clock = clock

    def window_for(self, bucket: str) -> int:
        return self.windows.get(bucket, self.window_seconds)

    def _window(self, now: float, length: int) -> Tuple[int, int]:
        current = int(now)
        window_start = current - (current % length)
        return window_start, window_start + length

    async def check(self, identity: str, bucket: str) -> RateLimitResult:
        """
        Count one request against a bucket

        Args:
            identity: "ip:<addr>" or "user:<sub>"
            bucket: read, write, search or bulk

        Returns:
            Outcome with the limiter snapshot for headers and 429 bodies
        """
        limit = self.budgets[bucket]
        now = self.clock()
        length = self.window_for(bucket)
        window_start, window_end = self._window(now, length)
        key = f"rate_limit:{bucket}:{identity}:{window_start}"

        count = await self.backend.increment(key, length)
        retry_after = max(1, window_end - int(now))
        if count is None:
            # Fail open - allow request if the counter store is down
            return RateLimitResult(True, limit, limit, window_end * 1000, retry_after)

        return RateLimitResult(
            success=count <= limit,
            limit=limit,
            remaining=max(0, limit - count),
            reset_time=window_end * 1000,
            retry_after=retry_after,
        )

    async def close(self) -> None:
        await self.backend.close()


def build_rate_limiter(config) -> RateLimiter:
    if config.redis_url:
        backend: RateLimitBackend = RedisRateLimitBackend(config.redis_url)
    else:
        backend = MemoryRateLimitBackend()
    budgets = {
        READ_BUCKET: config.rate_limit_read,
        WRITE_BUCKET: config.rate_limit_write,
        SEARCH_BUCKET: config.rate_limit_search,
        BULK_BUCKET: config.rate_limit_bulk,
    }
    return RateLimiter(
        backend,
        budgets,
        config.rate_limit_window_seconds,
        windows={BULK_BUCKET: config.rate_limit_bulk_window_seconds},
    )
