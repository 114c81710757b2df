"""
Sorted-set store backing the sliding-window limiter.
"""

from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as redis

from shared.logging import get_logger
from shared.errors import PipelineException


class SortedSetStore(ABC):
    """Score-ordered set operations the limiter needs.

    Each call is atomic on its own; callers get no transaction across calls.
    """

    @abstractmethod
    async def remove_range_by_score(
        self,
        key: str,
        min_score: float,
        max_score: float,
        max_exclusive: bool = False
    ) -> int:
        """Remove members scored from min_score up to max_score (excluded when max_exclusive)."""

    @abstractmethod
    async def cardinality(self, key: str) -> int:
        """Number of members under key."""

    @abstractmethod
    async def add(self, key: str, score: float, member: str) -> None:
        """Insert member with score."""

    @abstractmethod
    async def expire(self, key: str, seconds: int) -> None:
        """Set the key's inactivity expiry."""


class RedisSortedSetStore(SortedSetStore):
    """Redis ZSET implementation of SortedSetStore."""

    def __init__(self, redis_url: str, socket_timeout: float = 5.0):
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self.logger = get_logger("notifications.limiter.redis")
        self.redis: Optional[redis.Redis] = None

    async def start(self):
        """Connect to Redis."""
        try:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=self.socket_timeout,
                socket_timeout=self.socket_timeout,
                health_check_interval=30
            )

            # Test connection
            await self.redis.ping()

            self.logger.info("Redis sorted set store started")

        except Exception as e:
            self.logger.error("Failed to start Redis sorted set store", error=str(e))
            raise PipelineException("REDIS_START_FAILED", str(e))

    async def stop(self):
        """Close the Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis sorted set store stopped")

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise ConnectionError("Redis sorted set store not started")
        return self.redis

    async def remove_range_by_score(
        self,
        key: str,
        min_score: float,
        max_score: float,
        max_exclusive: bool = False
    ) -> int:
        upper = f"({max_score}" if max_exclusive else max_score
        return await self._client().zremrangebyscore(key, min_score, upper)

    async def cardinality(self, key: str) -> int:
        return await self._client().zcard(key)

    async def add(self, key: str, score: float, member: str) -> None:
        await self._client().zadd(key, {member: score})

    async def expire(self, key: str, seconds: int) -> None:
        await self._client().expire(key, seconds)

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self._client().ping()
            return True
        except Exception as e:
            self.logger.warning("Redis health check failed", error=str(e))
            return False
