"""
Plain Redis adapter over TCP, used for local development and
self-hosted deployments without Upstash.
"""

import logging
from typing import Optional, Sequence

from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

from ..core.config import RedisConfig
from .base import Score, StorageError, format_score

logger = logging.getLogger(__name__)


class RedisSortedSetBackend:
    """Sorted-set backend on a ``redis.asyncio`` connection pool."""

    def __init__(self, config: RedisConfig, client: Optional[Redis] = None):
        self.url = config.url
        self.socket_timeout = config.socket_timeout
        self._client: Optional[Redis] = client

    def _redis(self) -> Redis:
        if self._client is None:
            self._client = from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=self.socket_timeout,
                socket_keepalive=True,
                health_check_interval=30,
            )
        return self._client

    async def add(self, key: str, members: dict[str, Score]) -> int:
        if not members:
            return 0
        try:
            return int(await self._redis().zadd(key, members))
        except RedisError as e:
            raise StorageError(f"ZADD failed: {e}") from e

    async def range_by_rank(self, key: str, start: int, stop: int) -> list[str]:
        try:
            return list(await self._redis().zrange(key, start, stop))
        except RedisError as e:
            raise StorageError(f"ZRANGE failed: {e}") from e

    async def remove_members(self, key: str, members: Sequence[str]) -> list[str]:
        if not members:
            return []
        try:
            async with self._redis().pipeline(transaction=False) as pipe:
                for member in members:
                    pipe.zrem(key, member)
                results = await pipe.execute()
        except RedisError as e:
            raise StorageError(f"ZREM failed: {e}") from e
        return [member for member, removed in zip(members, results) if removed]

    async def remove_by_score(self, key: str, min_score: Score, max_score: Score) -> int:
        try:
            return int(await self._redis().zremrangebyscore(
                key, format_score(min_score), format_score(max_score)
            ))
        except RedisError as e:
            raise StorageError(f"ZREMRANGEBYSCORE failed: {e}") from e

    async def cardinality(self, key: str) -> int:
        try:
            return int(await self._redis().zcard(key))
        except RedisError as e:
            raise StorageError(f"ZCARD failed: {e}") from e

    async def expire(self, key: str, seconds: int) -> bool:
        try:
            return bool(await self._redis().expire(key, int(seconds)))
        except RedisError as e:
            raise StorageError(f"EXPIRE failed: {e}") from e

    async def ping(self) -> bool:
        try:
            return bool(await self._redis().ping())
        except RedisError as e:
            logger.warning(f"Redis ping failed: {str(e)}")
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
