"""
pending 复查计数器实现
"""
from __future__ import annotations

from typing import Dict

from infrastructure.external.cache.redis_client import RedisClient


class RedisPendingCheckCounter:
    """按引用号计数，键在 ttl 秒后过期"""

    def __init__(self, redis: RedisClient, *, ttl: int = 24 * 3600):
        self._redis = redis
        self._ttl = ttl

    @staticmethod
    def _key(reference: str) -> str:
        return f"pending_checks:{reference}"

    async def increment(self, reference: str) -> int:
        value = await self._redis.incr(self._key(reference), ttl=self._ttl)
        # Redis 不可用时不升级人工复核
        return value or 0

    async def reset(self, reference: str) -> None:
        await self._redis.delete(self._key(reference))


class InMemoryPendingCheckCounter:
    def __init__(self) -> None:
        self._counts: Dict[str, int] = {}

    async def increment(self, reference: str) -> int:
        self._counts[reference] = self._counts.get(reference, 0) + 1
        return self._counts[reference]

    async def reset(self, reference: str) -> None:
        self._counts.pop(reference, None)
