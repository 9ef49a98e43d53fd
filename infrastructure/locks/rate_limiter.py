"""
Webhook 限流实现（固定窗口）

- RedisRateLimiter: 多实例共享计数，键在窗口结束时过期
- InMemoryRateLimiter: 单进程（开发、测试）使用
"""
from __future__ import annotations

import time
from typing import Callable, Dict, Tuple

from infrastructure.external.cache.redis_client import RedisClient


class RedisRateLimiter:
    """每个发送方每个窗口最多 limit 次；首次计数时设置过期时间"""

    def __init__(self, redis: RedisClient, *, limit: int = 30, window: int = 60, scope: str = "webhook"):
        self._redis = redis
        self._limit = limit
        self._window = window
        self._scope = scope

    async def hit(self, key: str) -> bool:
        if self._limit <= 0:
            return True
        count = await self._redis.incr(f"rate:{self._scope}:{key}", ttl=self._window)
        # Redis 不可用时放行，签名校验仍然生效
        if count is None:
            return True
        return count <= self._limit


class InMemoryRateLimiter:
    def __init__(
        self,
        *,
        limit: int = 30,
        window: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._limit = limit
        self._window = window
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}

    async def hit(self, key: str) -> bool:
        if self._limit <= 0:
            return True
        now = self._clock()
        started, count = self._windows.get(key, (now, 0))
        if now - started >= self._window:
            started, count = now, 0
        count += 1
        self._windows[key] = (started, count)
        # 顺手清理已过期的窗口
        if len(self._windows) > 1024:
            self._windows = {k: v for k, v in self._windows.items() if now - v[0] < self._window}
        return count <= self._limit
