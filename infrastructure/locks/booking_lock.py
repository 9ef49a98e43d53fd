"""
预订锁实现

- RedisBookingLock: 多进程/多实例部署使用的分布式锁
- InMemoryBookingLock: 单进程（开发、测试）使用的 asyncio.Lock
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from core.logging_config import get_logger
from domain.payment.exceptions import BookingLockTimeoutException
from infrastructure.external.cache.redis_client import RedisClient


logger = get_logger(__name__)


class RedisBookingLock:
    """基于 Redis 的预订锁，键为 ``booking:{booking_id}``"""

    def __init__(self, redis: RedisClient, *, timeout: int = 10, blocking_timeout: int = 5):
        self._redis = redis
        self._timeout = timeout
        self._blocking_timeout = blocking_timeout

    @asynccontextmanager
    async def hold(self, booking_id: str) -> AsyncIterator[None]:
        try:
            async with self._redis.lock(
                f"booking:{booking_id}",
                timeout=self._timeout,
                blocking_timeout=self._blocking_timeout,
            ):
                yield
        except TimeoutError as exc:
            logger.warning("booking_lock_timeout", booking_id=booking_id)
            raise BookingLockTimeoutException(booking_id) from exc


class InMemoryBookingLock:
    """进程内预订锁；无人等待时回收锁对象"""

    def __init__(self, *, blocking_timeout: float = 5.0):
        self._blocking_timeout = blocking_timeout
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, booking_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(booking_id, asyncio.Lock())
        self._waiters[booking_id] = self._waiters.get(booking_id, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self._blocking_timeout)
            except asyncio.TimeoutError as exc:
                logger.warning("booking_lock_timeout", booking_id=booking_id)
                raise BookingLockTimeoutException(booking_id) from exc
            try:
                yield
            finally:
                lock.release()
        finally:
            self._waiters[booking_id] -= 1
            if self._waiters[booking_id] == 0:
                del self._waiters[booking_id]
                self._locks.pop(booking_id, None)
