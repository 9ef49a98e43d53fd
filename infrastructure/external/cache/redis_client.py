"""
Redis客户端 - 为对账流程提供分布式锁与计数器
"""
from __future__ import annotations

import asyncio
import socket
from contextlib import asynccontextmanager
from typing import Optional

from redis import asyncio as aioredis
from redis.exceptions import LockError, RedisError

from core.config import settings
from core.logging_config import get_logger

logger = get_logger(__name__)


class RedisClient:
    """
    Redis客户端封装

    特性:
    - 命名空间隔离（多个服务共用同一实例）
    - 分布式锁（预订级互斥）
    - 带过期时间的计数器
    """

    def __init__(self, client: aioredis.Redis, namespace: str = ""):
        self._client = client
        self._namespace = namespace.strip(":")

    def _format_key(self, key: str) -> str:
        """格式化键名，添加命名空间前缀"""
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    # ============= 计数器 =============

    async def incr(self, key: str, amount: int = 1, ttl: Optional[int] = None) -> Optional[int]:
        """自增计数器；首次创建时设置过期时间"""
        formatted_key = self._format_key(key)
        try:
            value = await self._client.incrby(formatted_key, amount)
            expire = ttl if ttl is not None else settings.redis.default_ttl
            if value == amount and expire and expire > 0:
                await self._client.expire(formatted_key, expire)
            return value
        except RedisError as e:
            logger.error("redis_incr_failed", key=formatted_key, error=str(e))
            return None

    async def delete(self, *keys: str) -> int:
        formatted_keys = [self._format_key(k) for k in keys]
        try:
            return await self._client.delete(*formatted_keys)
        except RedisError as e:
            logger.error("redis_delete_failed", error=str(e))
            return 0

    # ============= 分布式锁 =============

    @asynccontextmanager
    async def lock(self, key: str, timeout: int = 10, blocking_timeout: int = 5):
        """
        分布式锁上下文管理器

        Args:
            key: 锁的键名
            timeout: 锁的超时时间（秒），防止持有者崩溃后死锁
            blocking_timeout: 获取锁的等待时间（秒）

        Raises:
            TimeoutError: 在 blocking_timeout 内未获取到锁
        """
        lock_key = f"lock:{self._format_key(key)}"
        lock = self._client.lock(
            lock_key,
            timeout=timeout,
            blocking_timeout=blocking_timeout,
            thread_local=False,
        )
        acquired = await lock.acquire()
        if not acquired:
            raise TimeoutError(f"获取锁失败: {lock_key}")
        try:
            yield lock
        finally:
            try:
                await lock.release()
            except LockError as e:
                # 锁已过期被他人获取；写入侧由比较并交换兜底
                logger.warning("redis_lock_release_failed", key=lock_key, error=str(e))

    async def health_check(self) -> bool:
        try:
            return await self._client.ping()
        except RedisError as e:
            logger.error("redis_health_check_failed", error=str(e))
            return False

    @property
    def client(self) -> aioredis.Redis:
        """获取原始Redis客户端（谨慎使用）"""
        return self._client


# ============= 单例管理 =============

_redis_client: Optional[aioredis.Redis] = None
_cache_instance: Optional[RedisClient] = None
_lock = asyncio.Lock()


async def init_redis_client(namespace: Optional[str] = None, **kwargs) -> RedisClient:
    """初始化全局Redis客户端"""
    global _redis_client, _cache_instance

    if _cache_instance is not None:
        return _cache_instance

    async with _lock:
        if _cache_instance is not None:
            return _cache_instance

        if not settings.redis.url:
            raise RuntimeError("REDIS__URL 未配置，无法初始化Redis客户端")

        keepalive_opts = {}
        if hasattr(socket, "TCP_KEEPIDLE") and hasattr(socket, "TCP_KEEPINTVL") and hasattr(socket, "TCP_KEEPCNT"):
            keepalive_opts = {
                socket.TCP_KEEPIDLE: 1,
                socket.TCP_KEEPINTVL: 1,
                socket.TCP_KEEPCNT: 3,
            }

        client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
            socket_keepalive=True,
            socket_keepalive_options=keepalive_opts,
            **kwargs,
        )
        await client.ping()

        _redis_client = client
        _cache_instance = RedisClient(client=client, namespace=namespace or settings.redis.namespace)
        logger.info("redis_client_initialized", namespace=namespace or settings.redis.namespace)
        return _cache_instance


def get_redis_client_if_ready() -> Optional[RedisClient]:
    """返回已初始化的客户端；未初始化时返回 None"""
    return _cache_instance


async def shutdown_redis_client() -> None:
    """关闭Redis连接"""
    global _redis_client, _cache_instance

    if _redis_client is not None:
        try:
            await _redis_client.aclose()
            logger.info("redis_client_closed")
        except RedisError as e:
            logger.error("redis_client_close_failed", error=str(e))
        finally:
            _redis_client = None
            _cache_instance = None


__all__ = [
    "RedisClient",
    "init_redis_client",
    "get_redis_client_if_ready",
    "shutdown_redis_client",
]
