"""
预订锁抽象 - 保证同一预订的对账读-判-写串行执行

实现由基础设施提供（Redis 分布式锁 / 进程内 asyncio.Lock）。
"""
from __future__ import annotations

from typing import AsyncContextManager, Protocol, runtime_checkable


@runtime_checkable
class BookingLock(Protocol):
    """Per-booking mutual exclusion.

    ``hold`` must release on every exit path, including exceptions and
    cancellation of the caller.
    """

    def hold(self, booking_id: str) -> AsyncContextManager[None]: ...
