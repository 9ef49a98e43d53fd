"""
支付仓储接口 - 定义预订支付状态与支付事件数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List

from .entity import Booking, BookingPaymentState, BookingPaymentStatus, RecordedPaymentEvent


class BookingRepository(ABC):
    """预订仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def get_by_id(self, booking_id: str) -> Optional[Booking]:
        """根据ID获取预订"""
        pass

    @abstractmethod
    async def add(self, booking: Booking) -> Booking:
        """创建预订记录"""
        pass

    @abstractmethod
    async def save_payment_state(
        self,
        booking_id: str,
        state: BookingPaymentState,
        *,
        expected_status: BookingPaymentStatus,
        expected_reference: Optional[str],
    ) -> bool:
        """
        比较并交换写入支付状态

        仅当当前 (status, last_event_reference) 与期望值一致时写入，
        返回是否写入成功。
        """
        pass

    @abstractmethod
    async def list_pending(
        self,
        updated_before: datetime,
        limit: int = 100
    ) -> List[Booking]:
        """获取停留在 pending 且最后更新早于给定时间的预订"""
        pass


class PaymentEventRepository(ABC):
    """支付事件仓储抽象接口（只追加）"""

    @abstractmethod
    async def add(self, record: RecordedPaymentEvent) -> RecordedPaymentEvent:
        """追加事件记录"""
        pass

    @abstractmethod
    async def exists(self, reference: str, provider_status: str) -> bool:
        """检查 (reference, provider_status) 事实是否已记录"""
        pass

    @abstractmethod
    async def list_by_reference(self, reference: str) -> List[RecordedPaymentEvent]:
        """根据引用号获取事件列表"""
        pass

    @abstractmethod
    async def list_by_booking(
        self,
        booking_id: str,
        skip: int = 0,
        limit: int = 100
    ) -> List[RecordedPaymentEvent]:
        """获取预订的事件列表（按接收时间倒序）"""
        pass
