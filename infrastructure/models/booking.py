"""
预订数据库模型 - 仅包含支付对账相关列
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, String, DateTime, Index, text
from datetime import datetime, timezone

from .base import Base


class BookingModel(Base):
    """
    预订数据库模型

    支付状态相关列只能由对账器通过比较并交换更新
    """
    __tablename__ = "bookings"

    id = Column(String(64), primary_key=True, comment="预订ID")

    payment_status = Column(
        String(20),
        nullable=False,
        default="unpaid",
        server_default=text("'unpaid'"),
        index=True,
        comment="支付状态: unpaid/pending/paid/failed/refunded"
    )
    last_event_reference = Column(String(100), nullable=True, index=True, comment="最近一次已应用事件的引用号")
    last_provider_status = Column(String(20), nullable=True, comment="最近一次已应用事件的渠道状态")
    last_event_at = Column(DateTime(timezone=True), nullable=True, comment="最近一次已应用事件的渠道时间")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        Index("ix_bookings_status_updated", "payment_status", "updated_at"),
    )

    def __repr__(self):
        return f"<BookingModel(id='{self.id}', payment_status='{self.payment_status}')>"
