"""
支付事件数据库模型 - 只追加的审计表
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Text, JSON,
    Index, ForeignKey, UniqueConstraint
)
from datetime import datetime, timezone

from .base import Base


class PaymentEventModel(Base):
    """
    支付事件数据库模型

    (reference, provider_status) 唯一，重复投递不会产生第二条记录
    """
    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True, autoincrement=True)

    reference = Column(String(100), nullable=False, index=True, comment="支付引用号")
    booking_id = Column(
        String(64),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="预订ID"
    )
    provider_status = Column(String(20), nullable=False, comment="渠道状态: success/failed/pending/abandoned/reversed")

    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="金额（主单位）")
    currency = Column(String(3), nullable=False, comment="货币代码 ISO-4217")

    occurred_at = Column(DateTime(timezone=True), nullable=False, comment="渠道事件时间")
    received_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="接收时间"
    )

    source = Column(String(20), nullable=False, default="webhook", comment="来源: webhook/verification")
    outcome = Column(String(20), nullable=False, comment="对账结果: applied/conflict")
    detail = Column(Text, nullable=True, comment="冲突原因")

    # 清洗后的原始载荷
    raw_payload = Column(JSON, nullable=True, comment="清洗后的原始载荷")

    __table_args__ = (
        UniqueConstraint("reference", "provider_status", name="uq_payment_events_reference_status"),
        Index("ix_payment_events_booking_received", "booking_id", "received_at"),
    )

    def __repr__(self):
        return (
            f"<PaymentEventModel(id={self.id}, reference='{self.reference}', "
            f"provider_status='{self.provider_status}', outcome='{self.outcome}')>"
        )
