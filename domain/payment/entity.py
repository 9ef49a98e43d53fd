"""
支付领域实体 - 预订支付状态聚合与支付事件
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


class ProviderStatus(str, Enum):
    """支付渠道报告的交易状态"""
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"
    ABANDONED = "abandoned"
    REVERSED = "reversed"         # 退款/冲正，唯一允许 paid -> refunded 的事件


class BookingPaymentStatus(str, Enum):
    """预订支付状态枚举"""
    UNPAID = "unpaid"
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class EventSource(str, Enum):
    WEBHOOK = "webhook"
    VERIFICATION = "verification"


class ReconciliationOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    CONFLICT = "conflict"


# 渠道状态 -> 预订支付目标状态
PROVIDER_TO_BOOKING_STATUS: dict[ProviderStatus, BookingPaymentStatus] = {
    ProviderStatus.SUCCESS: BookingPaymentStatus.PAID,
    ProviderStatus.FAILED: BookingPaymentStatus.FAILED,
    ProviderStatus.PENDING: BookingPaymentStatus.PENDING,
    ProviderStatus.ABANDONED: BookingPaymentStatus.PENDING,
    ProviderStatus.REVERSED: BookingPaymentStatus.REFUNDED,
}

# 状态机：unpaid -> pending -> {paid, failed}; paid -> refunded
# failed 之后允许新的支付尝试重新进入 pending/paid
ALLOWED_TRANSITIONS: dict[BookingPaymentStatus, frozenset[BookingPaymentStatus]] = {
    BookingPaymentStatus.UNPAID: frozenset({
        BookingPaymentStatus.PENDING,
        BookingPaymentStatus.PAID,
        BookingPaymentStatus.FAILED,
    }),
    BookingPaymentStatus.PENDING: frozenset({
        BookingPaymentStatus.PENDING,
        BookingPaymentStatus.PAID,
        BookingPaymentStatus.FAILED,
    }),
    BookingPaymentStatus.FAILED: frozenset({
        BookingPaymentStatus.PENDING,
        BookingPaymentStatus.PAID,
        BookingPaymentStatus.FAILED,
    }),
    BookingPaymentStatus.PAID: frozenset({BookingPaymentStatus.REFUNDED}),
    BookingPaymentStatus.REFUNDED: frozenset(),
}

# 结算类目标状态：只受状态机约束，不受事件时间先后约束
SETTLED_STATUSES: frozenset[BookingPaymentStatus] = frozenset({
    BookingPaymentStatus.PAID,
    BookingPaymentStatus.REFUNDED,
})


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class PaymentEvent:
    """
    支付事件 - 一次通知或一次主动核验的结果

    业务规则：
    1. 创建后不可变，仅用于审计与重放检测
    2. (reference, provider_status) 唯一标识一个事实，重复投递不会产生第二条记录
    3. raw_payload 只能是清洗后的内容
    """

    reference: str
    booking_id: str
    amount: Decimal
    currency: str
    provider_status: ProviderStatus
    occurred_at: datetime
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    raw_payload: dict = field(default_factory=dict)
    source: EventSource = EventSource.WEBHOOK

    def __post_init__(self):
        if not self.reference:
            raise DomainValidationException("支付引用号不能为空", field="reference")
        if not self.booking_id:
            raise DomainValidationException("预订ID不能为空", field="booking_id")
        if self.amount < 0:
            raise DomainValidationException(f"支付金额不能为负: {self.amount}", field="amount")
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"无效的货币代码: {self.currency}", field="currency")
        # frozen dataclass 需通过 object.__setattr__ 规范化
        object.__setattr__(self, "currency", self.currency.upper())
        object.__setattr__(self, "provider_status", ProviderStatus(self.provider_status))
        object.__setattr__(self, "occurred_at", _ensure_utc(self.occurred_at))
        object.__setattr__(self, "received_at", _ensure_utc(self.received_at))

    @property
    def target_status(self) -> BookingPaymentStatus:
        return PROVIDER_TO_BOOKING_STATUS[self.provider_status]

    @property
    def dedupe_key(self) -> tuple[str, str]:
        return self.reference, self.provider_status.value


@dataclass
class BookingPaymentState:
    """
    预订支付状态 - 只能由对账器修改

    业务规则：
    1. 状态迁移必须遵循状态机
    2. 一旦 paid，只有退款事件能将其变为 refunded
    3. status / last_event_reference / last_event_at / updated_at 必须一起写入
    """

    status: BookingPaymentStatus = BookingPaymentStatus.UNPAID
    last_event_reference: Optional[str] = None
    last_provider_status: Optional[ProviderStatus] = None
    last_event_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = BookingPaymentStatus(self.status)
        if self.last_provider_status is not None:
            self.last_provider_status = ProviderStatus(self.last_provider_status)
        self.last_event_at = _ensure_utc(self.last_event_at)
        self.updated_at = _ensure_utc(self.updated_at)

    def is_duplicate(self, event: PaymentEvent) -> bool:
        """同一引用号、同一渠道状态的事件视为重复投递"""
        return (
            self.last_event_reference == event.reference
            and self.last_provider_status == event.provider_status
        )

    def is_stale(self, event: PaymentEvent) -> bool:
        """
        事件的渠道时间早于最近一次已应用事件，且会改变状态

        迁移到 paid/refunded 是向前推进，不受到达顺序约束：
        较早完成的支付晚于另一次尝试到达时仍然有效
        """
        if self.last_event_at is None:
            return False
        target = event.target_status
        if target in SETTLED_STATUSES:
            return False
        return event.occurred_at < self.last_event_at and target != self.status

    def can_transition_to(self, target: BookingPaymentStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def apply(self, event: PaymentEvent, now: Optional[datetime] = None) -> None:
        """应用事件；调用方负责先做重复与冲突判断"""
        target = event.target_status
        if not self.can_transition_to(target):
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 {target.value}",
                field="status",
            )
        self.status = target
        self.last_event_reference = event.reference
        self.last_provider_status = event.provider_status
        self.last_event_at = event.occurred_at
        self.updated_at = _ensure_utc(now) or datetime.now(timezone.utc)

    def copy(self) -> "BookingPaymentState":
        return BookingPaymentState(
            status=self.status,
            last_event_reference=self.last_event_reference,
            last_provider_status=self.last_provider_status,
            last_event_at=self.last_event_at,
            updated_at=self.updated_at,
        )


@dataclass
class Booking:
    """预订聚合（仅包含对账相关部分）"""

    id: str
    payment: BookingPaymentState = field(default_factory=BookingPaymentState)
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.id:
            raise DomainValidationException("预订ID不能为空", field="id")
        self.created_at = _ensure_utc(self.created_at)


@dataclass
class RecordedPaymentEvent:
    """已持久化的支付事件及其对账结果（审计用）"""

    event: PaymentEvent
    outcome: ReconciliationOutcome
    id: Optional[int] = None
    detail: Optional[str] = None


@dataclass(frozen=True)
class ReconciliationResult:
    applied: bool
    final_status: BookingPaymentStatus
    outcome: ReconciliationOutcome
    booking_id: str
    reference: str

    @property
    def is_conflict(self) -> bool:
        return self.outcome is ReconciliationOutcome.CONFLICT
