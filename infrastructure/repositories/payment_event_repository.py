"""
支付事件仓储实现 - 只追加
"""
from typing import List
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from domain.payment.entity import (
    EventSource,
    PaymentEvent,
    ProviderStatus,
    RecordedPaymentEvent,
    ReconciliationOutcome,
)
from domain.payment.exceptions import ConcurrentUpdateException
from domain.payment.repository import PaymentEventRepository
from infrastructure.models.payment_event import PaymentEventModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyPaymentEventRepository(PaymentEventRepository):
    """支付事件仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentEventModel) -> RecordedPaymentEvent:
        event = PaymentEvent(
            reference=model.reference,
            booking_id=model.booking_id,
            amount=Decimal(str(model.amount)),
            currency=model.currency,
            provider_status=ProviderStatus(model.provider_status),
            occurred_at=model.occurred_at,
            received_at=model.received_at,
            raw_payload=model.raw_payload or {},
            source=EventSource(model.source),
        )
        return RecordedPaymentEvent(
            id=model.id,
            event=event,
            outcome=ReconciliationOutcome(model.outcome),
            detail=model.detail,
        )

    def _to_model(self, record: RecordedPaymentEvent) -> PaymentEventModel:
        event = record.event
        return PaymentEventModel(
            reference=event.reference,
            booking_id=event.booking_id,
            provider_status=event.provider_status.value,
            amount=event.amount,
            currency=event.currency,
            occurred_at=event.occurred_at,
            received_at=event.received_at,
            source=event.source.value,
            outcome=record.outcome.value,
            detail=record.detail,
            raw_payload=event.raw_payload,
        )

    async def add(self, record: RecordedPaymentEvent) -> RecordedPaymentEvent:
        """追加事件记录；唯一约束冲突说明有并发写入者绕过了锁"""
        try:
            db_event = self._to_model(record)
            self.session.add(db_event)
            await self.session.flush()
        except IntegrityError:
            logger.warning(
                "payment_event_insert_conflict",
                reference=record.event.reference,
                provider_status=record.event.provider_status.value,
            )
            raise ConcurrentUpdateException(record.event.booking_id)
        return RecordedPaymentEvent(
            id=db_event.id,
            event=record.event,
            outcome=record.outcome,
            detail=record.detail,
        )

    async def exists(self, reference: str, provider_status: str) -> bool:
        result = await self.session.execute(
            select(func.count())
            .select_from(PaymentEventModel)
            .where(
                PaymentEventModel.reference == reference,
                PaymentEventModel.provider_status == provider_status,
            )
        )
        return (result.scalar() or 0) > 0

    async def list_by_reference(self, reference: str) -> List[RecordedPaymentEvent]:
        result = await self.session.execute(
            select(PaymentEventModel)
            .where(PaymentEventModel.reference == reference)
            .order_by(PaymentEventModel.received_at.asc(), PaymentEventModel.id.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_by_booking(
        self,
        booking_id: str,
        skip: int = 0,
        limit: int = 100
    ) -> List[RecordedPaymentEvent]:
        result = await self.session.execute(
            select(PaymentEventModel)
            .where(PaymentEventModel.booking_id == booking_id)
            .order_by(PaymentEventModel.received_at.desc(), PaymentEventModel.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]
