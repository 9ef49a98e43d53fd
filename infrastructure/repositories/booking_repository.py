"""
预订仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from domain.common.exceptions import BusinessException
from domain.payment.entity import Booking, BookingPaymentState, BookingPaymentStatus
from domain.payment.repository import BookingRepository
from infrastructure.models.booking import BookingModel
from shared.codes import BusinessCode
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyBookingRepository(BookingRepository):
    """预订仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: BookingModel) -> Booking:
        """将数据库模型转换为领域实体"""
        return Booking(
            id=model.id,
            payment=BookingPaymentState(
                status=BookingPaymentStatus(model.payment_status),
                last_event_reference=model.last_event_reference,
                last_provider_status=model.last_provider_status,
                last_event_at=model.last_event_at,
                updated_at=model.updated_at,
            ),
            created_at=model.created_at,
        )

    def _to_model(self, entity: Booking) -> BookingModel:
        """将领域实体转换为数据库模型"""
        state = entity.payment
        model = BookingModel(
            id=entity.id,
            payment_status=state.status.value,
            last_event_reference=state.last_event_reference,
            last_provider_status=state.last_provider_status.value if state.last_provider_status else None,
            last_event_at=state.last_event_at,
        )
        if entity.created_at is not None:
            model.created_at = entity.created_at
        if state.updated_at is not None:
            model.updated_at = state.updated_at
        return model

    async def get_by_id(self, booking_id: str) -> Optional[Booking]:
        """根据ID获取预订"""
        result = await self.session.execute(
            select(BookingModel).where(BookingModel.id == booking_id)
        )
        db_booking = result.scalar_one_or_none()
        return self._to_entity(db_booking) if db_booking else None

    async def add(self, booking: Booking) -> Booking:
        """创建预订记录"""
        try:
            db_booking = self._to_model(booking)
            self.session.add(db_booking)
            await self.session.flush()
            await self.session.refresh(db_booking)
            return self._to_entity(db_booking)
        except IntegrityError:
            logger.warning("booking_create_conflict", booking_id=booking.id)
            raise BusinessException(
                code=BusinessCode.CONFLICT,
                message=f"Booking {booking.id} already exists",
                error_type="BookingAlreadyExists",
                details={"booking_id": booking.id},
            )

    async def save_payment_state(
        self,
        booking_id: str,
        state: BookingPaymentState,
        *,
        expected_status: BookingPaymentStatus,
        expected_reference: Optional[str],
    ) -> bool:
        """比较并交换：支付状态四列一次写入"""
        reference_clause = (
            BookingModel.last_event_reference.is_(None)
            if expected_reference is None
            else BookingModel.last_event_reference == expected_reference
        )
        result = await self.session.execute(
            update(BookingModel)
            .where(
                BookingModel.id == booking_id,
                BookingModel.payment_status == expected_status.value,
                reference_clause,
            )
            .values(
                payment_status=state.status.value,
                last_event_reference=state.last_event_reference,
                last_provider_status=state.last_provider_status.value if state.last_provider_status else None,
                last_event_at=state.last_event_at,
                updated_at=state.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        saved = result.rowcount == 1
        if not saved:
            logger.warning(
                "booking_payment_state_cas_failed",
                booking_id=booking_id,
                expected_status=expected_status.value,
                expected_reference=expected_reference,
            )
        return saved

    async def list_pending(self, updated_before: datetime, limit: int = 100) -> List[Booking]:
        """获取停留在 pending 的预订（最久未更新的优先）"""
        result = await self.session.execute(
            select(BookingModel)
            .where(
                BookingModel.payment_status == BookingPaymentStatus.PENDING.value,
                BookingModel.updated_at < updated_before,
                BookingModel.last_event_reference.is_not(None),
            )
            .order_by(BookingModel.updated_at.asc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]
