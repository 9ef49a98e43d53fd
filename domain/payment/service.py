"""
支付对账领域服务 - 将已确认的支付事件应用到预订支付状态
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List, Optional

from .entity import (
    BookingPaymentState,
    PaymentEvent,
    RecordedPaymentEvent,
    ReconciliationOutcome,
    ReconciliationResult,
)
from .events import PaymentReconciled, PaymentTransitionConflict
from .exceptions import BookingNotFoundException, ConcurrentUpdateException
from .lock import BookingLock
from domain.common.unit_of_work import AbstractUnitOfWork


class PaymentReconciler:
    """
    支付对账状态机

    职责：
    1. 重复投递检测（同一事实只应用一次）
    2. 状态迁移校验（单调性，paid 只能被退款事件改变）
    3. 在预订锁内完成读-判-写，并以比较并交换方式原子写入
    4. 产生领域事件（已应用 / 冲突）
    """

    def __init__(
        self,
        uow_factory: Callable[[], AbstractUnitOfWork],
        lock: BookingLock,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.uow_factory = uow_factory
        self.lock = lock
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.events: List = []  # 领域事件收集

    async def apply(self, event: PaymentEvent) -> ReconciliationResult:
        """
        应用支付事件

        业务规则：
        1. 预订必须存在
        2. 重复事件返回 applied=False，状态不变
        3. 不允许的迁移被记录为冲突，不应用
        """
        async with self.lock.hold(event.booking_id):
            async with self.uow_factory() as uow:
                booking = await uow.booking_repository.get_by_id(event.booking_id)
                if booking is None:
                    raise BookingNotFoundException(event.booking_id)

                state = booking.payment
                if state.is_duplicate(event) or await uow.payment_event_repository.exists(*event.dedupe_key):
                    return self._result(event, state, applied=False, outcome=ReconciliationOutcome.DUPLICATE)

                target = event.target_status
                stale = state.is_stale(event)
                if stale or not state.can_transition_to(target):
                    reason = "stale_event" if stale else "transition_not_allowed"
                    await uow.payment_event_repository.add(
                        RecordedPaymentEvent(event=event, outcome=ReconciliationOutcome.CONFLICT, detail=reason)
                    )
                    await uow.commit()
                    self.events.append(PaymentTransitionConflict(
                        booking_id=event.booking_id,
                        reference=event.reference,
                        current_status=state.status.value,
                        target_status=target.value,
                        reason=reason,
                    ))
                    return self._result(event, state, applied=False, outcome=ReconciliationOutcome.CONFLICT)

                previous = state.status
                new_state = state.copy()
                new_state.apply(event, now=self.clock())

                # 比较并交换：锁之外的写入者（或锁失效）会导致写入失败，事务整体回滚
                saved = await uow.booking_repository.save_payment_state(
                    event.booking_id,
                    new_state,
                    expected_status=previous,
                    expected_reference=state.last_event_reference,
                )
                if not saved:
                    raise ConcurrentUpdateException(event.booking_id)

                await uow.payment_event_repository.add(
                    RecordedPaymentEvent(event=event, outcome=ReconciliationOutcome.APPLIED)
                )
                await uow.commit()

                self.events.append(PaymentReconciled(
                    booking_id=event.booking_id,
                    reference=event.reference,
                    previous_status=previous.value,
                    status=new_state.status.value,
                ))
                return self._result(event, new_state, applied=True, outcome=ReconciliationOutcome.APPLIED)

    @staticmethod
    def _result(
        event: PaymentEvent,
        state: BookingPaymentState,
        *,
        applied: bool,
        outcome: ReconciliationOutcome,
    ) -> ReconciliationResult:
        return ReconciliationResult(
            applied=applied,
            final_status=state.status,
            outcome=outcome,
            booking_id=event.booking_id,
            reference=event.reference,
        )

    def clear_events(self) -> List:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
