"""
Application service for client-triggered payment verification.

Same pipeline as the webhook minus the trust-boundary checks: the caller
supplies ``(reference, booking_id)`` and the provider is asked directly.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from application.dtos.payments import VerifiedPayment, VerifyPaymentRequest, VerifyPaymentResponse
from application.ports.payment_gateway import PaymentGateway
from application.ports.pending_checks import PendingCheckCounter
from application.services.reconciliation import build_payment_event, log_domain_events, reconcile
from core.logging_config import get_logger
from domain.payment.entity import BookingPaymentStatus, EventSource, ProviderStatus
from domain.payment.events import PaymentEscalated
from domain.payment.exceptions import ProviderRejectedException, TransitionConflictException
from domain.payment.service import PaymentReconciler


logger = get_logger(__name__)


class VerificationService:
    def __init__(
        self,
        *,
        gateway: PaymentGateway,
        reconciler: PaymentReconciler,
        pending_checks: PendingCheckCounter,
        max_pending_checks: int = 5,
        schedule_recheck: Optional[Callable[[str, str], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.gateway = gateway
        self.reconciler = reconciler
        self.pending_checks = pending_checks
        self.max_pending_checks = max_pending_checks
        self.schedule_recheck = schedule_recheck
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def verify(self, req: VerifyPaymentRequest) -> VerifyPaymentResponse:
        logger.info("payment_verify_request", reference=req.reference, booking_id=req.booking_id)

        confirmation = await self.gateway.confirm(req.reference)
        if confirmation.booking_id and confirmation.booking_id != req.booking_id:
            logger.warning(
                "payment_verify_booking_mismatch",
                reference=req.reference,
                booking_id=req.booking_id,
                confirmed_booking_id=confirmation.booking_id,
            )
            raise ProviderRejectedException(confirmation.provider, reason="booking_mismatch")

        now = self.clock()
        event = build_payment_event(
            confirmation,
            booking_id=req.booking_id,
            source=EventSource.VERIFICATION,
            received_at=now,
        )
        result = await reconcile(self.reconciler, event)

        if result.is_conflict:
            raise TransitionConflictException(
                req.booking_id,
                current=result.final_status.value,
                target=event.target_status.value,
                reference=req.reference,
            )

        manual_review = False
        if confirmation.status in (ProviderStatus.PENDING, ProviderStatus.ABANDONED):
            manual_review = await self._track_pending(req.reference, req.booking_id)
        elif result.final_status is not BookingPaymentStatus.PENDING:
            await self.pending_checks.reset(req.reference)

        logger.info(
            "payment_verify_response",
            reference=req.reference,
            booking_id=req.booking_id,
            outcome=result.outcome.value,
            status=result.final_status.value,
            manual_review=manual_review,
        )
        return VerifyPaymentResponse(
            success=True,
            data=VerifiedPayment(
                status=result.final_status.value,
                amount=confirmation.amount,
                currency=confirmation.currency,
            ),
            manual_review=manual_review,
        )

    async def _track_pending(self, reference: str, booking_id: str) -> bool:
        """Count pending observations; escalate once the limit is reached."""
        checks = await self.pending_checks.increment(reference)
        if checks < self.max_pending_checks:
            self._schedule_recheck(reference, booking_id)
            return False
        log_domain_events([
            PaymentEscalated(booking_id=booking_id, reference=reference, pending_checks=checks)
        ])
        return True

    def _schedule_recheck(self, reference: str, booking_id: str) -> None:
        if self.schedule_recheck is None:
            return
        try:
            self.schedule_recheck(reference, booking_id)
        except Exception as exc:
            # 复查只是补偿手段，broker 故障不影响本次核验结果
            logger.warning(
                "pending_recheck_schedule_failed",
                reference=reference,
                booking_id=booking_id,
                error_type=type(exc).__name__,
            )
