"""
Helpers shared by the webhook and verification flows.

Both flows turn a provider confirmation into a PaymentEvent, run it through
the reconciler shielded from caller cancellation, and log the domain events
the reconciler collected.
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Iterable, Optional

from application.dtos.payments import ProviderConfirmation
from core.logging_config import get_logger
from domain.payment.entity import EventSource, PaymentEvent, ReconciliationResult
from domain.payment.events import PaymentEscalated, PaymentReconciled, PaymentTransitionConflict
from domain.payment.service import PaymentReconciler


logger = get_logger(__name__)


def build_payment_event(
    confirmation: ProviderConfirmation,
    *,
    booking_id: str,
    source: EventSource,
    received_at: datetime,
    raw_payload: Optional[dict[str, Any]] = None,
    fallback_time: Optional[datetime] = None,
) -> PaymentEvent:
    """The provider's view wins over anything pushed to us."""
    occurred_at = confirmation.occurred_at or confirmation.paid_at or fallback_time or received_at
    return PaymentEvent(
        reference=confirmation.reference,
        booking_id=booking_id,
        amount=confirmation.amount,
        currency=confirmation.currency,
        provider_status=confirmation.status,
        occurred_at=occurred_at,
        received_at=received_at,
        raw_payload=raw_payload or {},
        source=source,
    )


async def reconcile(reconciler: PaymentReconciler, event: PaymentEvent) -> ReconciliationResult:
    """Run the reconciliation to completion even if the caller goes away."""
    task = asyncio.ensure_future(reconciler.apply(event))
    task.add_done_callback(lambda _: log_domain_events(reconciler.clear_events()))
    return await asyncio.shield(task)


def log_domain_events(events: Iterable[Any]) -> None:
    for event in events:
        if isinstance(event, PaymentTransitionConflict):
            logger.warning(
                "payment_transition_conflict",
                booking_id=event.booking_id,
                reference=event.reference,
                current_status=event.current_status,
                target_status=event.target_status,
                reason=event.reason,
                event_id=event.event_id,
            )
        elif isinstance(event, PaymentReconciled):
            logger.info(
                "payment_reconciled",
                booking_id=event.booking_id,
                reference=event.reference,
                previous_status=event.previous_status,
                status=event.status,
                event_id=event.event_id,
            )
        elif isinstance(event, PaymentEscalated):
            logger.warning(
                "payment_escalated",
                booking_id=event.booking_id,
                reference=event.reference,
                pending_checks=event.pending_checks,
                event_id=event.event_id,
            )
        else:
            logger.info("domain_event", event_type=type(event).__name__)
