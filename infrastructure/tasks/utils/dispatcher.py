"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from core.logging_config import get_logger

from ..config.celery import celery_app

logger = get_logger(__name__)

RECHECK_TASK = "payments.recheck_pending"


class TaskDispatcher:
    """Facade the API layer uses to schedule payment re-checks by task name."""

    def schedule_pending_recheck(self, reference: str, booking_id: str, *, countdown: int = 60) -> None:
        """Re-verify a pending payment after ``countdown`` seconds."""
        result = celery_app.send_task(
            RECHECK_TASK,
            kwargs={"reference": reference, "booking_id": booking_id},
            countdown=countdown,
        )
        logger.info(
            "payment_recheck_scheduled",
            reference=reference,
            booking_id=booking_id,
            countdown=countdown,
            task_id=result.id,
        )
