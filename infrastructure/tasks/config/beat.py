"""Celery beat schedule configuration."""
from __future__ import annotations

CELERY_BEAT_SCHEDULE = {
    # Safety net for bookings whose webhook never arrived
    "payments-sweep-pending": {
        "task": "payments.sweep_pending",
        "schedule": 600,  # every 10 minutes
        "kwargs": {"older_than_seconds": 900, "limit": 100},
    },
}
