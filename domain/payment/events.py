"""
Payment domain events.

Dataclass events record important reconciliation facts for downstream handling
(e.g., operator alerts, projections). Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class ReconciliationEvent:
    booking_id: str
    reference: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentReconciled(ReconciliationEvent):
    previous_status: str = ""
    status: str = ""


@dataclass
class PaymentTransitionConflict(ReconciliationEvent):
    current_status: str = ""
    target_status: str = ""
    reason: Optional[str] = None


@dataclass
class PaymentEscalated(ReconciliationEvent):
    pending_checks: int = 0
