"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from domain.payment.entity import ProviderStatus
from application.dtos.webhooks import REFERENCE_PATTERN


class ProviderConfirmation(BaseModel):
    """Authoritative transaction state as reported by the provider's API."""

    reference: str
    status: ProviderStatus
    amount: Decimal
    currency: str
    provider: str
    paid_at: Optional[datetime] = None
    # provider time of the transaction state (paid_at, else creation time)
    occurred_at: Optional[datetime] = None
    booking_id: Optional[str] = None
    gateway_response: Optional[str] = None


class VerifyPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reference: str = Field(pattern=REFERENCE_PATTERN)
    booking_id: str = Field(alias="bookingId", min_length=1, max_length=100)


class VerifiedPayment(BaseModel):
    status: str
    amount: Decimal
    currency: str


class VerifyPaymentResponse(BaseModel):
    success: bool
    data: Optional[VerifiedPayment] = None
    error: Optional[str] = None
    manual_review: bool = False


class WebhookAck(BaseModel):
    status: str = "ok"
    event: Optional[str] = None
    reference: Optional[str] = None
    outcome: Optional[str] = None
    ignored: bool = False
