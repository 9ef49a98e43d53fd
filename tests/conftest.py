"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PAYMENT__PAYSTACK__SECRET_KEY", "sk_test_secret")
os.environ.setdefault("PAYMENT__PAYSTACK__WEBHOOK_SECRET", "whsec_test_secret")

import copy
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

import pytest

from application.dtos.payments import ProviderConfirmation
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import (
    Booking,
    BookingPaymentState,
    BookingPaymentStatus,
    ProviderStatus,
    RecordedPaymentEvent,
)
from domain.payment.repository import BookingRepository, PaymentEventRepository
from domain.payment.service import PaymentReconciler
from domain.webhook import compute_signature
from infrastructure.locks import InMemoryBookingLock, InMemoryPendingCheckCounter


WEBHOOK_SECRET = "whsec_test_secret"
NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# ============= In-memory persistence =============

class InMemoryStore:
    def __init__(self) -> None:
        self.bookings: Dict[str, Booking] = {}
        self.events: List[RecordedPaymentEvent] = []
        self.commits = 0

    def add_booking(self, booking_id: str, status: BookingPaymentStatus = BookingPaymentStatus.UNPAID) -> Booking:
        booking = Booking(id=booking_id, payment=BookingPaymentState(status=status), created_at=NOW)
        self.bookings[booking_id] = booking
        return booking


class InMemoryBookingRepository(BookingRepository):
    def __init__(self, bookings: Dict[str, Booking]):
        self.bookings = bookings

    async def get_by_id(self, booking_id: str) -> Optional[Booking]:
        booking = self.bookings.get(booking_id)
        return copy.deepcopy(booking) if booking else None

    async def add(self, booking: Booking) -> Booking:
        self.bookings[booking.id] = copy.deepcopy(booking)
        return booking

    async def save_payment_state(self, booking_id, state, *, expected_status, expected_reference) -> bool:
        current = self.bookings.get(booking_id)
        if current is None:
            return False
        if current.payment.status != expected_status or current.payment.last_event_reference != expected_reference:
            return False
        current.payment = state.copy()
        return True

    async def list_pending(self, updated_before, limit=100):
        pending = [
            b for b in self.bookings.values()
            if b.payment.status is BookingPaymentStatus.PENDING
            and b.payment.updated_at is not None
            and b.payment.updated_at < updated_before
        ]
        return [copy.deepcopy(b) for b in pending[:limit]]


class InMemoryPaymentEventRepository(PaymentEventRepository):
    def __init__(self, events: List[RecordedPaymentEvent]):
        self.events = events

    async def add(self, record: RecordedPaymentEvent) -> RecordedPaymentEvent:
        self.events.append(record)
        return record

    async def exists(self, reference: str, provider_status: str) -> bool:
        return any(r.event.dedupe_key == (reference, provider_status) for r in self.events)

    async def list_by_reference(self, reference: str):
        return [r for r in self.events if r.event.reference == reference]

    async def list_by_booking(self, booking_id: str, skip: int = 0, limit: int = 100):
        records = [r for r in reversed(self.events) if r.event.booking_id == booking_id]
        return records[skip:skip + limit]


class InMemoryUnitOfWork(AbstractUnitOfWork):
    """Stages writes on copies and publishes them on commit."""

    def __init__(self, store: InMemoryStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self.store = store

    async def __aenter__(self):
        self._bookings = copy.deepcopy(self.store.bookings)
        self._events = list(self.store.events)
        self.booking_repository = InMemoryBookingRepository(self._bookings)
        self.payment_event_repository = InMemoryPaymentEventRepository(self._events)
        return self

    async def commit(self) -> None:
        self.store.bookings = self._bookings
        self.store.events = self._events
        self.store.commits += 1
        self._committed = True

    async def rollback(self) -> None:
        self._committed = False


# ============= Provider stub =============

class StubGateway:
    """Answers confirm() from a table; records every call."""

    provider = "paystack"

    def __init__(self) -> None:
        self.responses: Dict[str, object] = {}
        self.calls: List[str] = []
        self.closed = False

    def set(self, reference: str, response) -> None:
        self.responses[reference] = response

    async def confirm(self, reference: str) -> ProviderConfirmation:
        self.calls.append(reference)
        response = self.responses[reference]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        return response

    async def aclose(self) -> None:
        self.closed = True


def make_confirmation(
    reference: str = "ref_B1_001",
    status: ProviderStatus = ProviderStatus.SUCCESS,
    *,
    booking_id: Optional[str] = "B1",
    amount: str = "1000.00",
    currency: str = "KES",
    occurred_at: Optional[datetime] = None,
) -> ProviderConfirmation:
    occurred = occurred_at or NOW - timedelta(seconds=30)
    return ProviderConfirmation(
        reference=reference,
        status=status,
        amount=Decimal(amount),
        currency=currency,
        provider="paystack",
        paid_at=occurred if status is ProviderStatus.SUCCESS else None,
        occurred_at=occurred,
        booking_id=booking_id,
    )


def make_webhook_body(
    event: str = "charge.success",
    reference: str = "ref_B1_001",
    *,
    booking_id: str = "B1",
    paid_at: Optional[datetime] = None,
    amount: int = 100000,
    currency: str = "KES",
    status: str = "success",
) -> bytes:
    paid = (paid_at or NOW - timedelta(seconds=30)).isoformat().replace("+00:00", "Z")
    if event == "refund.processed":
        data = {
            "transaction_reference": reference,
            "amount": amount,
            "currency": currency,
            "status": "processed",
            "updated_at": paid,
            "metadata": {"booking_id": booking_id},
        }
    else:
        data = {
            "id": 4099260516,
            "reference": reference,
            "amount": amount,
            "currency": currency,
            "status": status,
            "paid_at": paid,
            "gateway_response": "Approved",
            "metadata": {"booking_id": booking_id},
        }
    return json.dumps({"event": event, "data": data}).encode("utf-8")


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return compute_signature(body, secret)


# ============= Fixtures =============

@pytest.fixture
def store() -> InMemoryStore:
    s = InMemoryStore()
    s.add_booking("B1")
    return s


@pytest.fixture
def uow_factory(store):
    return lambda: InMemoryUnitOfWork(store)


@pytest.fixture
def booking_lock() -> InMemoryBookingLock:
    return InMemoryBookingLock(blocking_timeout=1.0)


@pytest.fixture
def reconciler(uow_factory, booking_lock) -> PaymentReconciler:
    return PaymentReconciler(uow_factory=uow_factory, lock=booking_lock, clock=lambda: NOW)


@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def pending_checks() -> InMemoryPendingCheckCounter:
    return InMemoryPendingCheckCounter()


@pytest.fixture
def confirmation_factory():
    return make_confirmation


@pytest.fixture
def webhook_body():
    return make_webhook_body


@pytest.fixture
def signer():
    return sign
