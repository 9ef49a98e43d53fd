import asyncio
import json
from datetime import timedelta

import pytest

from application.services.webhook_service import WebhookService
from domain.payment.entity import BookingPaymentStatus, ProviderStatus
from domain.payment.exceptions import (
    BookingNotFoundException,
    IpNotAllowedException,
    MalformedPayloadException,
    ProviderRejectedException,
    ProviderUnreachableException,
    RateLimitedException,
    SignatureInvalidException,
    TimestampExpiredException,
)
from infrastructure.locks import InMemoryRateLimiter
from tests.conftest import NOW, WEBHOOK_SECRET, make_confirmation, make_webhook_body, sign


@pytest.fixture
def service(gateway, reconciler):
    gateway.set("ref_B1_001", make_confirmation())
    return WebhookService(
        gateway=gateway,
        reconciler=reconciler,
        webhook_secret=WEBHOOK_SECRET,
        clock=lambda: NOW,
    )


@pytest.mark.asyncio
async def test_signed_fresh_success_marks_booking_paid(service, gateway, store):
    body = make_webhook_body()
    ack = await service.handle(body, sign(body))

    assert ack.status == "ok"
    assert ack.event == "charge.success"
    assert ack.reference == "ref_B1_001"
    assert ack.outcome == "applied"
    assert gateway.calls == ["ref_B1_001"]
    assert store.bookings["B1"].payment.status is BookingPaymentStatus.PAID

    recorded = store.events[0].event
    assert recorded.raw_payload["data"]["metadata"] == {"booking_id": "B1"}
    assert recorded.source.value == "webhook"


@pytest.mark.asyncio
async def test_identical_redelivery_is_acknowledged_without_change(service, store):
    body = make_webhook_body()
    await service.handle(body, sign(body))
    snapshot = store.bookings["B1"].payment.copy()

    ack = await service.handle(body, sign(body))

    assert ack.outcome == "duplicate"
    assert store.bookings["B1"].payment == snapshot
    assert len(store.events) == 1


@pytest.mark.asyncio
async def test_bad_signature_is_rejected_before_any_io(service, gateway, store):
    body = make_webhook_body()
    with pytest.raises(SignatureInvalidException):
        await service.handle(body, sign(body, "wrong_secret"))
    with pytest.raises(SignatureInvalidException):
        await service.handle(body, None)

    assert gateway.calls == []
    assert store.bookings["B1"].payment.status is BookingPaymentStatus.UNPAID


@pytest.mark.asyncio
async def test_tampered_body_is_rejected(service, gateway):
    body = make_webhook_body()
    signature = sign(body)
    tampered = body.replace(b"100000", b"100001")
    with pytest.raises(SignatureInvalidException):
        await service.handle(tampered, signature)
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_stale_notification_is_rejected(service, gateway, store):
    body = make_webhook_body(paid_at=NOW - timedelta(minutes=5, seconds=1))
    with pytest.raises(TimestampExpiredException):
        await service.handle(body, sign(body))

    assert gateway.calls == []
    assert store.events == []


@pytest.mark.asyncio
async def test_notification_from_the_future_is_rejected(service):
    body = make_webhook_body(paid_at=NOW + timedelta(seconds=1))
    with pytest.raises(TimestampExpiredException):
        await service.handle(body, sign(body))


@pytest.mark.asyncio
async def test_notification_without_timestamp_is_malformed(service):
    body = json.dumps({
        "event": "charge.success",
        "data": {"reference": "ref_B1_001", "amount": 100000, "currency": "KES", "status": "success"},
    }).encode()
    with pytest.raises(MalformedPayloadException):
        await service.handle(body, sign(body))


@pytest.mark.asyncio
async def test_signed_garbage_is_malformed(service, gateway):
    body = b"definitely not json"
    with pytest.raises(MalformedPayloadException):
        await service.handle(body, sign(body))
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_unhandled_event_is_acknowledged(service, gateway, store):
    body = json.dumps({"event": "subscription.create", "data": {"code": "SUB_1"}}).encode()
    ack = await service.handle(body, sign(body))

    assert ack.ignored is True
    assert ack.event == "subscription.create"
    assert gateway.calls == []
    assert store.events == []


@pytest.mark.asyncio
async def test_pushed_status_is_not_trusted(service, gateway, store):
    gateway.set("ref_B1_001", make_confirmation(status=ProviderStatus.FAILED))
    body = make_webhook_body()
    await service.handle(body, sign(body))

    assert store.bookings["B1"].payment.status is BookingPaymentStatus.FAILED


@pytest.mark.asyncio
async def test_refund_notification_refunds_paid_booking(service, gateway, store):
    charge = make_webhook_body(paid_at=NOW - timedelta(minutes=2))
    gateway.set("ref_B1_001", make_confirmation(occurred_at=NOW - timedelta(minutes=2)))
    await service.handle(charge, sign(charge))

    gateway.set("ref_B1_001", make_confirmation(status=ProviderStatus.REVERSED, occurred_at=NOW - timedelta(seconds=20)))
    refund = make_webhook_body("refund.processed", paid_at=NOW - timedelta(seconds=20))
    ack = await service.handle(refund, sign(refund))

    assert ack.event == "refund.processed"
    assert ack.outcome == "applied"
    assert store.bookings["B1"].payment.status is BookingPaymentStatus.REFUNDED


@pytest.mark.asyncio
async def test_refund_notification_without_provider_reversal_is_a_noop(service, gateway, store):
    charge = make_webhook_body()
    await service.handle(charge, sign(charge))

    refund = make_webhook_body("refund.processed")
    ack = await service.handle(refund, sign(refund))

    # provider still reports success: nothing new to apply
    assert ack.outcome == "duplicate"
    assert store.bookings["B1"].payment.status is BookingPaymentStatus.PAID


@pytest.mark.asyncio
async def test_booking_mismatch_between_push_and_provider(service, gateway, store):
    gateway.set("ref_B1_001", make_confirmation(booking_id="B9"))
    body = make_webhook_body()
    with pytest.raises(ProviderRejectedException):
        await service.handle(body, sign(body))
    assert store.events == []


@pytest.mark.asyncio
async def test_unknown_booking(service, gateway):
    gateway.set("ref_B7_001", make_confirmation("ref_B7_001", booking_id="B7"))
    body = make_webhook_body(reference="ref_B7_001", booking_id="B7")
    with pytest.raises(BookingNotFoundException):
        await service.handle(body, sign(body))


@pytest.mark.asyncio
async def test_provider_outage_leaves_state_untouched(service, gateway, store):
    gateway.set("ref_B1_001", ProviderUnreachableException("paystack", reason="http_503"))
    body = make_webhook_body()
    with pytest.raises(ProviderUnreachableException):
        await service.handle(body, sign(body))

    assert store.bookings["B1"].payment.status is BookingPaymentStatus.UNPAID
    assert store.events == []


@pytest.mark.asyncio
async def test_ip_allowlist(gateway, reconciler):
    gateway.set("ref_B1_001", make_confirmation())
    service = WebhookService(
        gateway=gateway,
        reconciler=reconciler,
        webhook_secret=WEBHOOK_SECRET,
        ip_allowlist=["52.31.139.75", "10.0.0.0/8"],
        clock=lambda: NOW,
    )
    body = make_webhook_body()

    with pytest.raises(IpNotAllowedException):
        await service.handle(body, sign(body), client_ip="203.0.113.9")
    with pytest.raises(IpNotAllowedException):
        await service.handle(body, sign(body), client_ip=None)

    ack = await service.handle(body, sign(body), client_ip="10.1.2.3")
    assert ack.outcome == "applied"


@pytest.mark.asyncio
async def test_rate_limited_sender_is_rejected_before_signature_check(gateway, reconciler, store):
    gateway.set("ref_B1_001", make_confirmation())
    service = WebhookService(
        gateway=gateway,
        reconciler=reconciler,
        webhook_secret=WEBHOOK_SECRET,
        rate_limiter=InMemoryRateLimiter(limit=2, window=60),
        rate_limit_window=60,
        clock=lambda: NOW,
    )
    body = make_webhook_body()

    await service.handle(body, sign(body), client_ip="198.51.100.7")
    await service.handle(body, sign(body), client_ip="198.51.100.7")
    with pytest.raises(RateLimitedException) as excinfo:
        await service.handle(body, "garbage", client_ip="198.51.100.7")

    assert excinfo.value.retry_after == 60
    assert gateway.calls == ["ref_B1_001", "ref_B1_001"]

    # other senders keep their own window
    ack = await service.handle(body, sign(body), client_ip="198.51.100.8")
    assert ack.outcome == "duplicate"


@pytest.mark.asyncio
async def test_reconciliation_survives_caller_cancellation(gateway, reconciler, store):
    gateway.set("ref_B1_001", make_confirmation())
    service = WebhookService(
        gateway=gateway,
        reconciler=reconciler,
        webhook_secret=WEBHOOK_SECRET,
        clock=lambda: NOW,
    )
    body = make_webhook_body()

    async with reconciler.lock.hold("B1"):
        task = asyncio.ensure_future(service.handle(body, sign(body)))
        # let the request reach the lock, then drop it
        for _ in range(5):
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    for _ in range(20):
        if store.bookings["B1"].payment.status is BookingPaymentStatus.PAID:
            break
        await asyncio.sleep(0.01)
    assert store.bookings["B1"].payment.status is BookingPaymentStatus.PAID
