import pytest

from application.dtos.webhooks import (
    ChargeEvent,
    RefundEvent,
    UnhandledWebhookEvent,
    coerce_metadata,
    parse_webhook_payload,
)
from domain.payment.exceptions import MalformedPayloadException


def charge(**data):
    body = {"reference": "ref_1", "amount": 100000, "currency": "KES", "status": "success"}
    body.update(data)
    return {"event": "charge.success", "data": body}


def test_charge_event():
    payload = parse_webhook_payload(charge(metadata={"booking_id": "B1"}))
    assert isinstance(payload, ChargeEvent)
    assert payload.data.reference == "ref_1"
    assert payload.data.booking_id == "B1"


def test_metadata_as_json_string_or_empty():
    assert parse_webhook_payload(charge(metadata='{"bookingId": 42}')).data.booking_id == "42"
    assert parse_webhook_payload(charge(metadata="")).data.booking_id is None


def test_refund_event_uses_transaction_reference():
    payload = parse_webhook_payload({
        "event": "refund.processed",
        "data": {"transaction_reference": "ref_1", "amount": 100000, "currency": "KES", "status": "processed"},
    })
    assert isinstance(payload, RefundEvent)
    assert payload.data.reference == "ref_1"


def test_unknown_event_is_unhandled():
    payload = parse_webhook_payload({"event": "subscription.create", "data": {"code": "SUB_1"}})
    assert isinstance(payload, UnhandledWebhookEvent)
    assert payload.event == "subscription.create"


@pytest.mark.parametrize(
    "payload",
    [
        ["not", "an", "object"],
        {"event": "charge.success"},
        {"event": "charge.success", "data": "string"},
        charge(reference="bad reference!"),
        charge(amount=-1),
        charge(currency="SHILLINGS"),
        {"event": "charge.success", "data": {"amount": 1, "currency": "KES", "status": "success"}},
        {"event": "not an event!", "data": {}},
        {"data": {}},
    ],
)
def test_malformed_payloads(payload):
    with pytest.raises(MalformedPayloadException):
        parse_webhook_payload(payload)


def test_missing_field_is_reported():
    with pytest.raises(MalformedPayloadException) as exc_info:
        parse_webhook_payload({"event": "charge.success", "data": {"amount": 1, "currency": "KES", "status": "x"}})
    assert exc_info.value.field.endswith("data.reference")


def test_coerce_metadata():
    assert coerce_metadata({"a": 1}) == {"a": 1}
    assert coerce_metadata('{"a": 1}') == {"a": 1}
    assert coerce_metadata("{broken") == {}
    assert coerce_metadata(None) == {}
