import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from domain.payment.entity import ProviderStatus
from domain.payment.exceptions import (
    InvalidReferenceException,
    ProviderRejectedException,
    ProviderUnreachableException,
)
from infrastructure.external.payments import get_payment_gateway
from infrastructure.external.payments.paystack_client import PaystackClient


NO_WAIT = {"attempts": 3, "base": 0, "max": 0}


def verify_body(reference="ref_B1_001", *, status="success", amount=100000, currency="KES", **extra):
    data = {
        "id": 4099260516,
        "reference": reference,
        "status": status,
        "amount": amount,
        "currency": currency,
        "paid_at": "2026-03-01T11:59:30.000Z",
        "created_at": "2026-03-01T11:58:00.000Z",
        "gateway_response": "Approved",
        "metadata": {"booking_id": "B1"},
    }
    data.update(extra)
    return {"status": True, "message": "Verification successful", "data": data}


def make_client(handler, retry=NO_WAIT):
    return PaystackClient(
        secret_key="sk_test_secret",
        base_url="https://paystack.test",
        retry=retry,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_confirm_success_converts_minor_units():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=verify_body())

    client = make_client(handler)
    try:
        confirmation = await client.confirm("ref_B1_001")
    finally:
        await client.aclose()

    assert confirmation.status is ProviderStatus.SUCCESS
    assert confirmation.amount == Decimal("1000.00")
    assert confirmation.currency == "KES"
    assert confirmation.booking_id == "B1"
    assert confirmation.occurred_at == datetime(2026, 3, 1, 11, 59, 30, tzinfo=timezone.utc)
    assert confirmation.gateway_response == "Approved"

    assert seen[0].method == "GET"
    assert seen[0].url.path == "/transaction/verify/ref_B1_001"
    assert seen[0].headers["Authorization"] == "Bearer sk_test_secret"


@pytest.mark.asyncio
async def test_abandoned_and_reversed_statuses_are_mapped():
    bodies = {
        "ref_a": verify_body("ref_a", status="abandoned", paid_at=None),
        "ref_r": verify_body("ref_r", status="reversed"),
    }

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=bodies[request.url.path.rsplit("/", 1)[-1]])

    client = make_client(handler)
    abandoned = await client.confirm("ref_a")
    reversed_ = await client.confirm("ref_r")
    await client.aclose()

    assert abandoned.status is ProviderStatus.ABANDONED
    assert abandoned.paid_at is None
    assert abandoned.occurred_at == datetime(2026, 3, 1, 11, 58, tzinfo=timezone.utc)
    assert reversed_.status is ProviderStatus.REVERSED


@pytest.mark.asyncio
async def test_zero_decimal_currency():
    def handler(request):
        return httpx.Response(200, json=verify_body(amount=5000, currency="UGX"))

    client = make_client(handler)
    confirmation = await client.confirm("ref_B1_001")
    await client.aclose()

    assert confirmation.amount == Decimal("5000")


@pytest.mark.asyncio
async def test_server_errors_are_retried():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        if calls["n"] < 3:
            return httpx.Response(502, text="bad gateway")
        return httpx.Response(200, json=verify_body())

    client = make_client(handler)
    confirmation = await client.confirm("ref_B1_001")
    await client.aclose()

    assert calls["n"] == 3
    assert confirmation.status is ProviderStatus.SUCCESS


@pytest.mark.asyncio
async def test_exhausted_retries_raise_unreachable():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        return httpx.Response(503, text="unavailable")

    client = make_client(handler)
    with pytest.raises(ProviderUnreachableException) as exc_info:
        await client.confirm("ref_B1_001")
    await client.aclose()

    assert calls["n"] == 3
    assert exc_info.value.retryable is True
    assert exc_info.value.reason == "http_503"


@pytest.mark.asyncio
async def test_timeouts_raise_unreachable():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = make_client(handler, retry={"attempts": 2, "base": 0, "max": 0})
    with pytest.raises(ProviderUnreachableException):
        await client.confirm("ref_B1_001")
    await client.aclose()


@pytest.mark.asyncio
async def test_unknown_reference_is_invalid_reference():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        return httpx.Response(400, json={"status": False, "message": "Transaction reference not found"})

    client = make_client(handler)
    with pytest.raises(InvalidReferenceException):
        await client.confirm("ref_unknown")
    await client.aclose()

    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_rejection_is_not_retried():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        return httpx.Response(401, json={"status": False, "message": "Invalid key"})

    client = make_client(handler)
    with pytest.raises(ProviderRejectedException) as exc_info:
        await client.confirm("ref_B1_001")
    await client.aclose()

    assert calls["n"] == 1
    assert exc_info.value.retryable is False
    assert not isinstance(exc_info.value, InvalidReferenceException)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        verify_body("ref_other"),
        verify_body(status="mystery"),
        verify_body(amount="lots"),
        {"status": True, "message": "ok"},
        ["not", "an", "object"],
    ],
)
async def test_inconsistent_responses_are_rejected(body):
    def handler(request):
        return httpx.Response(200, content=json.dumps(body).encode())

    client = make_client(handler)
    with pytest.raises(ProviderRejectedException):
        await client.confirm("ref_B1_001")
    await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("currency", ["", None, "KE", "KESH", "K3S"])
async def test_invalid_currency_is_rejected(currency):
    def handler(request):
        return httpx.Response(200, json=verify_body(currency=currency))

    client = make_client(handler)
    with pytest.raises(ProviderRejectedException) as excinfo:
        await client.confirm("ref_B1_001")
    assert excinfo.value.reason == "invalid_currency"
    assert excinfo.value.error_type == "PROVIDER_REJECTED"
    await client.aclose()


@pytest.mark.asyncio
async def test_non_json_response_is_rejected():
    def handler(request):
        return httpx.Response(200, text="<html>oops</html>")

    client = make_client(handler)
    with pytest.raises(ProviderRejectedException):
        await client.confirm("ref_B1_001")
    await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("reference", ["", "../admin", "ref with space", "x" * 101])
async def test_malformed_reference_never_reaches_the_network(reference):
    def handler(request):
        raise AssertionError("no request expected")

    client = make_client(handler)
    with pytest.raises(InvalidReferenceException):
        await client.confirm(reference)
    await client.aclose()


def test_missing_secret_key_is_a_configuration_error():
    with pytest.raises(RuntimeError):
        PaystackClient(secret_key="")


def test_factory_builds_paystack_client_from_settings():
    gateway = get_payment_gateway("paystack")
    assert isinstance(gateway, PaystackClient)
    assert gateway.provider == "paystack"

    with pytest.raises(ValueError):
        get_payment_gateway("unknown")
