"""
Paystack adapter for server-side transaction verification.

Uses the REST API directly over httpx:
- ``GET /transaction/verify/{reference}`` with ``Authorization: Bearer <secret key>``
- amounts are returned in the currency's minor unit (kobo, cents)
- an unknown reference answers ``status: false`` with "Transaction reference not found"
"""
from __future__ import annotations

import re
from typing import Any, Optional
from urllib.parse import quote

import httpx

from application.dtos.payments import ProviderConfirmation
from application.dtos.webhooks import REFERENCE_PATTERN, booking_id_from_metadata, coerce_metadata
from domain.payment.entity import ProviderStatus
from domain.payment.exceptions import (
    InvalidReferenceException,
    ProviderRejectedException,
    ProviderUnreachableException,
)
from domain.webhook.freshness import extract_event_timestamp, parse_timestamp
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import TransientProviderError
from core.logging_config import get_logger


logger = get_logger(__name__)

_REFERENCE_RE = re.compile(REFERENCE_PATTERN)


class PaystackClient(BasePaymentClient):
    provider = "paystack"

    def __init__(
        self,
        *,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeouts=timeouts, retry=retry, transport=transport)
        if not secret_key:
            raise RuntimeError("PAYMENT__PAYSTACK__SECRET_KEY not configured")
        self._secret_key = secret_key
        self.base_url = base_url.rstrip("/")

    async def confirm(self, reference: str) -> ProviderConfirmation:  # type: ignore[override]
        if not isinstance(reference, str) or not _REFERENCE_RE.match(reference):
            raise InvalidReferenceException(self.provider, str(reference)[:100])

        url = f"{self.base_url}/transaction/verify/{quote(reference, safe='')}"
        headers = {
            "Authorization": f"Bearer {self._secret_key}",
            "Accept": "application/json",
        }

        async def _call() -> httpx.Response:
            async with self.client() as http:
                try:
                    resp = await http.get(url, headers=headers)
                except httpx.TimeoutException as exc:
                    raise TransientProviderError("timeout") from exc
                except httpx.TransportError as exc:
                    raise TransientProviderError(f"transport_error:{type(exc).__name__}") from exc
            if resp.status_code >= 500 or resp.status_code == 429:
                raise TransientProviderError(f"http_{resp.status_code}", status_code=resp.status_code)
            return resp

        try:
            resp = await self._retry(_call)
        except TransientProviderError as exc:
            logger.warning("provider_unreachable", provider=self.provider, reference=reference, reason=exc.reason)
            raise ProviderUnreachableException(self.provider, reason=exc.reason) from exc

        confirmation = self._parse_verify_response(reference, resp)
        self._log(
            "provider_confirmed",
            reference=reference,
            status=confirmation.status.value,
            amount=str(confirmation.amount),
            currency=confirmation.currency,
        )
        return confirmation

    def _parse_verify_response(self, reference: str, resp: httpx.Response) -> ProviderConfirmation:
        try:
            body = resp.json()
        except ValueError:
            raise ProviderRejectedException(self.provider, reason="invalid_json_response")
        if not isinstance(body, dict):
            raise ProviderRejectedException(self.provider, reason="unexpected_response_shape")

        message = str(body.get("message") or "")
        if resp.status_code == 404 or "not found" in message.lower():
            raise InvalidReferenceException(self.provider, reference)
        if resp.status_code >= 400 or not body.get("status"):
            raise ProviderRejectedException(self.provider, reason=message or f"http_{resp.status_code}")

        data = body.get("data")
        if not isinstance(data, dict):
            raise ProviderRejectedException(self.provider, reason="missing_transaction_data")

        reported = str(data.get("reference") or "")
        if reported != reference:
            raise ProviderRejectedException(self.provider, reason="reference_mismatch")

        internal = self._map_status(str(data.get("status") or "").lower())
        if internal is None:
            raise ProviderRejectedException(self.provider, reason=f"unsupported_status:{data.get('status')}")

        currency = str(data.get("currency") or "").strip().upper()
        if len(currency) != 3 or not currency.isascii() or not currency.isalpha():
            raise ProviderRejectedException(self.provider, reason="invalid_currency")
        try:
            amount = self._from_minor(data.get("amount"), currency)
        except (TypeError, ValueError):
            raise ProviderRejectedException(self.provider, reason="invalid_amount")

        metadata = coerce_metadata(data.get("metadata"))
        return ProviderConfirmation(
            reference=reference,
            status=ProviderStatus(internal),
            amount=amount,
            currency=currency,
            provider=self.provider,
            paid_at=parse_timestamp(data.get("paid_at") or data.get("paidAt")),
            occurred_at=extract_event_timestamp(data),
            booking_id=booking_id_from_metadata(metadata),
            gateway_response=str(data.get("gateway_response") or "") or None,
        )
