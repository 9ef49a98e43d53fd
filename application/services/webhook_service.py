"""
Application service handling provider webhook notifications.

Pipeline: per-sender rate limit -> sender allowlist -> signature -> JSON -> sanitize -> schema ->
freshness -> provider confirmation -> reconciliation. Every rejection before
the confirmation step leaves booking state untouched.
"""
from __future__ import annotations

import ipaddress
import json
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from application.dtos.payments import ProviderConfirmation, WebhookAck
from application.dtos.webhooks import RefundEvent, UnhandledWebhookEvent, parse_webhook_payload
from application.ports.payment_gateway import PaymentGateway
from application.ports.rate_limiter import RateLimiter
from application.services.reconciliation import build_payment_event, reconcile
from core.logging_config import get_logger
from domain.payment.entity import EventSource
from domain.payment.exceptions import (
    IpNotAllowedException,
    MalformedPayloadException,
    ProviderRejectedException,
    RateLimitedException,
    SignatureInvalidException,
    TimestampExpiredException,
)
from domain.payment.service import PaymentReconciler
from domain.webhook import (
    DEFAULT_WINDOW,
    REFUND_TIMESTAMP_FIELDS,
    TIMESTAMP_FIELDS,
    extract_event_timestamp,
    is_fresh,
    sanitize,
    verify_signature,
)


logger = get_logger(__name__)


def _parse_networks(entries: Optional[Iterable[str]]):
    if not entries:
        return None
    return [ipaddress.ip_network(entry.strip(), strict=False) for entry in entries if entry and entry.strip()]


class WebhookService:
    def __init__(
        self,
        *,
        gateway: PaymentGateway,
        reconciler: PaymentReconciler,
        webhook_secret: str,
        window: timedelta = DEFAULT_WINDOW,
        ip_allowlist: Optional[Iterable[str]] = None,
        rate_limiter: Optional[RateLimiter] = None,
        rate_limit_window: int = 60,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.gateway = gateway
        self.reconciler = reconciler
        self._secret = webhook_secret
        self.window = window
        self._networks = _parse_networks(ip_allowlist)
        self.rate_limiter = rate_limiter
        self._rate_limit_window = rate_limit_window
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def _check_rate(self, client_ip: Optional[str]) -> None:
        if self.rate_limiter is None:
            return
        if not await self.rate_limiter.hit(client_ip or "unknown"):
            logger.warning("webhook_rate_limited", client_ip=client_ip)
            raise RateLimitedException(retry_after=self._rate_limit_window)

    def _check_sender(self, client_ip: Optional[str]) -> None:
        if self._networks is None:
            return
        try:
            addr = ipaddress.ip_address(client_ip or "")
        except ValueError:
            addr = None
        if addr is None or not any(addr in net for net in self._networks):
            logger.warning("webhook_sender_rejected", client_ip=client_ip)
            raise IpNotAllowedException()

    async def handle(
        self,
        raw_body: bytes,
        signature: Optional[str],
        *,
        client_ip: Optional[str] = None,
    ) -> WebhookAck:
        await self._check_rate(client_ip)
        self._check_sender(client_ip)

        if not verify_signature(raw_body, signature or "", self._secret):
            logger.warning("webhook_signature_invalid", client_ip=client_ip, body_size=len(raw_body or b""))
            raise SignatureInvalidException()

        try:
            decoded = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError) as exc:
            logger.warning("webhook_payload_not_json")
            raise MalformedPayloadException("Webhook body is not valid JSON") from exc

        clean = sanitize(decoded)
        payload = parse_webhook_payload(clean)

        if isinstance(payload, UnhandledWebhookEvent):
            logger.info("webhook_event_ignored", event=payload.event)
            return WebhookAck(event=payload.event, ignored=True)

        fields = REFUND_TIMESTAMP_FIELDS if isinstance(payload, RefundEvent) else TIMESTAMP_FIELDS
        sent_at = extract_event_timestamp(clean["data"], fields)
        if sent_at is None:
            raise MalformedPayloadException("Webhook payload has no usable timestamp", field="data")

        now = self.clock()
        if not is_fresh(sent_at, now, self.window):
            logger.warning(
                "webhook_timestamp_expired",
                event=payload.event,
                reference=payload.data.reference,
                sent_at=sent_at.isoformat(),
            )
            raise TimestampExpiredException()

        reference = payload.data.reference
        logger.info("webhook_received", event=payload.event, reference=reference)

        # Provider I/O happens before and outside the booking lock
        confirmation = await self.gateway.confirm(reference)
        booking_id = self._resolve_booking_id(payload.data.booking_id, confirmation)

        event = build_payment_event(
            confirmation,
            booking_id=booking_id,
            source=EventSource.WEBHOOK,
            received_at=now,
            raw_payload=clean,
            fallback_time=sent_at,
        )
        result = await reconcile(self.reconciler, event)

        logger.info(
            "webhook_processed",
            event=payload.event,
            reference=reference,
            booking_id=booking_id,
            outcome=result.outcome.value,
            status=result.final_status.value,
        )
        return WebhookAck(event=payload.event, reference=reference, outcome=result.outcome.value)

    def _resolve_booking_id(self, pushed: Optional[str], confirmation: ProviderConfirmation) -> str:
        confirmed = confirmation.booking_id
        if pushed and confirmed and pushed != confirmed:
            logger.warning(
                "webhook_booking_mismatch",
                reference=confirmation.reference,
                pushed_booking_id=pushed,
                confirmed_booking_id=confirmed,
            )
            raise ProviderRejectedException(confirmation.provider, reason="booking_mismatch")
        booking_id = confirmed or pushed
        if not booking_id:
            raise MalformedPayloadException("Payment metadata carries no booking id", field="data.metadata")
        return booking_id
