"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Optional

import httpx

from core.settings import payment_settings
from application.ports.payment_gateway import PaymentGateway


def get_payment_gateway(
    provider: Optional[str] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PaymentGateway:
    name = (provider or payment_settings.default_provider).lower()
    if name == "paystack":
        from .paystack_client import PaystackClient

        cfg = payment_settings.paystack
        secret = cfg.secret_key.get_secret_value() if cfg.secret_key else ""
        retry = payment_settings.retry
        return PaystackClient(
            secret_key=secret,
            base_url=cfg.base_url,
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"attempts": retry.attempts, "base": retry.base_backoff, "max": retry.max_backoff},
            transport=transport,
        )
    raise ValueError(f"Unsupported payment provider: {name}")
