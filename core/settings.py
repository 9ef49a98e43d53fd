"""
Payment-related settings using pydantic-settings v2 with nested env keys.

This module is isolated so core.config.Settings stays focused on the
application shell. Secrets are held as SecretStr and only unwrapped at the
composition root where components are constructed.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, SecretStr


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    attempts: int = 3
    base_backoff: float = 0.5
    max_backoff: float = 4.0


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300
    signature_header: str = "x-paystack-signature"
    ip_allowlist: list[str] | None = None  # Optional IPs/CIDRs allowed to post webhooks
    # Only honour X-Forwarded-For for the allowlist behind a trusted proxy
    trust_forwarded_for: bool = False
    # Fixed-window limit per sender IP; 0 disables
    rate_limit: int = 30
    rate_limit_window: int = 60


class PaystackSettings(BaseModel):
    base_url: str = "https://api.paystack.co"
    secret_key: Optional[SecretStr] = None
    webhook_secret: Optional[SecretStr] = None


class ReconciliationSettings(BaseModel):
    lock_timeout: int = 10
    lock_blocking_timeout: int = 5
    max_pending_checks: int = 5
    pending_counter_ttl: int = 24 * 3600


class PaymentSettings(BaseSettings):
    default_provider: str = "paystack"
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    reconciliation: ReconciliationSettings = Field(default_factory=ReconciliationSettings)

    paystack: PaystackSettings = Field(default_factory=PaystackSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
