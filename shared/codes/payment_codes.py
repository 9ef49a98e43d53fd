"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Webhook trust boundary (6xxxx)
    SIGNATURE_INVALID = 60001
    TIMESTAMP_EXPIRED = 60002
    MALFORMED_PAYLOAD = 60003
    IP_NOT_ALLOWED = 60004
    RATE_LIMITED = 60005

    # Provider/Network errors
    PROVIDER_UNREACHABLE = 60100
    PROVIDER_REJECTED = 60101
    INVALID_REFERENCE = 60102

    # Reconciliation
    BOOKING_NOT_FOUND = 60200
    TRANSITION_CONFLICT = 60201
    CONCURRENT_UPDATE = 60202
    LOCK_TIMEOUT = 60203


# Provider transaction status -> internal provider status
# (success | failed | pending | abandoned | reversed)
PROVIDER_STATUS_TO_INTERNAL = {
    "paystack": {
        "success": "success",
        "failed": "failed",
        "abandoned": "abandoned",
        "pending": "pending",
        "ongoing": "pending",
        "processing": "pending",
        "queued": "pending",
        "reversed": "reversed",
    },
}
