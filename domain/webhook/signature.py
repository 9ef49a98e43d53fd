"""
Webhook signature verification.

The signature is an HMAC-SHA512 hex digest computed over the raw request
bytes. Verification never raises: anything malformed is simply unverified.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Any

# Algorithm tags some providers put in front of the digest
SIGNATURE_PREFIXES = ("sha512=",)


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


def _strip_prefix(signature: str) -> str:
    value = signature.strip()
    for prefix in SIGNATURE_PREFIXES:
        if value[: len(prefix)].lower() == prefix:
            return value[len(prefix):]
    return value


def constant_time_equals(a: bytes, b: bytes) -> bool:
    """Equal-length check, then XOR-accumulate over every byte."""
    if len(a) != len(b):
        return False
    result = 0
    for x, y in zip(a, b):
        result |= x ^ y
    return result == 0


def verify_signature(raw_body: Any, signature_header: Any, secret: Any) -> bool:
    if not isinstance(raw_body, (bytes, bytearray)) or not raw_body:
        return False
    if not isinstance(signature_header, str) or not signature_header.strip():
        return False
    if not isinstance(secret, str) or not secret:
        return False

    supplied = _strip_prefix(signature_header)
    try:
        supplied_bytes = supplied.encode("ascii")
    except UnicodeEncodeError:
        return False
    expected = compute_signature(bytes(raw_body), secret).encode("ascii")
    return constant_time_equals(expected, supplied_bytes)
