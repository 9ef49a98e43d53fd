"""Webhook trust boundary: signature, freshness and payload sanitization."""
from .signature import verify_signature, compute_signature
from .freshness import (
    DEFAULT_WINDOW,
    REFUND_TIMESTAMP_FIELDS,
    TIMESTAMP_FIELDS,
    extract_event_timestamp,
    is_fresh,
    parse_timestamp,
)
from .sanitizer import sanitize

__all__ = [
    "verify_signature",
    "compute_signature",
    "DEFAULT_WINDOW",
    "is_fresh",
    "extract_event_timestamp",
    "parse_timestamp",
    "REFUND_TIMESTAMP_FIELDS",
    "TIMESTAMP_FIELDS",
    "sanitize",
]
