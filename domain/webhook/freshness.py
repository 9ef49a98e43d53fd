"""
Notification freshness guard.

Bounds the replay surface: a captured, validly signed payload is only
accepted within ``window`` of its own timestamp. Forward clock skew is not
tolerated.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence

DEFAULT_WINDOW = timedelta(minutes=5)

# Payload fields carrying the notification time, in order of preference
TIMESTAMP_FIELDS = ("paid_at", "paidAt", "transaction_date", "created_at", "createdAt", "updated_at", "updatedAt")
# Refund notifications: created_at is when the refund was requested, possibly days earlier
REFUND_TIMESTAMP_FIELDS = ("refunded_at", "updated_at", "updatedAt", "created_at", "createdAt")


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def is_fresh(event_timestamp: datetime, now: datetime, window: timedelta = DEFAULT_WINDOW) -> bool:
    ts = _as_utc(event_timestamp)
    current = _as_utc(now)
    return current - window <= ts <= current


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return _as_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        return _as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def extract_event_timestamp(data: Any, fields: Sequence[str] = TIMESTAMP_FIELDS) -> Optional[datetime]:
    """Pick the notification time from a provider ``data`` object."""
    if not isinstance(data, dict):
        return None
    for name in fields:
        parsed = parse_timestamp(data.get(name))
        if parsed is not None:
            return parsed
    return None
