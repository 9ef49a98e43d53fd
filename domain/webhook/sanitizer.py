"""
Recursive sanitization of untrusted JSON.

Defense in depth against stored XSS through payloads that are later logged or
displayed; it does not replace schema validation.
"""
from __future__ import annotations

import re
from typing import Any

_ANGLE_BRACKETS = re.compile(r"[<>]")
_SCRIPT_SCHEMES = re.compile(r"(?:javascript|vbscript|data):", re.IGNORECASE)
_EVENT_HANDLERS = re.compile(r"on\w+\s*=", re.IGNORECASE)
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")


def sanitize_string(value: str) -> str:
    cleaned = _ANGLE_BRACKETS.sub("", value)
    cleaned = _SCRIPT_SCHEMES.sub("", cleaned)
    cleaned = _EVENT_HANDLERS.sub("", cleaned)
    cleaned = _CONTROL_CHARS.sub("", cleaned)
    return cleaned.strip()


def sanitize(value: Any) -> Any:
    # bool is a subclass of int; both pass through unchanged
    if isinstance(value, (bool, int, float)):
        return value
    if value is None:
        return None
    if isinstance(value, str):
        return sanitize_string(value)
    if isinstance(value, dict):
        return {
            (sanitize_string(k) if isinstance(k, str) else k): sanitize(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [sanitize(v) for v in value]
    return {}
