"""
Webhook rate limiter port.

Fixed-window counter keyed by sender; ``hit`` records one request and tells
whether it is still within the allowance.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class RateLimiter(Protocol):
    async def hit(self, key: str) -> bool: ...
