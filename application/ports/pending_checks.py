"""
Pending re-check counter port.

Counts how many times a reference has been observed ``pending`` so the
verification flow can escalate to manual review.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class PendingCheckCounter(Protocol):
    async def increment(self, reference: str) -> int: ...

    async def reset(self, reference: str) -> None: ...
