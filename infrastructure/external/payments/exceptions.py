"""
Internal provider error signals.

TransientProviderError never leaves the adapter: it drives the retry loop and
is translated into ProviderUnreachableException once retries are exhausted.
"""
from __future__ import annotations

from typing import Optional


class TransientProviderError(Exception):
    def __init__(self, reason: str, *, status_code: Optional[int] = None):
        self.reason = reason
        self.status_code = status_code
        super().__init__(reason)
