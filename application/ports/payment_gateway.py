"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import ProviderConfirmation


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for third-party payment providers.

    ``confirm`` re-pulls the transaction state from the provider and raises
    ProviderUnreachableException (retryable), InvalidReferenceException or
    ProviderRejectedException (terminal).
    """

    provider: str

    async def confirm(self, reference: str) -> ProviderConfirmation: ...

    async def aclose(self) -> None: ...
