"""Infrastructure models package exports."""
from .base import Base, metadata
from .booking import BookingModel
from .payment_event import PaymentEventModel

__all__ = [
    "Base",
    "metadata",
    "BookingModel",
    "PaymentEventModel",
]
