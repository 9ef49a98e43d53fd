"""
Business codes shared across layers (Domain/Core/API).

``BusinessCode`` covers generic failures; reconciliation failures live in
``shared.codes.payment_codes.PaymentCode`` (6xxxx). Both travel in the
``code`` field of the response envelope and are mapped to HTTP statuses in
``core.exceptions``.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """Generic business status codes."""

    SUCCESS = 0

    # Parameter errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_TYPE_ERROR = 10002
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    BUSINESS_ERROR = 20000
    NOT_FOUND = 20006
    CONFLICT = 20007  # e.g. booking id already exists

    # Authorization errors (3xxxx)
    PERMISSION_ERROR = 30000
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003

    # Rate limiting (5xxxx)
    RATE_LIMIT_ERROR = 50000
    TOO_MANY_REQUESTS = 50001


from .payment_codes import PaymentCode  # noqa: E402

__all__ = ["BusinessCode", "PaymentCode"]
