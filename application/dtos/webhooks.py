"""
Webhook payload schema (Pydantic v2).

The sanitized provider payload is validated into a tagged union keyed on
``event``. Known event types get a strict schema; any other well-formed event
name maps to ``UnhandledWebhookEvent`` and is acknowledged without state
change. Anything else is a MalformedPayload.
"""
from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from domain.payment.exceptions import MalformedPayloadException


REFERENCE_PATTERN = r"^[A-Za-z0-9_.=-]{1,100}$"
EVENT_NAME_PATTERN = r"^[a-zA-Z_.]{1,64}$"


def coerce_metadata(v: Any) -> dict[str, Any]:
    # Paystack sends metadata as an object, a JSON string, or an empty string
    if isinstance(v, dict):
        return v
    if isinstance(v, str) and v.strip().startswith("{"):
        try:
            parsed = json.loads(v)
        except ValueError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def booking_id_from_metadata(metadata: dict[str, Any]) -> Optional[str]:
    for key in ("booking_id", "bookingId"):
        value = metadata.get(key)
        if value not in (None, ""):
            return str(value)
    return None


class ChargeData(BaseModel):
    model_config = ConfigDict(extra="allow")

    reference: str = Field(pattern=REFERENCE_PATTERN)
    amount: int = Field(ge=0)  # minor units
    currency: str = Field(min_length=3, max_length=3)
    status: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def normalize_metadata(cls, v: Any) -> dict[str, Any]:
        return coerce_metadata(v)

    @property
    def booking_id(self) -> Optional[str]:
        return booking_id_from_metadata(self.metadata)


class RefundData(BaseModel):
    model_config = ConfigDict(extra="allow")

    transaction_reference: str = Field(pattern=REFERENCE_PATTERN)
    amount: int = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)
    status: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def normalize_metadata(cls, v: Any) -> dict[str, Any]:
        return coerce_metadata(v)

    @property
    def reference(self) -> str:
        return self.transaction_reference

    @property
    def booking_id(self) -> Optional[str]:
        return booking_id_from_metadata(self.metadata)


class ChargeEvent(BaseModel):
    event: Literal["charge.success", "charge.failed", "charge.pending"]
    data: ChargeData


class RefundEvent(BaseModel):
    event: Literal["refund.processed"]
    data: RefundData


class UnhandledWebhookEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: str = Field(pattern=EVENT_NAME_PATTERN)


HandledWebhookEvent = Annotated[Union[ChargeEvent, RefundEvent], Field(discriminator="event")]
WebhookPayload = Union[ChargeEvent, RefundEvent, UnhandledWebhookEvent]

HANDLED_EVENT_TYPES = frozenset({"charge.success", "charge.failed", "charge.pending", "refund.processed"})

_handled_adapter: TypeAdapter = TypeAdapter(HandledWebhookEvent)


def parse_webhook_payload(payload: Any) -> WebhookPayload:
    """Validate a sanitized payload into the webhook tagged union."""
    if not isinstance(payload, dict):
        raise MalformedPayloadException("Webhook payload must be a JSON object")
    if not isinstance(payload.get("data"), dict):
        raise MalformedPayloadException("Missing or invalid event data", field="data")
    try:
        if payload.get("event") in HANDLED_EVENT_TYPES:
            return _handled_adapter.validate_python(payload)
        return UnhandledWebhookEvent.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(loc) for loc in first.get("loc", ()))
        raise MalformedPayloadException("Webhook payload failed schema validation", field=field or None) from exc
