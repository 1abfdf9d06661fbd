"""
Domain events published by the payout gateway.

Each event kind is a pydantic model tagged by its `event` name and
registered in EVENT_TYPES, so a payload read back from the broker or the
fallback table decodes to the right type.
"""
import json
from typing import Any, Dict, Literal, Type

from pydantic import BaseModel, ConfigDict, Field

PAYMENT_CREATED = "payment.created"


class UnknownEventError(ValueError):
    """Raised when a payload carries an unregistered event name."""

    pass


class PaymentEventData(BaseModel):
    """Payload of a payment event."""

    model_config = ConfigDict(populate_by_name=True)

    payment_id: str = Field(..., alias="paymentId")
    amount: float
    currency: str
    customer_id: str = Field(..., alias="customerId", description="Wise recipient account")
    wise_payment_id: str = Field(..., alias="wisePaymentId", description="Wise quote ID")
    status: str


class DomainEvent(BaseModel):
    """Base class for every published event."""

    event: str

    def to_message(self) -> Dict[str, Any]:
        """Wire representation, using the camelCase field names."""
        return self.model_dump(mode="json", by_alias=True)

    def encode(self) -> bytes:
        return json.dumps(self.to_message()).encode("utf-8")


class PaymentCreatedEvent(DomainEvent):
    """Emitted once per successfully initiated payment."""

    event: Literal["payment.created"] = PAYMENT_CREATED
    data: PaymentEventData


EVENT_TYPES: Dict[str, Type[DomainEvent]] = {
    PAYMENT_CREATED: PaymentCreatedEvent,
}


def decode_event(payload: bytes | str | Dict[str, Any]) -> DomainEvent:
    """
    Rebuild a domain event from its wire form.

    Raises:
        UnknownEventError: If the event name is not registered
        pydantic.ValidationError: If the payload does not fit the event model
    """
    if isinstance(payload, (bytes, str)):
        payload = json.loads(payload)
    name = payload.get("event")
    event_cls = EVENT_TYPES.get(name)
    if event_cls is None:
        raise UnknownEventError(f"Unknown event type: {name!r}")
    return event_cls.model_validate(payload)
