"""Core payment initiation logic."""
from .event_delivery import EventDeliveryService, TransportState
from .events import DomainEvent, PaymentCreatedEvent, PaymentEventData, decode_event
from .idempotency import IdempotencyGate, IdempotentResult, MissingIdempotencyKeyError
from .payment_service import NoRecipientsError, PaymentError, PaymentService
from .record_store import (
    DuplicateKeyError,
    RecordStore,
    RecordStoreError,
    StoreUnavailableError,
)

__all__ = [
    "DomainEvent",
    "DuplicateKeyError",
    "EventDeliveryService",
    "IdempotencyGate",
    "IdempotentResult",
    "MissingIdempotencyKeyError",
    "NoRecipientsError",
    "PaymentCreatedEvent",
    "PaymentError",
    "PaymentEventData",
    "PaymentService",
    "RecordStore",
    "RecordStoreError",
    "StoreUnavailableError",
    "TransportState",
    "decode_event",
]
