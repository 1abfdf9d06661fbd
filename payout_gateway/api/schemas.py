"""
Pydantic schemas for API request/response models.

Field names follow the camelCase wire format of the public API.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CreatePaymentRequest(BaseModel):
    """Request schema for creating a payment."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [{"amount": 100.0, "currency": "USD", "customerId": "cust_123"}]
        },
    )

    amount: float = Field(..., gt=0, description="Amount in the source currency")
    currency: str = Field(..., min_length=3, max_length=3, description="Source currency code")
    customer_id: str = Field(..., alias="customerId", min_length=1, description="Customer reference")

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Validate currency format."""
        if not v.isalpha():
            raise ValueError("Currency must be a 3-letter code")
        return v.upper()


class CreatePaymentResponse(BaseModel):
    """Response schema for payment creation, replayed verbatim on retries."""

    paymentId: str = Field(..., description="Payment ID")
    status: str = Field(..., description="Processing status")


class PaymentResponse(BaseModel):
    """Stored payment."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    payment_id: str = Field(..., serialization_alias="paymentId")
    amount: float
    currency: str
    customer_id: str = Field(..., serialization_alias="customerId")
    wise_payment_id: str = Field(..., serialization_alias="wisePaymentId")
    status: str
    created_at: datetime = Field(..., serialization_alias="createdAt")


class StoredEventResponse(BaseModel):
    """Event persisted while the broker was unavailable."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    queue: str
    event_type: str = Field(..., serialization_alias="eventType")
    message: Dict[str, Any]
    created_at: datetime = Field(..., serialization_alias="createdAt")
    processed: bool
    processed_at: Optional[datetime] = Field(default=None, serialization_alias="processedAt")


class EventMirrorResponse(BaseModel):
    """In-memory copy of payment events stored for redelivery."""

    connected: bool
    events: List[Dict[str, Any]]


class ErrorResponse(BaseModel):
    error: str


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="healthy, degraded or unhealthy")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual service checks")
