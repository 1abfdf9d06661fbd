"""SQLAlchemy database models backing the record store."""
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class StoredRequest(Base):
    """
    Idempotency records table.

    One row per distinct idempotency key holding the exact response returned
    to the first caller. Immutable once written, never deleted.
    """

    __tablename__ = "stored_requests"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    idempotency_key: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    # JSON, not JSONB: replays must keep the original key order
    response: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        """String representation of StoredRequest."""
        return f"<StoredRequest(id={self.id}, idempotency_key={self.idempotency_key})>"


class StoredEvent(Base):
    """
    Fallback event table.

    Holds events that could not be handed to the broker at publish time.
    `processed` only ever moves from false to true, when the event is
    redelivered after the broker connection comes back. Rows are kept as
    an audit trail.
    """

    __tablename__ = "stored_events"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    queue: Mapped[str] = mapped_column(String(255), nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    message: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_stored_events_pending", "processed", "created_at"),)

    def __repr__(self) -> str:
        """String representation of StoredEvent."""
        return (
            f"<StoredEvent(id={self.id}, queue={self.queue}, "
            f"type={self.event_type}, processed={self.processed})>"
        )


class Payment(Base):
    """
    Payment records table.

    One row per successfully quoted payout. `customer_id` is the Wise
    recipient account and `wise_payment_id` the quote identifier.
    """

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    payment_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, index=True)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    requested_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    wise_payment_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )

    def __repr__(self) -> str:
        """String representation of Payment."""
        return (
            f"<Payment(payment_id={self.payment_id}, amount={self.amount}, "
            f"currency={self.currency}, status={self.status})>"
        )
