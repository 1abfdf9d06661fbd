"""
Record store over the async SQLAlchemy session factory.

Owns durability of idempotency records, fallback events and payments.
Driver failures are surfaced as StoreUnavailableError; a uniqueness
violation on an idempotency key is surfaced as DuplicateKeyError.
"""
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payout_gateway.database.models import Payment, StoredEvent, StoredRequest, utcnow

logger = structlog.get_logger(__name__)


class RecordStoreError(Exception):
    """Base exception for record store failures."""

    pass


class StoreUnavailableError(RecordStoreError):
    """Raised when the record store cannot be read or written."""

    pass


class DuplicateKeyError(RecordStoreError):
    """Raised when an idempotency key is already recorded."""

    def __init__(self, idempotency_key: str):
        super().__init__(f"Idempotency key already recorded: {idempotency_key}")
        self.idempotency_key = idempotency_key


class RecordStore:
    """Persistence operations used by the gate, the delivery service and the API."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def find_request(self, idempotency_key: str) -> Optional[StoredRequest]:
        """
        Look up the stored request for an idempotency key.

        Args:
            idempotency_key: Caller supplied key

        Returns:
            Optional[StoredRequest]: Existing record, or None for a first-time key

        Raises:
            StoreUnavailableError: If the lookup fails
        """
        stmt = select(StoredRequest).where(StoredRequest.idempotency_key == idempotency_key)
        try:
            async with self.session_factory() as db:
                result = await db.execute(stmt)
                return result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            logger.error("stored_request_lookup_failed", idempotency_key=idempotency_key, error=str(e))
            raise StoreUnavailableError(f"Failed to look up idempotency key: {e}") from e

    async def insert_request(self, idempotency_key: str, response: Dict[str, Any]) -> StoredRequest:
        """
        Record the response produced for an idempotency key.

        Raises:
            DuplicateKeyError: If the key was recorded by another execution
            StoreUnavailableError: If the insert fails for any other reason
        """
        record = StoredRequest(idempotency_key=idempotency_key, response=response, created_at=utcnow())
        try:
            async with self.session_factory() as db:
                db.add(record)
                await db.commit()
        except IntegrityError as e:
            raise DuplicateKeyError(idempotency_key) from e
        except (SQLAlchemyError, OSError) as e:
            logger.error("stored_request_insert_failed", idempotency_key=idempotency_key, error=str(e))
            raise StoreUnavailableError(f"Failed to record idempotency key: {e}") from e
        return record

    async def insert_event(self, queue: str, event_type: str, message: Dict[str, Any]) -> StoredEvent:
        """
        Persist an event for later redelivery.

        Raises:
            StoreUnavailableError: If the event could not be written
        """
        event = StoredEvent(
            queue=queue,
            event_type=event_type,
            message=message,
            created_at=utcnow(),
            processed=False,
        )
        try:
            async with self.session_factory() as db:
                db.add(event)
                await db.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.error("stored_event_insert_failed", queue=queue, error=str(e))
            raise StoreUnavailableError(f"Failed to persist event: {e}") from e
        return event

    async def find_unprocessed_events(self) -> List[StoredEvent]:
        """Return events awaiting redelivery, oldest first."""
        stmt = (
            select(StoredEvent)
            .where(StoredEvent.processed == False)  # noqa: E712
            .order_by(StoredEvent.created_at, StoredEvent.id)
        )
        try:
            async with self.session_factory() as db:
                result = await db.execute(stmt)
                return list(result.scalars().all())
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(f"Failed to fetch pending events: {e}") from e

    async def mark_event_processed(self, event_id: int) -> None:
        """Flag a stored event as redelivered. Already processed rows are left untouched."""
        stmt = (
            update(StoredEvent)
            .where(StoredEvent.id == event_id, StoredEvent.processed == False)  # noqa: E712
            .values(processed=True, processed_at=utcnow())
        )
        try:
            async with self.session_factory() as db:
                await db.execute(stmt)
                await db.commit()
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(f"Failed to mark event {event_id} processed: {e}") from e

    async def list_events(self) -> List[StoredEvent]:
        stmt = select(StoredEvent).order_by(StoredEvent.created_at, StoredEvent.id)
        try:
            async with self.session_factory() as db:
                result = await db.execute(stmt)
                return list(result.scalars().all())
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(f"Failed to list events: {e}") from e

    async def insert_payment(self, payment: Payment) -> Payment:
        try:
            async with self.session_factory() as db:
                db.add(payment)
                await db.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.error("payment_insert_failed", payment_id=payment.payment_id, error=str(e))
            raise StoreUnavailableError(f"Failed to store payment: {e}") from e
        return payment

    async def get_payment(self, payment_id: str) -> Optional[Payment]:
        stmt = select(Payment).where(Payment.payment_id == payment_id)
        try:
            async with self.session_factory() as db:
                result = await db.execute(stmt)
                return result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(f"Failed to fetch payment: {e}") from e

    async def list_payments(self) -> List[Payment]:
        stmt = select(Payment).order_by(Payment.created_at.desc())
        try:
            async with self.session_factory() as db:
                result = await db.execute(stmt)
                return list(result.scalars().all())
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(f"Failed to list payments: {e}") from e

    async def ping(self) -> None:
        """Run a trivial query to prove connectivity."""
        try:
            async with self.session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(f"Record store unreachable: {e}") from e
