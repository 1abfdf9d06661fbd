"""
Payment initiation flow.

Resolves the payout recipient and a quote from Wise, records the payment,
and publishes exactly one payment.created event per successful execution.
Runs behind the idempotency gate.
"""
import uuid
from typing import Any, Dict, List, Optional

import structlog

from payout_gateway.config import Settings, get_settings
from payout_gateway.core.event_delivery import EventDeliveryService
from payout_gateway.core.events import PaymentCreatedEvent, PaymentEventData
from payout_gateway.core.record_store import RecordStore
from payout_gateway.database.models import Payment, utcnow
from payout_gateway.integrations.wise_client import WiseClient
from payout_gateway.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

# Quote retrieval is treated as settlement of the payout
PAYMENT_STATUS_SUCCEEDED = "succeeded"
RESPONSE_STATUS_PROCESSING = "processing"


class PaymentError(Exception):
    """Base exception for payment processing errors."""

    pass


class NoRecipientsError(PaymentError):
    """Raised when the Wise profile has no recipient for the payout currency."""

    pass


class PaymentService:
    """Creates and reads payments."""

    def __init__(
        self,
        wise_client: WiseClient,
        record_store: RecordStore,
        event_delivery: EventDeliveryService,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.wise_client = wise_client
        self.record_store = record_store
        self.event_delivery = event_delivery

    async def create_payment(
        self,
        amount: float,
        currency: str,
        customer_id: str,
        idempotency_key: str,
    ) -> Dict[str, Any]:
        """
        Initiate a payout.

        Args:
            amount: Amount in the source currency
            currency: Source currency code
            customer_id: Caller's customer reference
            idempotency_key: Key the submission is gated on

        Returns:
            Dict[str, Any]: Response replayed to retries of the same key

        Raises:
            NoRecipientsError: If no recipient account exists
            PaymentError: If the quote is unusable
            WiseAPIError: If a Wise call fails
            StoreUnavailableError: If the payment cannot be stored
        """
        payment_id = str(uuid.uuid4())
        log = logger.bind(payment_id=payment_id, idempotency_key=idempotency_key)
        log.info("payment_creation_started", amount=amount, currency=currency, customer_id=customer_id)

        await self.wise_client.fetch_account_details()

        target_currency = self.settings.wise_target_currency
        recipients = await self.wise_client.fetch_recipients(target_currency)
        content = recipients.get("content") or []
        if not content:
            log.warning("payment_no_recipients", currency=target_currency)
            raise NoRecipientsError("No recipients found")
        recipient_id = content[0]["id"]

        quote = await self.wise_client.get_quote(
            source_currency=currency,
            target_currency=target_currency,
            source_amount=amount,
            target_account=recipient_id,
        )
        if quote.get("id") is None:
            raise PaymentError("Quote response did not include an id")
        quote_id = str(quote["id"])

        payment = Payment(
            payment_id=payment_id,
            amount=amount,
            currency=currency,
            customer_id=str(recipient_id),
            requested_by=customer_id,
            wise_payment_id=quote_id,
            status=PAYMENT_STATUS_SUCCEEDED,
            created_at=utcnow(),
        )
        await self.record_store.insert_payment(payment)
        log.info("payment_record_created", quote_id=quote_id, recipient_id=str(recipient_id))

        event = PaymentCreatedEvent(
            data=PaymentEventData(
                payment_id=payment_id,
                amount=amount,
                currency=currency,
                customer_id=str(recipient_id),
                wise_payment_id=quote_id,
                status=PAYMENT_STATUS_SUCCEEDED,
            )
        )
        await self.event_delivery.send_message(self.settings.payment_events_queue, event)

        metrics.record_payment_request(PAYMENT_STATUS_SUCCEEDED, currency)
        log.info("payment_creation_completed")
        return {"paymentId": payment_id, "status": RESPONSE_STATUS_PROCESSING}

    async def get_payment(self, payment_id: str) -> Optional[Payment]:
        return await self.record_store.get_payment(payment_id)

    async def list_payments(self) -> List[Payment]:
        return await self.record_store.list_payments()
