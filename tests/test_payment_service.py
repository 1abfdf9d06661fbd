"""
Tests for the payment initiation flow.
"""
import json
from typing import Any

import pytest

from payout_gateway.config import Settings
from payout_gateway.core.event_delivery import EventDeliveryService
from payout_gateway.core.payment_service import NoRecipientsError, PaymentService
from payout_gateway.core.record_store import RecordStore
from payout_gateway.integrations.wise_client import WiseAPIError, WiseClient


@pytest.fixture
def payment_service(
    wise_client: WiseClient,
    record_store: RecordStore,
    event_delivery: EventDeliveryService,
    test_settings: Settings,
) -> PaymentService:
    return PaymentService(wise_client, record_store, event_delivery, test_settings)


class TestCreatePayment:
    """Payment creation."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_payment_success(
        self,
        payment_service: PaymentService,
        record_store: RecordStore,
        wise_stub: Any,
    ) -> None:
        response = await payment_service.create_payment(
            amount=100.0, currency="USD", customer_id="cust_123", idempotency_key="key-1"
        )

        assert list(response) == ["paymentId", "status"]
        assert response["status"] == "processing"
        assert wise_stub.calls == {"account_details": 1, "recipients": 1, "quote": 1}

        payment = await record_store.get_payment(response["paymentId"])
        assert payment is not None
        assert payment.status == "succeeded"
        assert payment.customer_id == "98765"
        assert payment.requested_by == "cust_123"
        assert payment.wise_payment_id == "quote-123"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_quote_requested_for_first_recipient_in_target_currency(
        self, payment_service: PaymentService, wise_stub: Any
    ) -> None:
        wise_stub.recipients = [{"id": 111}, {"id": 222}]

        await payment_service.create_payment(100.0, "USD", "cust_123", "key-1")

        recipients_request, quote_request = wise_stub.requests[1], wise_stub.requests[2]
        assert recipients_request.url.params["currency"] == "INR"
        body = json.loads(quote_request.content)
        assert body["targetAccount"] == 111
        assert body["sourceCurrency"] == "USD"
        assert body["targetCurrency"] == "INR"
        assert body["sourceAmount"] == 100.0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_connected_publishes_one_event(
        self,
        payment_service: PaymentService,
        event_delivery: EventDeliveryService,
        transport: Any,
        record_store: RecordStore,
    ) -> None:
        await event_delivery.connect()

        response = await payment_service.create_payment(100.0, "USD", "cust_123", "key-1")

        assert len(transport.published) == 1
        queue, body, _ = transport.published[0]
        message = json.loads(body)
        assert queue == "payment_events"
        assert message["event"] == "payment.created"
        assert message["data"]["paymentId"] == response["paymentId"]
        assert message["data"]["wisePaymentId"] == "quote-123"
        assert message["data"]["customerId"] == "98765"
        assert message["data"]["status"] == "succeeded"
        assert await record_store.list_events() == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_disconnected_stores_event(
        self,
        payment_service: PaymentService,
        event_delivery: EventDeliveryService,
        record_store: RecordStore,
    ) -> None:
        response = await payment_service.create_payment(100.0, "USD", "cust_123", "key-1")

        stored = await record_store.list_events()
        assert len(stored) == 1
        assert stored[0].message["data"]["paymentId"] == response["paymentId"]
        assert len(event_delivery.get_stored_events()) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_recipients_fails_without_side_effects(
        self, payment_service: PaymentService, record_store: RecordStore, wise_stub: Any
    ) -> None:
        wise_stub.recipients = []

        with pytest.raises(NoRecipientsError, match="No recipients found"):
            await payment_service.create_payment(100.0, "USD", "cust_123", "key-1")

        assert wise_stub.calls["quote"] == 0
        assert await record_store.list_payments() == []
        assert await record_store.list_events() == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_quote_failure_propagates(
        self, payment_service: PaymentService, record_store: RecordStore, wise_stub: Any
    ) -> None:
        wise_stub.quote_status = 400

        with pytest.raises(WiseAPIError):
            await payment_service.create_payment(100.0, "USD", "cust_123", "key-1")

        assert await record_store.list_payments() == []
