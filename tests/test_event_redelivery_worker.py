"""
Tests for the event redelivery worker loop.
"""
import asyncio
from typing import Any

import pytest

from payout_gateway.core.event_delivery import EventDeliveryService
from payout_gateway.core.events import PaymentCreatedEvent, PaymentEventData
from payout_gateway.core.record_store import RecordStore
from payout_gateway.workers.event_redelivery import redeliver_until_stopped


def make_event(payment_id: str) -> PaymentCreatedEvent:
    return PaymentCreatedEvent(
        data=PaymentEventData(
            payment_id=payment_id,
            amount=50.0,
            currency="USD",
            customer_id="98765",
            wise_payment_id="quote-123",
            status="succeeded",
        )
    )


async def wait_for_published(transport: Any, count: int) -> None:
    for _ in range(200):
        if len(transport.published) >= count:
            return
        await asyncio.sleep(0.01)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_worker_drains_rows_written_by_other_processes(
    event_delivery: EventDeliveryService, transport: Any, record_store: RecordStore
) -> None:
    await event_delivery.connect()
    # Written by another API process that was still disconnected
    for payment_id in ("pay-1", "pay-2"):
        await record_store.insert_event(
            "payment_events", "payment.created", make_event(payment_id).to_message()
        )
    stop_event = asyncio.Event()

    worker = asyncio.create_task(redeliver_until_stopped(event_delivery, 10, stop_event))
    await wait_for_published(transport, 2)
    stop_event.set()
    total = await asyncio.wait_for(worker, timeout=1)

    assert total == 2
    assert [row.processed for row in await record_store.list_events()] == [True, True]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_worker_connects_once_broker_returns(
    event_delivery: EventDeliveryService, transport: Any, record_store: RecordStore
) -> None:
    transport.available = False
    await event_delivery.send_message("payment_events", make_event("pay-1"))
    stop_event = asyncio.Event()

    worker = asyncio.create_task(redeliver_until_stopped(event_delivery, 0.01, stop_event))
    await asyncio.sleep(0.05)
    assert transport.connect_calls >= 2
    assert not event_delivery.is_connected

    transport.available = True
    await wait_for_published(transport, 1)
    stop_event.set()
    total = await asyncio.wait_for(worker, timeout=1)

    assert total == 1
    assert event_delivery.is_connected
    assert (await record_store.list_events())[0].processed is True
