"""
Event redelivery background worker.

Connects to the broker, drains events stored while it was unreachable,
and keeps reconnecting and draining on an interval until stopped. Useful
when the API process has been running disconnected for a long time.
"""
import argparse
import asyncio
import signal
from typing import Optional

import structlog

from payout_gateway.config import get_settings
from payout_gateway.core.event_delivery import EventDeliveryService
from payout_gateway.core.record_store import RecordStore
from payout_gateway.database.connection import (
    close_db,
    create_engine,
    create_session_factory,
    init_db,
)
from payout_gateway.integrations.rabbitmq import RabbitMQTransport
from payout_gateway.monitoring.logging import setup_logging

logger = structlog.get_logger(__name__)


async def redeliver_until_stopped(
    delivery: EventDeliveryService,
    interval_seconds: float,
    stop_event: asyncio.Event,
) -> int:
    """
    Connect and drain every interval until stop_event is set.

    Returns:
        int: Total events redelivered
    """
    total = 0
    while not stop_event.is_set():
        if delivery.is_connected:
            total += await delivery.drain()
        elif await delivery.connect():
            total += delivery.last_connect_redelivered
            logger.info(
                "event_redelivery_connected",
                redelivered=delivery.last_connect_redelivered,
            )

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            pass
    return total


async def start_event_redelivery(interval_seconds: Optional[float] = None, once: bool = False) -> None:
    """
    Start the redelivery worker.

    Args:
        interval_seconds: Seconds between passes (defaults to the configured
            reconnect interval, or 5 when that is disabled)
        once: Run a single connect-and-drain pass and exit
    """
    settings = get_settings()
    setup_logging(settings)
    interval = interval_seconds or settings.transport_reconnect_interval_seconds or 5.0

    engine = create_engine(settings)
    await init_db(engine)
    delivery = EventDeliveryService(
        transport=RabbitMQTransport(settings.rabbitmq_url),
        record_store=RecordStore(create_session_factory(engine)),
        payment_events_queue=settings.payment_events_queue,
        mirror_size=settings.event_mirror_size,
    )

    logger.info("event_redelivery_worker_starting", interval_seconds=interval, once=once)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        if once:
            if not await delivery.connect():
                logger.warning("event_redelivery_broker_unavailable")
        else:
            await redeliver_until_stopped(delivery, interval, stop_event)
    except Exception as e:
        logger.error("event_redelivery_worker_error", error=str(e))
        raise
    finally:
        await delivery.close()
        await close_db(engine)
        logger.info("event_redelivery_worker_stopped")


def main() -> None:
    parser = argparse.ArgumentParser(description="Redeliver payment events stored while the broker was down")
    parser.add_argument("--interval", type=float, default=None, help="Seconds between passes")
    parser.add_argument("--once", action="store_true", help="Run one pass and exit")
    args = parser.parse_args()
    asyncio.run(start_event_redelivery(interval_seconds=args.interval, once=args.once))


if __name__ == "__main__":
    main()
