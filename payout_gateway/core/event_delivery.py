"""
Event delivery with a durable fallback.

Publishes domain events to the broker while connected. While the broker is
unreachable, events are written to the record store instead and redelivered
by the drain pass that runs every time a connection is (re)established.
Delivery is at-least-once: a crash between publishing a stored event and
flagging it processed sends it again on the next drain.
"""
import asyncio
import json
from collections import deque
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Protocol

import structlog

from payout_gateway.core.events import DomainEvent
from payout_gateway.core.record_store import RecordStore, RecordStoreError
from payout_gateway.integrations.rabbitmq import TransportError
from payout_gateway.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class TransportChannel(Protocol):
    async def declare_queue(self, name: str, durable: bool = True) -> None: ...

    async def publish(self, queue: str, body: bytes, persistent: bool = True) -> None: ...

    async def close(self) -> None: ...


class Transport(Protocol):
    async def connect(self) -> TransportChannel: ...


class TransportState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class EventDeliveryService:
    """
    Owns the broker channel and the connected/disconnected state machine.

    Constructed once per process and shared with request handlers; nothing
    else touches the channel.
    """

    def __init__(
        self,
        transport: Transport,
        record_store: RecordStore,
        payment_events_queue: str = "payment_events",
        mirror_size: int = 1000,
    ):
        """
        Initialize event delivery.

        Args:
            transport: Broker connector
            record_store: Store used for the fallback table
            payment_events_queue: Queue declared on connect and mirrored in memory
            mirror_size: Max events kept in the in-memory mirror
        """
        self.transport = transport
        self.record_store = record_store
        self.payment_events_queue = payment_events_queue
        self.state = TransportState.DISCONNECTED
        self._channel: Optional[TransportChannel] = None
        self._connect_lock = asyncio.Lock()
        self._event_mirror: Deque[Dict[str, Any]] = deque(maxlen=mirror_size)
        # Events redelivered by the drain pass of the latest connect() call
        self.last_connect_redelivered = 0

    @property
    def is_connected(self) -> bool:
        return self.state is TransportState.CONNECTED and self._channel is not None

    def _set_state(self, state: TransportState) -> None:
        self.state = state
        metrics.set_transport_connected(state is TransportState.CONNECTED)

    async def connect(self) -> bool:
        """
        Connect to the broker and drain stored events.

        Never raises: on failure the service stays disconnected and keeps
        persisting events to the record store.

        Returns:
            bool: True if connected after the call
        """
        self.last_connect_redelivered = 0
        async with self._connect_lock:
            if self.is_connected:
                return True

            channel: Optional[TransportChannel] = None
            try:
                channel = await self.transport.connect()
                await channel.declare_queue(self.payment_events_queue, durable=True)
            except TransportError as e:
                logger.warning(
                    "transport_connect_failed_using_store_fallback",
                    error=str(e),
                )
                if channel is not None:
                    await channel.close()
                self._channel = None
                self._set_state(TransportState.DISCONNECTED)
                return False

            self._channel = channel
            self._set_state(TransportState.CONNECTED)
            logger.info("transport_connected", queue=self.payment_events_queue)

        self.last_connect_redelivered = await self.drain()
        return self.is_connected

    async def drain(self) -> int:
        """
        Redeliver every stored event not yet flagged processed.

        A failure on one event is logged and the pass moves on to the next.
        A failure to list pending events is logged and ends the pass.

        Returns:
            int: Number of events redelivered
        """
        if not self.is_connected:
            return 0

        try:
            pending = await self.record_store.find_unprocessed_events()
        except RecordStoreError as e:
            logger.error("stored_events_fetch_failed", error=str(e))
            return 0

        if pending:
            logger.info("stored_events_drain_started", count=len(pending))

        redelivered = 0
        for stored in pending:
            channel = self._channel
            if channel is None:
                break
            try:
                await channel.publish(stored.queue, self._serialize(stored.message), persistent=True)
            except TransportError as e:
                logger.error(
                    "stored_event_redelivery_failed",
                    event_id=stored.id,
                    queue=stored.queue,
                    error=str(e),
                )
                metrics.record_drain_failure()
                continue

            try:
                await self.record_store.mark_event_processed(stored.id)
            except RecordStoreError as e:
                logger.error(
                    "stored_event_mark_processed_failed",
                    event_id=stored.id,
                    error=str(e),
                )
                metrics.record_drain_failure()
                continue

            redelivered += 1
            metrics.record_event_published("redelivered")
            logger.info("stored_event_redelivered", event_id=stored.id, queue=stored.queue)

        if pending:
            logger.info(
                "stored_events_drain_completed",
                total=len(pending),
                redelivered=redelivered,
                failed=len(pending) - redelivered,
            )
        return redelivered

    @staticmethod
    def _serialize(message: Dict[str, Any]) -> bytes:
        return json.dumps(message).encode("utf-8")

    async def send_message(self, queue: str, event: DomainEvent) -> None:
        """
        Publish an event, falling back to the record store when disconnected.

        Raises:
            StoreUnavailableError: If disconnected and the event cannot be persisted
        """
        message = event.to_message()

        if self.is_connected and self._channel is not None:
            try:
                await self._channel.publish(queue, self._serialize(message), persistent=True)
                metrics.record_event_published("direct")
                logger.debug("event_published", queue=queue, event_type=event.event)
                return
            except TransportError as e:
                logger.warning(
                    "event_publish_failed_falling_back_to_store",
                    queue=queue,
                    error=str(e),
                )
                await self._drop_channel()

        await self.record_store.insert_event(queue, event.event, message)
        if queue == self.payment_events_queue:
            self._event_mirror.append(message)
        metrics.record_event_published("persisted")
        logger.info(
            "event_persisted_for_redelivery",
            queue=queue,
            event_type=event.event,
        )

    def get_stored_events(self) -> List[Dict[str, Any]]:
        """Events persisted for the payment events queue while disconnected (newest last)."""
        return list(self._event_mirror)

    async def _drop_channel(self) -> None:
        channel, self._channel = self._channel, None
        self._set_state(TransportState.DISCONNECTED)
        if channel is not None:
            await channel.close()

    async def close(self) -> None:
        """Close the broker connection and return to the disconnected state."""
        await self._drop_channel()
        logger.info("transport_closed")

    async def run_reconnect_loop(self, interval_seconds: float) -> None:
        """
        Periodically reconnect while disconnected.

        Each successful reconnect runs a drain pass. Runs until cancelled.
        """
        logger.info("transport_reconnect_loop_started", interval_seconds=interval_seconds)
        try:
            while True:
                await asyncio.sleep(interval_seconds)
                if not self.is_connected:
                    await self.connect()
        finally:
            logger.info("transport_reconnect_loop_stopped")
