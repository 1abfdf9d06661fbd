"""
RabbitMQ transport built on aio-pika.

Connection and channel failures are re-raised as TransportError so the
event delivery service has a single exception type to degrade on.
"""
import asyncio
from typing import Optional

import aio_pika
import structlog
from aio_pika.abc import AbstractChannel, AbstractConnection
from aio_pika.exceptions import AMQPException, ChannelInvalidStateError

logger = structlog.get_logger(__name__)

# ChannelInvalidStateError is a RuntimeError, not an AMQPException
_TRANSPORT_FAILURES = (
    AMQPException,
    ChannelInvalidStateError,
    ConnectionError,
    OSError,
    asyncio.TimeoutError,
)


class TransportError(Exception):
    """Raised when the broker cannot be reached or rejects an operation."""

    pass


class RabbitMQChannel:
    """An open connection plus the channel used for publishing."""

    def __init__(self, connection: AbstractConnection, channel: AbstractChannel):
        self._connection = connection
        self._channel = channel

    async def declare_queue(self, name: str, durable: bool = True) -> None:
        """Assert a queue exists, creating it if necessary."""
        try:
            await self._channel.declare_queue(name, durable=durable)
        except _TRANSPORT_FAILURES as e:
            raise TransportError(f"Failed to declare queue {name}: {e}") from e

    async def publish(self, queue: str, body: bytes, persistent: bool = True) -> None:
        """Publish a message to a queue through the default exchange."""
        message = aio_pika.Message(
            body=body,
            content_type="application/json",
            delivery_mode=(
                aio_pika.DeliveryMode.PERSISTENT
                if persistent
                else aio_pika.DeliveryMode.NOT_PERSISTENT
            ),
        )
        try:
            await self._channel.default_exchange.publish(message, routing_key=queue)
        except _TRANSPORT_FAILURES as e:
            raise TransportError(f"Failed to publish to {queue}: {e}") from e

    async def close(self) -> None:
        try:
            await self._connection.close()
        except _TRANSPORT_FAILURES as e:
            logger.warning("rabbitmq_close_error", error=str(e))


class RabbitMQTransport:
    """Opens RabbitMQ connections on demand."""

    def __init__(self, url: str, timeout: Optional[float] = 10.0):
        self.url = url
        self.timeout = timeout

    async def connect(self) -> RabbitMQChannel:
        """
        Open a connection and a publishing channel.

        Returns:
            RabbitMQChannel: Ready-to-use channel wrapper

        Raises:
            TransportError: If the broker is unreachable
        """
        try:
            connection = await aio_pika.connect(self.url, timeout=self.timeout)
        except _TRANSPORT_FAILURES as e:
            raise TransportError(f"Failed to connect to RabbitMQ: {e}") from e

        try:
            channel = await connection.channel()
        except _TRANSPORT_FAILURES as e:
            await connection.close()
            raise TransportError(f"Failed to open RabbitMQ channel: {e}") from e

        logger.info("rabbitmq_channel_opened")
        return RabbitMQChannel(connection, channel)
