"""Service wiring shared by the API and the workers."""
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncEngine

from payout_gateway.config import Settings
from payout_gateway.core.event_delivery import EventDeliveryService, Transport
from payout_gateway.core.idempotency import (
    IDEMPOTENCY_HEADER,
    IdempotencyGate,
    MissingIdempotencyKeyError,
)
from payout_gateway.core.payment_service import PaymentService
from payout_gateway.core.record_store import RecordStore
from payout_gateway.database.connection import close_db, create_session_factory
from payout_gateway.integrations.rabbitmq import RabbitMQTransport
from payout_gateway.integrations.wise_client import WiseClient
from payout_gateway.monitoring.health import HealthCheck


@dataclass
class ServiceContainer:
    """Long-lived components, built once per process."""

    settings: Settings
    engine: AsyncEngine
    record_store: RecordStore
    event_delivery: EventDeliveryService
    idempotency_gate: IdempotencyGate
    payment_service: PaymentService
    wise_client: WiseClient
    health_check: HealthCheck

    async def close(self) -> None:
        await self.event_delivery.close()
        await self.wise_client.close()
        await close_db(self.engine)


def build_container(
    settings: Settings,
    engine: AsyncEngine,
    transport: Optional[Transport] = None,
    wise_client: Optional[WiseClient] = None,
) -> ServiceContainer:
    """
    Wire the components together.

    Args:
        settings: Application settings
        engine: Record store engine
        transport: Broker connector (RabbitMQ by default)
        wise_client: Wise client (built from settings by default)
    """
    record_store = RecordStore(create_session_factory(engine))
    event_delivery = EventDeliveryService(
        transport=transport or RabbitMQTransport(settings.rabbitmq_url),
        record_store=record_store,
        payment_events_queue=settings.payment_events_queue,
        mirror_size=settings.event_mirror_size,
    )
    wise_client = wise_client or WiseClient(settings)
    return ServiceContainer(
        settings=settings,
        engine=engine,
        record_store=record_store,
        event_delivery=event_delivery,
        idempotency_gate=IdempotencyGate(record_store),
        payment_service=PaymentService(wise_client, record_store, event_delivery, settings),
        wise_client=wise_client,
        health_check=HealthCheck(record_store, event_delivery),
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def require_idempotency_key(
    idempotency_key: Optional[str] = Header(default=None, alias=IDEMPOTENCY_HEADER),
) -> str:
    """Reject the request before any other work when the key is missing."""
    try:
        return IdempotencyGate.require_key(idempotency_key)
    except MissingIdempotencyKeyError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
