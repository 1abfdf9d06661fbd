"""
Health checks for the record store and the broker connection.

The broker being down does not make the service unhealthy: events fall
back to the record store. It is reported as degraded.
"""
from typing import TYPE_CHECKING, Any, Dict

import structlog

from payout_gateway.core.record_store import RecordStoreError

if TYPE_CHECKING:
    from payout_gateway.core.event_delivery import EventDeliveryService
    from payout_gateway.core.record_store import RecordStore

logger = structlog.get_logger(__name__)


class HealthCheck:
    """Aggregates dependency checks into one status document."""

    def __init__(self, record_store: "RecordStore", event_delivery: "EventDeliveryService"):
        self.record_store = record_store
        self.event_delivery = event_delivery

    async def check_database(self) -> Dict[str, Any]:
        try:
            await self.record_store.ping()
        except RecordStoreError as e:
            logger.error("database_health_check_failed", error=str(e))
            return {"status": "unhealthy", "service": "database", "error": str(e)}
        return {"status": "healthy", "service": "database"}

    def check_transport(self) -> Dict[str, Any]:
        if self.event_delivery.is_connected:
            return {"status": "healthy", "service": "rabbitmq"}
        return {
            "status": "degraded",
            "service": "rabbitmq",
            "message": "Broker unavailable, events are stored for redelivery",
        }

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        Returns:
            Dict[str, Any]: Overall status plus per-dependency checks
        """
        checks = {
            "database": await self.check_database(),
            "rabbitmq": self.check_transport(),
        }
        if checks["database"]["status"] != "healthy":
            overall = "unhealthy"
        elif checks["rabbitmq"]["status"] != "healthy":
            overall = "degraded"
        else:
            overall = "healthy"
        return {"status": overall, "checks": checks}
