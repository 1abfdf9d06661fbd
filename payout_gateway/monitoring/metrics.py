"""
Prometheus metrics for the payout gateway.

Tracks:
- Payment requests by status and currency
- Idempotency lookups and key races
- Event publication by delivery path
- Drain pass failures
- Broker connection state
"""
from prometheus_client import Counter, Gauge

payment_requests_total = Counter(
    "payout_payment_requests_total",
    "Total number of payments initiated",
    ["status", "currency"],
)

idempotency_lookups_total = Counter(
    "payout_idempotency_lookups_total",
    "Idempotency key lookups",
    ["outcome"],  # replay, miss
)

idempotency_races_total = Counter(
    "payout_idempotency_races_total",
    "Recording attempts that lost to an existing record for the same key",
)

events_published_total = Counter(
    "payout_events_published_total",
    "Domain events handed off",
    ["path"],  # direct, persisted, redelivered
)

event_drain_failures_total = Counter(
    "payout_event_drain_failures_total",
    "Stored events that failed during a drain pass",
)

transport_connected = Gauge(
    "payout_transport_connected",
    "Broker connection state (1=connected, 0=disconnected)",
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_payment_request(status: str, currency: str) -> None:
        payment_requests_total.labels(status=status, currency=currency).inc()

    @staticmethod
    def record_idempotency_lookup(outcome: str) -> None:
        idempotency_lookups_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_idempotency_race() -> None:
        idempotency_races_total.inc()

    @staticmethod
    def record_event_published(path: str) -> None:
        events_published_total.labels(path=path).inc()

    @staticmethod
    def record_drain_failure() -> None:
        event_drain_failures_total.inc()

    @staticmethod
    def set_transport_connected(connected: bool) -> None:
        transport_connected.set(1 if connected else 0)


# Export singleton instance
metrics = MetricsCollector()
