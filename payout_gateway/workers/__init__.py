"""Background workers for async processing."""
from .event_redelivery import redeliver_until_stopped, start_event_redelivery

__all__ = ["redeliver_until_stopped", "start_event_redelivery"]
