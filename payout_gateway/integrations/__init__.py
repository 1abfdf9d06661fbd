"""External integrations: Wise payouts and the RabbitMQ transport."""
from .rabbitmq import RabbitMQChannel, RabbitMQTransport, TransportError
from .wise_client import WiseAPIError, WiseClient, WiseErrorType

__all__ = [
    "RabbitMQChannel",
    "RabbitMQTransport",
    "TransportError",
    "WiseAPIError",
    "WiseClient",
    "WiseErrorType",
]
