"""Database package for the payout gateway."""
from .connection import close_db, create_engine, create_session_factory, init_db
from .models import Base, Payment, StoredEvent, StoredRequest

__all__ = [
    "Base",
    "Payment",
    "StoredEvent",
    "StoredRequest",
    "close_db",
    "create_engine",
    "create_session_factory",
    "init_db",
]
