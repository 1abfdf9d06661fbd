"""Payment initiation service over the Wise payout API."""

__version__ = "1.0.0"
