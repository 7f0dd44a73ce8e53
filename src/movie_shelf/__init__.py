"""Personal media collection sync, reconciliation and storage."""

__version__ = "0.1.0"
