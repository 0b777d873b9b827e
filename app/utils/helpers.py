"""
Helper Functions
================

Common utility functions used across the application.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get current UTC datetime with timezone info."""
    return datetime.now(timezone.utc)


def datetime_from_ms(epoch_ms: int) -> datetime:
    """Convert a millisecond epoch (RevenueCat ``*_at_ms``) to UTC datetime."""
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
