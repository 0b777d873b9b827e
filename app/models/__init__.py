"""
Database Models
===============

All models are imported here to ensure they are registered
with SQLAlchemy's metadata for migrations.
"""

from app.models.user import User
from app.models.subscription import (
    SubscriptionStatus,
    Platform,
    TRANSFER_CLEANUP_EVENT,
)

__all__ = [
    # User
    "User",
    # Subscription
    "SubscriptionStatus",
    "Platform",
    "TRANSFER_CLEANUP_EVENT",
]
