"""
Subscription Models
===================

Subscription status and platform values stored on user documents.

The mobile client reads ``users/{uid}.subscription.status`` and
``.expiresAt`` to gate premium features; only the webhook writes them.
"""

from enum import Enum


class SubscriptionStatus(str, Enum):
    """Subscription status values."""
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class Platform(str, Enum):
    """Purchase platform."""
    IOS = "ios"
    ANDROID = "android"


# lastEvent written by the duplicate-subscription cleanup
TRANSFER_CLEANUP_EVENT = "TRANSFER_CLEANUP"
