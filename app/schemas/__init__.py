"""
Pydantic Schemas
================

Request/response and internal event schemas.
"""

from app.schemas.common import ErrorResponse, HealthResponse, SuccessResponse
from app.schemas.subscription import SubscriptionRecord
from app.schemas.webhook import NormalizedEvent, SubscriberAttribute

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "SuccessResponse",
    "SubscriptionRecord",
    "NormalizedEvent",
    "SubscriberAttribute",
]
