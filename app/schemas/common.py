"""
Common Schemas
==============

Response bodies shared by every endpoint.
"""

from pydantic import BaseModel


class SuccessResponse(BaseModel):
    """Acknowledgement RevenueCat expects on a processed webhook."""

    success: bool = True


class ErrorResponse(BaseModel):
    """Flat error body: ``{"error": "<message>"}``."""

    error: str


class HealthResponse(BaseModel):
    """Health check payload."""

    status: str
    version: str
    environment: str
    store: str
