"""
Webhook Schemas
===============

Canonical, validated form of a RevenueCat webhook event.

RevenueCat payloads vary by event type (TRANSFER carries
``transferred_to`` instead of ``app_user_id``/``product_id``); the
normalizer in ``app.services.revenuecat`` turns all of them into
``NormalizedEvent``.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


REFERRAL_CODE_ATTRIBUTE = "referral_code"


class SubscriberAttribute(BaseModel):
    """One entry of ``event.subscriber_attributes``."""

    model_config = ConfigDict(frozen=True)

    value: str
    updated_at_ms: Optional[int] = None


class NormalizedEvent(BaseModel):
    """A webhook event reduced to the fields the reconciler trusts."""

    model_config = ConfigDict(frozen=True)

    type: str
    user_id: str
    product_id: str
    expires_at_ms: Optional[int] = None
    attributes: dict[str, SubscriberAttribute] = Field(default_factory=dict)

    @property
    def referral_code(self) -> Optional[str]:
        """Raw referral_code attribute value, if RevenueCat sent one."""
        attribute = self.attributes.get(REFERRAL_CODE_ATTRIBUTE)
        return attribute.value if attribute else None
