"""
Subscription Schemas
====================

The subscription map embedded in each user document.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.models.subscription import Platform, SubscriptionStatus


class SubscriptionRecord(BaseModel):
    """
    ``users/{uid}.subscription``

    Field names are camelCase in storage because the mobile client reads
    the document directly.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    status: SubscriptionStatus
    product_id: str
    expires_at: Optional[datetime] = None
    platform: Platform = Platform.IOS
    last_event: str
    updated_at: datetime

    def to_document(self) -> dict[str, Any]:
        """Serialize for a merge-write into the user document."""
        return self.model_dump(by_alias=True)

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "SubscriptionRecord":
        """Parse the stored map back into a record."""
        return cls.model_validate(data)
