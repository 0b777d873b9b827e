"""
User Model
==========

SQLAlchemy model backing the ``postgres`` user store.

Mirrors the Firestore ``users/{uid}`` document: the subscription map is
kept as a JSON column so the webhook can merge-write it whole.
"""

from typing import Any, Optional

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """
    User document.

    Only the fields the webhook owns are modelled; the rest of the profile
    lives with the mobile client.
    """

    __tablename__ = "users"

    # Firebase Auth uid / RevenueCat app_user_id
    user_id: Mapped[str] = mapped_column(
        String(128),
        primary_key=True,
    )

    subscription: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
    )
    referral_code: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<User(user_id={self.user_id})>"
