"""
SQL User Store
==============

``UserStore`` backed by a relational database through SQLAlchemy.

The ``users`` table stores the subscription map as JSON. Each merge write
and the duplicate-cleanup batch run inside a single transaction.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.core.errors import StoreError
from app.db.session import create_engine, create_session_factory
from app.models.subscription import SubscriptionStatus
from app.models.user import User
from app.services.user_store import (
    REFERRAL_CODE_FIELD,
    SUBSCRIPTION_FIELD,
    UPDATED_AT_FIELD,
)

logger = logging.getLogger(__name__)


def _to_json(value: Any) -> Any:
    """Make a subscription map JSON-safe (datetimes become ISO 8601)."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _to_json(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_to_json(item) for item in value]
    return value


class SqlUserStore:
    """User documents as rows of the ``users`` table."""

    name = "postgres"

    def __init__(self, engine: AsyncEngine, session_factory: async_sessionmaker[AsyncSession]):
        self.engine = engine
        self.session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str) -> "SqlUserStore":
        """Create the engine and session factory for ``database_url``."""
        engine = create_engine(database_url)
        return cls(engine, create_session_factory(engine))

    async def get_user(self, user_id: str) -> Optional[dict[str, Any]]:
        try:
            async with self.session_factory() as session:
                user = await session.get(User, user_id)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read user {user_id}: {exc}") from exc

        if user is None:
            return None
        return {
            SUBSCRIPTION_FIELD: user.subscription,
            REFERRAL_CODE_FIELD: user.referral_code,
            UPDATED_AT_FIELD: user.updated_at,
        }

    async def merge_user(self, user_id: str, data: dict[str, Any]) -> None:
        unknown = set(data) - {SUBSCRIPTION_FIELD, REFERRAL_CODE_FIELD, UPDATED_AT_FIELD}
        if unknown:
            raise StoreError(f"Unsupported user fields: {', '.join(sorted(unknown))}")

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    user = await session.get(User, user_id, with_for_update=True)
                    if user is None:
                        user = User(user_id=user_id)
                        session.add(user)

                    if SUBSCRIPTION_FIELD in data:
                        merged = dict(user.subscription or {})
                        merged.update(_to_json(data[SUBSCRIPTION_FIELD]))
                        user.subscription = merged
                    if REFERRAL_CODE_FIELD in data:
                        user.referral_code = data[REFERRAL_CODE_FIELD]
                    if UPDATED_AT_FIELD in data:
                        user.updated_at = data[UPDATED_AT_FIELD]
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to write user {user_id}: {exc}") from exc

    async def find_active_subscribers(self, product_id: str) -> list[str]:
        stmt = select(User.user_id).where(
            User.subscription["productId"].as_string() == product_id,
            User.subscription["status"].as_string() == SubscriptionStatus.ACTIVE.value,
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to query subscribers of {product_id}: {exc}") from exc

    async def demote_subscriptions(
        self,
        user_ids: list[str],
        status: SubscriptionStatus,
        last_event: str,
        updated_at: datetime,
    ) -> None:
        if not user_ids:
            return

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    stmt = (
                        select(User)
                        .where(User.user_id.in_(user_ids))
                        .with_for_update()
                    )
                    users = {user.user_id: user for user in (await session.execute(stmt)).scalars()}

                    missing = [uid for uid in user_ids if uid not in users or not users[uid].subscription]
                    if missing:
                        # Raising inside begin() rolls back the whole batch
                        raise StoreError(f"No subscription to update for users {', '.join(missing)}")

                    for user in users.values():
                        subscription = dict(user.subscription)
                        subscription["status"] = SubscriptionStatus(status).value
                        subscription["lastEvent"] = last_event
                        subscription["updatedAt"] = updated_at.isoformat()
                        user.subscription = subscription
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to commit demotion batch: {exc}") from exc

    async def close(self) -> None:
        await self.engine.dispose()
