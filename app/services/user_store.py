"""
User Store
==========

Access to the ``users`` documents the webhook writes.

Three backends implement ``UserStore``:
- ``FirestoreUserStore`` (production; the mobile client reads the same docs)
- ``SqlUserStore`` (Postgres)
- ``InMemoryUserStore`` (tests and local runs)

The store is built once at startup by ``build_user_store`` and handed to
the webhook through a FastAPI dependency.
"""

import asyncio
import copy
import logging
from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable

from app.config import Settings
from app.core.errors import StoreError
from app.models.subscription import SubscriptionStatus

logger = logging.getLogger(__name__)

# Top-level document fields the webhook may write
SUBSCRIPTION_FIELD = "subscription"
REFERRAL_CODE_FIELD = "referralCode"
UPDATED_AT_FIELD = "updatedAt"


@runtime_checkable
class UserStore(Protocol):
    """Operations the webhook needs from the user document store."""

    name: str

    async def get_user(self, user_id: str) -> Optional[dict[str, Any]]:
        """Return the user document, or None if it does not exist."""
        ...

    async def merge_user(self, user_id: str, data: dict[str, Any]) -> None:
        """Merge-write ``data`` into the document, creating it if absent."""
        ...

    async def find_active_subscribers(self, product_id: str) -> list[str]:
        """Ids of users whose subscription is ACTIVE for ``product_id``."""
        ...

    async def demote_subscriptions(
        self,
        user_ids: list[str],
        status: SubscriptionStatus,
        last_event: str,
        updated_at: datetime,
    ) -> None:
        """Atomically set status/lastEvent/updatedAt on every listed user."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...


def deep_merge(target: dict[str, Any], data: dict[str, Any]) -> dict[str, Any]:
    """
    Merge ``data`` into ``target`` the way Firestore ``set(merge=True)`` does:
    nested maps are merged key by key, everything else is replaced.
    """
    for key, value in data.items():
        existing = target.get(key)
        if isinstance(value, dict) and isinstance(existing, dict):
            deep_merge(existing, value)
        else:
            target[key] = copy.deepcopy(value)
    return target


class InMemoryUserStore:
    """
    Dict-backed user store.

    Documents are deep-copied on the way in and out so callers never
    share state with the store. A lock serializes writes so the batch
    demotion is atomic with respect to other coroutines.
    """

    name = "memory"

    def __init__(self, documents: Optional[dict[str, dict[str, Any]]] = None):
        self._documents: dict[str, dict[str, Any]] = copy.deepcopy(documents or {})
        self._lock = asyncio.Lock()

    async def get_user(self, user_id: str) -> Optional[dict[str, Any]]:
        document = self._documents.get(user_id)
        return copy.deepcopy(document) if document is not None else None

    async def merge_user(self, user_id: str, data: dict[str, Any]) -> None:
        async with self._lock:
            document = self._documents.setdefault(user_id, {})
            deep_merge(document, data)

    async def find_active_subscribers(self, product_id: str) -> list[str]:
        matches = []
        for user_id, document in self._documents.items():
            subscription = document.get(SUBSCRIPTION_FIELD)
            if not isinstance(subscription, dict):
                continue
            if (
                subscription.get("productId") == product_id
                and subscription.get("status") == SubscriptionStatus.ACTIVE.value
            ):
                matches.append(user_id)
        return matches

    async def demote_subscriptions(
        self,
        user_ids: list[str],
        status: SubscriptionStatus,
        last_event: str,
        updated_at: datetime,
    ) -> None:
        async with self._lock:
            # Validate the whole batch before touching anything
            for user_id in user_ids:
                document = self._documents.get(user_id)
                if document is None or not isinstance(document.get(SUBSCRIPTION_FIELD), dict):
                    raise StoreError(f"No subscription to update for user {user_id}")

            for user_id in user_ids:
                subscription = self._documents[user_id][SUBSCRIPTION_FIELD]
                subscription["status"] = SubscriptionStatus(status).value
                subscription["lastEvent"] = last_event
                subscription["updatedAt"] = updated_at

    async def close(self) -> None:
        return None

    # Test helpers

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Copy of every stored document."""
        return copy.deepcopy(self._documents)


def build_user_store(settings: Settings) -> UserStore:
    """
    Construct the configured store backend.

    Imports are local so a deployment only needs the client library of
    the backend it actually uses.
    """
    backend = settings.USER_STORE_BACKEND

    if backend == "firestore":
        from app.services.firestore_user_store import FirestoreUserStore

        return FirestoreUserStore.from_settings(settings)

    if backend == "postgres":
        from app.services.sql_user_store import SqlUserStore

        return SqlUserStore.from_url(settings.database_url_async)

    logger.warning("Using in-memory user store; data is lost on restart")
    return InMemoryUserStore()
