"""
Firestore User Store
====================

``UserStore`` backed by Cloud Firestore through the Firebase Admin SDK.

Documents live at ``{USERS_COLLECTION}/{uid}``. Writes use
``set(merge=True)`` so profile fields owned by the mobile client are left
alone; the duplicate cleanup uses a single write batch so every demotion
commits or none does.
"""

import inspect
import logging
from datetime import datetime
from typing import Any, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from app.config import Settings
from app.core.errors import StoreError
from app.models.subscription import SubscriptionStatus

logger = logging.getLogger(__name__)

# Firestore caps a write batch at 500 operations
MAX_BATCH_WRITES = 500


def init_firebase_app(settings: Settings):
    """
    Return the default Firebase app, initializing it on first use.

    Uses the service-account file from GOOGLE_APPLICATION_CREDENTIALS when
    set, application default credentials otherwise.
    """
    import firebase_admin
    from firebase_admin import credentials

    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    if settings.GOOGLE_APPLICATION_CREDENTIALS:
        cred = credentials.Certificate(settings.GOOGLE_APPLICATION_CREDENTIALS)
    else:
        cred = credentials.ApplicationDefault()

    options = {"projectId": settings.GOOGLE_CLOUD_PROJECT} if settings.GOOGLE_CLOUD_PROJECT else None
    app = firebase_admin.initialize_app(cred, options)
    logger.info("Firebase Admin SDK initialized (project=%s)", settings.GOOGLE_CLOUD_PROJECT)
    return app


class FirestoreUserStore:
    """User documents in a Firestore collection."""

    name = "firestore"

    def __init__(self, client, collection: str = "users"):
        self.client = client
        self.collection_name = collection

    @classmethod
    def from_settings(cls, settings: Settings) -> "FirestoreUserStore":
        """Build the store with an async client for the default Firebase app."""
        from firebase_admin import firestore_async

        app = init_firebase_app(settings)
        return cls(firestore_async.client(app), settings.USERS_COLLECTION)

    def _doc(self, user_id: str):
        return self.client.collection(self.collection_name).document(user_id)

    async def get_user(self, user_id: str) -> Optional[dict[str, Any]]:
        try:
            snapshot = await self._doc(user_id).get()
        except google_exceptions.GoogleAPICallError as exc:
            raise StoreError(f"Failed to read user {user_id}: {exc}") from exc

        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    async def merge_user(self, user_id: str, data: dict[str, Any]) -> None:
        try:
            await self._doc(user_id).set(data, merge=True)
        except google_exceptions.GoogleAPICallError as exc:
            raise StoreError(f"Failed to write user {user_id}: {exc}") from exc

    async def find_active_subscribers(self, product_id: str) -> list[str]:
        query = (
            self.client.collection(self.collection_name)
            .where(filter=FieldFilter("subscription.productId", "==", product_id))
            .where(filter=FieldFilter("subscription.status", "==", SubscriptionStatus.ACTIVE.value))
        )
        try:
            snapshots = await query.get()
        except google_exceptions.GoogleAPICallError as exc:
            raise StoreError(f"Failed to query subscribers of {product_id}: {exc}") from exc

        return [snapshot.id for snapshot in snapshots]

    async def demote_subscriptions(
        self,
        user_ids: list[str],
        status: SubscriptionStatus,
        last_event: str,
        updated_at: datetime,
    ) -> None:
        if not user_ids:
            return
        if len(user_ids) > MAX_BATCH_WRITES:
            raise StoreError(
                f"Cannot demote {len(user_ids)} subscriptions in one batch "
                f"(limit {MAX_BATCH_WRITES})"
            )

        batch = self.client.batch()
        for user_id in user_ids:
            batch.update(
                self._doc(user_id),
                {
                    "subscription.status": SubscriptionStatus(status).value,
                    "subscription.lastEvent": last_event,
                    "subscription.updatedAt": updated_at,
                },
            )

        try:
            await batch.commit()
        except google_exceptions.GoogleAPICallError as exc:
            raise StoreError(f"Failed to commit demotion batch: {exc}") from exc

    async def close(self) -> None:
        close = getattr(self.client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result
