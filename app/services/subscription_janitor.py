"""
Duplicate Subscription Cleanup
==============================

After an account transfer the same store purchase can end up ACTIVE on two
user documents (e.g. two app accounts sharing one Apple ID): RevenueCat
moves the entitlement, but the old owner's document is never told.

Every activation therefore demotes any *other* user still ACTIVE on the
same product, so at most one document per product converges to ACTIVE.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from app.models.subscription import SubscriptionStatus, TRANSFER_CLEANUP_EVENT
from app.services.user_store import UserStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CleanupResult:
    """Outcome of a cleanup pass. ``error`` is set when the pass failed."""

    demoted_user_ids: tuple[str, ...] = ()
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def cleanup_duplicate_subscriptions(
    store: UserStore,
    current_user_id: str,
    product_id: str,
    now: Optional[datetime] = None,
) -> CleanupResult:
    """
    Cancel ACTIVE subscriptions on ``product_id`` held by anyone but
    ``current_user_id``.

    Never raises: cleanup is best-effort and must not fail the webhook that
    triggered it. Failures are logged and returned in the result.
    """
    try:
        active_user_ids = await store.find_active_subscribers(product_id)
        stale_user_ids = [uid for uid in active_user_ids if uid != current_user_id]

        if not stale_user_ids:
            logger.info(
                "No duplicate subscriptions for product=%s (owner=%s)",
                product_id,
                current_user_id,
            )
            return CleanupResult()

        await store.demote_subscriptions(
            stale_user_ids,
            status=SubscriptionStatus.CANCELLED,
            last_event=TRANSFER_CLEANUP_EVENT,
            updated_at=now or datetime.now(timezone.utc),
        )
    except Exception as exc:
        logger.exception(
            "Duplicate subscription cleanup failed: product=%s owner=%s",
            product_id,
            current_user_id,
        )
        return CleanupResult(error=exc)

    logger.info(
        "Cancelled %d duplicate subscription(s) for product=%s owner=%s: %s",
        len(stale_user_ids),
        product_id,
        current_user_id,
        ", ".join(stale_user_ids),
    )
    return CleanupResult(demoted_user_ids=tuple(stale_user_ids))
