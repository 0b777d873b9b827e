"""
RevenueCat Service
==================

Turns RevenueCat webhook events into subscription state on user documents.

Handles:
- Payload normalization (TRANSFER events have their own shape)
- Event type → subscription status mapping
- Subscription merge-writes and referral code bookkeeping
- Duplicate-subscription cleanup after every activation

Processing is idempotent: RevenueCat redelivers on any non-2xx response,
and replaying an event rewrites the same subscription fields.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from app.config import settings
from app.core.errors import PayloadErrorReason, PayloadValidationError
from app.models.subscription import Platform, SubscriptionStatus
from app.schemas.subscription import SubscriptionRecord
from app.schemas.webhook import NormalizedEvent, SubscriberAttribute
from app.services.subscription_janitor import CleanupResult, cleanup_duplicate_subscriptions
from app.services.user_store import (
    REFERRAL_CODE_FIELD,
    SUBSCRIPTION_FIELD,
    UPDATED_AT_FIELD,
    UserStore,
)
from app.utils.helpers import datetime_from_ms, utc_now

logger = logging.getLogger(__name__)


TRANSFER_EVENT = "TRANSFER"
# productId recorded for TRANSFER events, which carry no product
TRANSFER_PRODUCT_ID = "TRANSFER"

EVENT_STATUS_MAP: dict[str, SubscriptionStatus] = {
    "INITIAL_PURCHASE": SubscriptionStatus.ACTIVE,
    "RENEWAL": SubscriptionStatus.ACTIVE,
    "BILLING_ISSUE": SubscriptionStatus.PAST_DUE,
    "CANCELLATION": SubscriptionStatus.CANCELLED,
    "EXPIRATION": SubscriptionStatus.EXPIRED,
}


# -----------------------------------------------------------------------------
# Normalization
# -----------------------------------------------------------------------------

def _is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and value != ""


def _parse_attributes(raw: Any) -> dict[str, SubscriberAttribute]:
    """Keep only well-formed ``{value: str, updated_at_ms?: int}`` entries."""
    if not isinstance(raw, dict):
        return {}

    attributes = {}
    for name, entry in raw.items():
        if not isinstance(entry, dict) or not isinstance(entry.get("value"), str):
            logger.debug("Ignoring malformed subscriber attribute %r", name)
            continue
        updated_at_ms = entry.get("updated_at_ms")
        if isinstance(updated_at_ms, bool) or not isinstance(updated_at_ms, int):
            updated_at_ms = None
        attributes[str(name)] = SubscriberAttribute(
            value=entry["value"],
            updated_at_ms=updated_at_ms,
        )
    return attributes


def _parse_expiration(raw: Any) -> Optional[int]:
    """
    ``expiration_at_ms`` must be null/absent or a non-negative number that
    converts to a UTC datetime.
    """
    if raw is None:
        return None
    if (
        isinstance(raw, bool)
        or not isinstance(raw, (int, float))
        or (isinstance(raw, float) and not math.isfinite(raw))
        or raw < 0
    ):
        raise PayloadValidationError(
            PayloadErrorReason.INVALID_EXPIRATION,
            "event.expiration_at_ms",
            "Invalid payload: event.expiration_at_ms must be null or a non-negative number",
        )

    expires_at_ms = int(raw)
    try:
        datetime_from_ms(expires_at_ms)
    except (OverflowError, OSError, ValueError) as exc:
        raise PayloadValidationError(
            PayloadErrorReason.INVALID_EXPIRATION,
            "event.expiration_at_ms",
            f"Invalid payload: event.expiration_at_ms is out of range ({exc})",
        ) from exc
    return expires_at_ms


def normalize_event(payload: Any) -> NormalizedEvent:
    """
    Validate a decoded webhook body and reduce it to a ``NormalizedEvent``.

    RevenueCat puts every field inside ``event``. TRANSFER events carry
    ``transferred_to`` instead of ``app_user_id``/``product_id``; only the
    first transfer target is processed.

    Raises:
        PayloadValidationError: with the failed check as ``reason`` and
            the offending field path as ``field``
    """
    if not isinstance(payload, dict):
        raise PayloadValidationError(
            PayloadErrorReason.NOT_AN_OBJECT,
            "$",
            "Invalid payload: must be an object",
        )

    event = payload.get("event")
    if not isinstance(event, dict):
        raise PayloadValidationError(
            PayloadErrorReason.MISSING_EVENT,
            "event",
            "Invalid payload: missing or invalid event object",
        )

    event_type = event.get("type")
    if not _is_non_empty_str(event_type):
        raise PayloadValidationError(
            PayloadErrorReason.MISSING_EVENT_TYPE,
            "event.type",
            "Invalid payload: missing or invalid event.type",
        )

    attributes = _parse_attributes(event.get("subscriber_attributes"))

    if event_type == TRANSFER_EVENT:
        transferred_to = event.get("transferred_to")
        if (
            not isinstance(transferred_to, list)
            or not transferred_to
            or not _is_non_empty_str(transferred_to[0])
        ):
            raise PayloadValidationError(
                PayloadErrorReason.MISSING_TRANSFERRED_TO,
                "event.transferred_to",
                "Invalid payload: TRANSFER event missing transferred_to",
            )
        if len(transferred_to) > 1:
            logger.info(
                "TRANSFER to %d users; only %s is processed",
                len(transferred_to),
                transferred_to[0],
            )
        return NormalizedEvent(
            type=event_type,
            user_id=transferred_to[0],
            product_id=TRANSFER_PRODUCT_ID,
            expires_at_ms=None,
            attributes=attributes,
        )

    app_user_id = event.get("app_user_id")
    if not _is_non_empty_str(app_user_id):
        raise PayloadValidationError(
            PayloadErrorReason.MISSING_APP_USER_ID,
            "event.app_user_id",
            "Invalid payload: missing or invalid event.app_user_id",
        )

    product_id = event.get("product_id")
    if not _is_non_empty_str(product_id):
        raise PayloadValidationError(
            PayloadErrorReason.MISSING_PRODUCT_ID,
            "event.product_id",
            "Invalid payload: missing or invalid event.product_id",
        )

    return NormalizedEvent(
        type=event_type,
        user_id=app_user_id,
        product_id=product_id,
        expires_at_ms=_parse_expiration(event.get("expiration_at_ms")),
        attributes=attributes,
    )


# -----------------------------------------------------------------------------
# Classification
# -----------------------------------------------------------------------------

def classify_event(event_type: str) -> Optional[SubscriptionStatus]:
    """Map a RevenueCat event type to a status; None for anything unmapped."""
    return EVENT_STATUS_MAP.get(event_type)


def determine_platform(product_id: str, android_marker: str = "android") -> Platform:
    """Products named with the Android marker are Android; everything else iOS."""
    if android_marker and android_marker.lower() in product_id.lower():
        return Platform.ANDROID
    return Platform.IOS


def normalize_referral_code(value: Optional[str]) -> Optional[str]:
    """Referral codes are stored trimmed and uppercased; blank means none."""
    if value is None:
        return None
    code = value.strip().upper()
    return code or None


# -----------------------------------------------------------------------------
# Reconciliation
# -----------------------------------------------------------------------------

class ReconcileOutcome(str, Enum):
    """What processing an event did."""
    TRANSFER_PROCESSED = "transfer_processed"
    UNKNOWN_EVENT_IGNORED = "unknown_event_ignored"
    SUBSCRIPTION_UPDATED = "subscription_updated"


@dataclass(frozen=True)
class ReconcileResult:
    outcome: ReconcileOutcome
    status: Optional[SubscriptionStatus] = None
    referral_code_updated: bool = False
    cleanup: Optional[CleanupResult] = None


@dataclass(frozen=True)
class ReferralLookup:
    """
    Whether a referral code differs from the stored one.

    A failed lookup reports ``changed=False`` with the error attached; the
    caller skips the referral write and carries on.
    """

    changed: bool
    error: Optional[Exception] = None


class RevenueCatService:
    """Applies normalized webhook events to the user store."""

    def __init__(self, store: UserStore, android_marker: Optional[str] = None):
        self.store = store
        self.android_marker = (
            android_marker if android_marker is not None else settings.ANDROID_PRODUCT_MARKER
        )

    async def _check_referral_code(self, user_id: str, referral_code: str) -> ReferralLookup:
        """Compare ``referral_code`` against the user's stored code."""
        try:
            document = await self.store.get_user(user_id)
        except Exception as exc:
            logger.warning("Error checking existing referral code for user=%s: %s", user_id, exc)
            return ReferralLookup(changed=False, error=exc)

        existing = (document or {}).get(REFERRAL_CODE_FIELD)
        if isinstance(existing, str):
            existing = normalize_referral_code(existing)
        return ReferralLookup(changed=existing != referral_code)

    async def _process_transfer(self, event: NormalizedEvent) -> ReconcileResult:
        """
        TRANSFER only carries subscriber attributes for the new owner.

        Subscription state for the new owner arrives with its own
        INITIAL_PURCHASE/RENEWAL event.
        """
        referral_code = normalize_referral_code(event.referral_code)
        updated = False

        if referral_code:
            lookup = await self._check_referral_code(event.user_id, referral_code)
            if lookup.changed:
                await self.store.merge_user(
                    event.user_id,
                    {
                        REFERRAL_CODE_FIELD: referral_code,
                        UPDATED_AT_FIELD: utc_now(),
                    },
                )
                updated = True
                logger.info(
                    "Updated referral code for transferred user %s: %s",
                    event.user_id,
                    referral_code,
                )

        logger.info("Processed TRANSFER event: user=%s", event.user_id)
        return ReconcileResult(
            outcome=ReconcileOutcome.TRANSFER_PROCESSED,
            referral_code_updated=updated,
        )

    async def process_webhook_event(self, event: NormalizedEvent) -> ReconcileResult:
        """
        Apply one webhook event.

        Unknown event types are acknowledged without a write so RevenueCat
        stops retrying them. Store write failures propagate (the caller
        answers 500 and RevenueCat redelivers); referral lookups and
        duplicate cleanup are best-effort.
        """
        logger.info(
            "Processing RevenueCat webhook: type=%s user=%s product=%s",
            event.type,
            event.user_id,
            event.product_id,
        )

        if event.type == TRANSFER_EVENT:
            return await self._process_transfer(event)

        status = classify_event(event.type)
        if status is None:
            logger.warning("Unknown event type: %s", event.type)
            return ReconcileResult(outcome=ReconcileOutcome.UNKNOWN_EVENT_IGNORED)

        record = SubscriptionRecord(
            status=status,
            product_id=event.product_id,
            expires_at=(
                datetime_from_ms(event.expires_at_ms)
                if event.expires_at_ms is not None
                else None
            ),
            platform=determine_platform(event.product_id, self.android_marker),
            last_event=event.type,
            updated_at=utc_now(),
        )
        update: dict[str, Any] = {SUBSCRIPTION_FIELD: record.to_document()}

        referral_code = normalize_referral_code(event.referral_code)
        if referral_code:
            lookup = await self._check_referral_code(event.user_id, referral_code)
            if lookup.changed:
                update[REFERRAL_CODE_FIELD] = referral_code
                logger.info(
                    "Updating referral code for user %s: %s",
                    event.user_id,
                    referral_code,
                )

        await self.store.merge_user(event.user_id, update)

        logger.info(
            "Updated user subscription: user=%s status=%s product=%s",
            event.user_id,
            record.status,
            record.product_id,
        )

        cleanup = None
        if status == SubscriptionStatus.ACTIVE:
            cleanup = await cleanup_duplicate_subscriptions(
                self.store,
                event.user_id,
                event.product_id,
            )

        return ReconcileResult(
            outcome=ReconcileOutcome.SUBSCRIPTION_UPDATED,
            status=status,
            referral_code_updated=REFERRAL_CODE_FIELD in update,
            cleanup=cleanup,
        )
