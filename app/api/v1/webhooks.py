"""
Webhooks API Endpoints
======================

Handles webhooks from RevenueCat.

Authentication:
    RevenueCat sends the configured authorization token in the
    ``Authorization`` header (bare or ``Bearer <token>``). We compare it
    against REVENUECAT_WEBHOOK_SECRET in constant time.

Retries:
    RevenueCat redelivers on any non-2xx response, so only failures worth
    retrying (store errors) answer 5xx. Unknown event types answer 200.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Header, Request, status

from app.core.errors import (
    AppException,
    ConfigurationError,
    ErrorCodes,
    MSG_INTERNAL_ERROR,
    MSG_METHOD_NOT_ALLOWED,
    MSG_MISSING_AUTH,
    PayloadErrorReason,
    PayloadValidationError,
    WebhookAuthError,
)
from app.core.security import verify_authorization
from app.dependencies import SecretProviderDep, UserStoreDep
from app.schemas.common import ErrorResponse, SuccessResponse
from app.services.revenuecat import RevenueCatService, normalize_event

logger = logging.getLogger(__name__)

router = APIRouter()

# Non-POST methods are routed here too so they get the webhook's own 405 body
_ACCEPTED_METHODS = ["POST", "GET", "PUT", "PATCH", "DELETE"]


def _parse_body(body: bytes):
    """Decode the raw request body as JSON."""
    try:
        return json.loads(body)
    except ValueError as exc:
        raise PayloadValidationError(
            PayloadErrorReason.INVALID_JSON,
            "$",
            f"Invalid payload: body is not valid JSON ({exc})",
        ) from exc


@router.api_route(
    "/revenuecat",
    methods=_ACCEPTED_METHODS,
    response_model=SuccessResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid payload format"},
        401: {"model": ErrorResponse, "description": "Missing or invalid authorization"},
        405: {"model": ErrorResponse, "description": "Method not allowed"},
        500: {"model": ErrorResponse, "description": "Configuration or processing error"},
    },
)
async def revenuecat_webhook(
    request: Request,
    store: UserStoreDep,
    get_secret: SecretProviderDep,
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> SuccessResponse:
    """
    Handle RevenueCat webhook events.

    Checks run in order and the first failure answers immediately:
    method → authorization header → configured secret and store → token →
    payload.

    Events handled:
    - INITIAL_PURCHASE / RENEWAL → ACTIVE (plus duplicate cleanup)
    - BILLING_ISSUE → PAST_DUE
    - CANCELLATION → CANCELLED
    - EXPIRATION → EXPIRED
    - TRANSFER (referral code only)
    - anything else is acknowledged without a write
    """
    # ── Method ────────────────────────────────────────────────────────────
    if request.method != "POST":
        raise AppException(
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            code=ErrorCodes.METHOD_NOT_ALLOWED,
            message=MSG_METHOD_NOT_ALLOWED,
        )

    # ── Verify authorization ──────────────────────────────────────────────
    if not authorization:
        logger.warning("RevenueCat webhook without Authorization header")
        raise WebhookAuthError(code=ErrorCodes.AUTH_MISSING, message=MSG_MISSING_AUTH)

    expected_token = get_secret()
    if not expected_token:
        logger.error("REVENUECAT_WEBHOOK_SECRET not configured")
        raise ConfigurationError()

    if store is None:
        logger.error("User store not initialized")
        raise ConfigurationError()

    if not verify_authorization(authorization, expected_token):
        logger.warning("Unauthorized RevenueCat webhook attempt")
        raise WebhookAuthError()

    # ── Parse payload ─────────────────────────────────────────────────────
    try:
        event = normalize_event(_parse_body(await request.body()))
    except PayloadValidationError as exc:
        logger.warning(
            "Invalid webhook payload: reason=%s field=%s: %s",
            exc.reason.value,
            exc.field,
            exc.detail_message,
        )
        raise

    request.state.webhook_event_type = event.type

    # ── Process event ─────────────────────────────────────────────────────
    try:
        await RevenueCatService(store).process_webhook_event(event)
    except Exception as exc:
        logger.exception(
            "Webhook processing error: type=%s user=%s product=%s",
            event.type,
            event.user_id,
            event.product_id,
        )
        # 500 so RevenueCat will retry
        raise AppException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code=ErrorCodes.INTERNAL_ERROR,
            message=MSG_INTERNAL_ERROR,
        ) from exc

    return SuccessResponse()
