"""
Security Module
===============

Webhook authorization for RevenueCat.

RevenueCat sends the token configured in its dashboard in the
``Authorization`` header, either bare or as ``Bearer <token>``.
"""

import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def strip_bearer(value: str) -> str:
    """Remove a leading ``Bearer `` from a header or configured token."""
    if value.startswith(BEARER_PREFIX):
        return value[len(BEARER_PREFIX):]
    return value


def verify_authorization(auth_header: Optional[str], expected_token: Optional[str]) -> bool:
    """
    Check an Authorization header against the shared webhook secret.

    Args:
        auth_header: Value of the Authorization header (may be None)
        expected_token: Configured secret, with or without ``Bearer ``

    Returns:
        True only when both stripped tokens are byte-equal. Length is not
        secret, so a length mismatch returns early; the byte comparison
        itself is constant-time.
    """
    if not auth_header or not expected_token:
        return False

    try:
        token = strip_bearer(auth_header).encode("utf-8")
        expected = strip_bearer(expected_token).encode("utf-8")

        if len(token) != len(expected):
            return False

        return hmac.compare_digest(token, expected)
    except Exception as exc:
        logger.warning("Authorization comparison failed: %s", exc)
        return False
