"""
Error Handling
==============

Standardized error codes, exceptions and exception handlers.

Every error response from this service has the flat shape
``{"error": "<message>"}`` which is what RevenueCat logs on its side.
"""

import logging
from enum import Enum
from typing import Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCodes:
    """Standardized error codes."""

    # Webhook transport
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    AUTH_MISSING = "AUTH_MISSING"
    AUTH_INVALID = "AUTH_INVALID"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Payload
    INVALID_PAYLOAD = "INVALID_PAYLOAD"

    # General
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Response messages RevenueCat sees
MSG_METHOD_NOT_ALLOWED = "Method not allowed"
MSG_MISSING_AUTH = "Missing authorization header"
MSG_INVALID_AUTH = "Invalid authorization"
MSG_CONFIGURATION_ERROR = "Server configuration error"
MSG_INVALID_PAYLOAD = "Invalid payload format"
MSG_INTERNAL_ERROR = "Internal server error"


class PayloadErrorReason(str, Enum):
    """Why a webhook payload was rejected by the normalizer."""

    INVALID_JSON = "invalid_json"
    NOT_AN_OBJECT = "not_an_object"
    MISSING_EVENT = "missing_event"
    MISSING_EVENT_TYPE = "missing_event_type"
    MISSING_TRANSFERRED_TO = "missing_transferred_to"
    MISSING_APP_USER_ID = "missing_app_user_id"
    MISSING_PRODUCT_ID = "missing_product_id"
    INVALID_EXPIRATION = "invalid_expiration"


# =============================================================================
# Custom Exceptions
# =============================================================================

class AppException(HTTPException):
    """Base application exception with a code and a client-facing message."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        field: Optional[str] = None,
    ):
        self.code = code
        self.message = message
        self.field = field
        super().__init__(status_code=status_code, detail=message)


class WebhookAuthError(AppException):
    """Authorization header missing or wrong."""

    def __init__(self, code: str = ErrorCodes.AUTH_INVALID, message: str = MSG_INVALID_AUTH):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code=code,
            message=message,
        )


class ConfigurationError(AppException):
    """A required server-side setting is missing."""

    def __init__(self, message: str = MSG_CONFIGURATION_ERROR):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code=ErrorCodes.CONFIGURATION_ERROR,
            message=message,
        )


class PayloadValidationError(AppException):
    """
    Webhook payload violates the event contract.

    ``reason`` identifies the failed check, ``field`` the offending path and
    ``detail_message`` the human-readable explanation. The HTTP message stays
    generic so RevenueCat never sees field-level diagnostics.
    """

    def __init__(self, reason: PayloadErrorReason, field: str, message: str):
        self.reason = reason
        self.detail_message = message
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            code=ErrorCodes.INVALID_PAYLOAD,
            message=MSG_INVALID_PAYLOAD,
            field=field,
        )

    def __str__(self) -> str:
        return self.detail_message


class StoreError(Exception):
    """A user store backend failed to read or write."""


# =============================================================================
# Exception Handlers
# =============================================================================

def error_response(status_code: int, message: str) -> JSONResponse:
    """Build the flat ``{"error": message}`` response."""
    return JSONResponse(status_code=status_code, content={"error": message})


async def app_exception_handler(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    """Handler for AppException."""
    logger.info(
        "Request rejected: %s %s status=%s code=%s field=%s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.code,
        exc.field,
    )
    return error_response(exc.status_code, exc.message)


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Handler for standard HTTPException (routing 404/405 included)."""
    if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        message = MSG_METHOD_NOT_ALLOWED
    else:
        message = str(exc.detail)
    return error_response(exc.status_code, message)


async def validation_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handler for request validation errors."""
    return error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))


async def global_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, MSG_INTERNAL_ERROR)


def setup_exception_handlers(app):
    """
    Register exception handlers with FastAPI app.

    Usage:
        from app.core.errors import setup_exception_handlers
        setup_exception_handlers(app)
    """
    from fastapi.exceptions import RequestValidationError

    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
