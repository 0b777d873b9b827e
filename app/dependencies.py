"""
Common Dependencies
===================

Shared dependencies used across the application.

Both the user store and the webhook secret are injected here so tests can
swap them through ``app.dependency_overrides``.
"""

from typing import Annotated, Callable, Optional

from fastapi import Depends, Request

from app.config import get_settings
from app.services.user_store import UserStore

# Zero-argument callable returning the configured webhook secret
SecretProvider = Callable[[], Optional[str]]


def get_user_store(request: Request) -> Optional[UserStore]:
    """
    Return the store built at startup (see ``app.main.lifespan``), or None
    outside the lifespan. The webhook reports a missing store itself, after
    its method check.
    """
    return getattr(request.app.state, "user_store", None)


def get_webhook_secret_provider() -> SecretProvider:
    """Resolve the RevenueCat secret at call time, not import time."""

    def provider() -> Optional[str]:
        return get_settings().REVENUECAT_WEBHOOK_SECRET

    return provider


UserStoreDep = Annotated[Optional[UserStore], Depends(get_user_store)]
SecretProviderDep = Annotated[SecretProvider, Depends(get_webhook_secret_provider)]
