"""
Shared Test Fixtures
====================

The app runs against an in-memory user store and a fixed webhook secret,
injected through FastAPI dependency overrides.
"""

from typing import Any, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.dependencies import get_user_store, get_webhook_secret_provider
from app.main import app
from app.services.user_store import InMemoryUserStore

WEBHOOK_SECRET = "test_rc_auth_token_123"
WEBHOOK_URL = "/api/v1/webhooks/revenuecat"


def make_event(event_type: str = "INITIAL_PURCHASE", **fields: Any) -> dict:
    """Build a RevenueCat webhook body with sensible defaults."""
    event: dict[str, Any] = {
        "type": event_type,
        "app_user_id": "u1",
        "product_id": "BallerAIOneMonth",
        "expiration_at_ms": 1999999999000,
    }
    event.update(fields)
    return {"event": event}


def make_subscription(
    product_id: str = "Monthly",
    status: str = "ACTIVE",
    last_event: str = "INITIAL_PURCHASE",
) -> dict:
    """Stored subscription map as the webhook writes it."""
    return {
        "status": status,
        "productId": product_id,
        "expiresAt": None,
        "platform": "ios",
        "lastEvent": last_event,
        "updatedAt": None,
    }


@pytest.fixture
def user_store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def webhook_secret() -> Optional[str]:
    return WEBHOOK_SECRET


@pytest_asyncio.fixture
async def client(user_store, webhook_secret):
    """HTTP client bound to the app with test dependencies."""
    app.dependency_overrides[get_user_store] = lambda: user_store
    app.dependency_overrides[get_webhook_secret_provider] = lambda: (lambda: webhook_secret)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
