"""
Health Check Tests
==================

Tests for the health check endpoints and application lifespan.
"""

import pytest
from httpx import AsyncClient

from app.main import app, lifespan, settings
from app.services.user_store import InMemoryUserStore


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test the health check endpoint."""
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()

    assert data["status"] == "healthy"
    assert "version" in data
    assert "environment" in data
    assert data["store"] == settings.USER_STORE_BACKEND


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    """Test the root endpoint."""
    response = await client.get("/")

    assert response.status_code == 200
    data = response.json()

    assert data["name"] == "BallerAI Subscription Webhooks"
    assert "version" in data


@pytest.mark.asyncio
async def test_unknown_route_uses_flat_error_body(client: AsyncClient):
    """Routing errors share the {"error": ...} shape."""
    response = await client.get("/nope")

    assert response.status_code == 404
    assert "error" in response.json()


@pytest.mark.asyncio
async def test_lifespan_builds_and_closes_store(monkeypatch):
    """The store is created once at startup and released on shutdown."""
    monkeypatch.setattr(settings, "USER_STORE_BACKEND", "memory")

    async with lifespan(app):
        assert isinstance(app.state.user_store, InMemoryUserStore)

    assert app.state.user_store is None
