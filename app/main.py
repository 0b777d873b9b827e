"""
BallerAI Subscription Webhooks - Main Application
=================================================

FastAPI application entry point with middleware configuration
and route registration.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import newrelic.agent

from app.config import settings

# Configure logging for the application (root logger defaults to WARNING)
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.errors import setup_exception_handlers
from app.schemas.common import HealthResponse
from app.services.user_store import build_user_store

logger = logging.getLogger(__name__)


# =============================================================================
# New Relic Transaction Enrichment Middleware (Raw ASGI)
# =============================================================================

class NewRelicTransactionMiddleware:
    """
    Raw ASGI middleware that enriches every New Relic transaction with
    custom attributes for filtering and alerting.

    Uses raw ASGI instead of BaseHTTPMiddleware to preserve the async
    context chain New Relic relies on for span propagation.

    Captures: response status, latency, HTTP method, route pattern, and
    the RevenueCat event type (set by the webhook handler).
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        status_code = 500  # default until we capture the real one

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration_ms = (time.perf_counter() - start) * 1000

            txn = newrelic.agent.current_transaction()
            if txn:
                route = scope.get("route")
                route_path = route.path if route else scope.get("path", "unknown")

                newrelic.agent.add_custom_attributes([
                    ("http.method", scope.get("method", "")),
                    ("http.route", route_path),
                    ("http.status_code", status_code),
                    ("http.duration_ms", round(duration_ms, 2)),
                    ("environment", settings.ENVIRONMENT),
                ])

                state = scope.get("state") or {}
                event_type = state.get("webhook_event_type")
                if event_type:
                    newrelic.agent.add_custom_attribute("revenuecat.event_type", event_type)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Builds the user store once per process and closes it on shutdown.
    """
    logger.info(
        "Starting subscription webhooks (environment=%s, store=%s)",
        settings.ENVIRONMENT,
        settings.USER_STORE_BACKEND,
    )

    if not settings.REVENUECAT_WEBHOOK_SECRET:
        logger.warning("REVENUECAT_WEBHOOK_SECRET is empty; webhooks will answer 500")

    app.state.user_store = build_user_store(settings)

    if settings.USER_STORE_BACKEND == "postgres":
        from app.db.session import check_connection

        try:
            await check_connection(app.state.user_store.engine)
        except Exception as e:
            # Continue startup so health checks still answer
            logger.warning("Database connection failed: %s", e)

    yield

    logger.info("Shutting down subscription webhooks")
    await app.state.user_store.close()
    app.state.user_store = None


# Create FastAPI application
app = FastAPI(
    title="BallerAI Subscription Webhooks",
    description="""
## RevenueCat webhook processor

Keeps `users/{uid}.subscription` in sync with RevenueCat and cancels
duplicate ACTIVE subscriptions left behind by account transfers.
    """,
    version=settings.VERSION,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_methods=["*"],
    allow_headers=["*"],
)

# New Relic transaction enrichment (adds custom attrs to every transaction)
app.add_middleware(NewRelicTransactionMiddleware)

# Setup exception handlers
setup_exception_handlers(app)


# =============================================================================
# Health Check Endpoints
# =============================================================================

@app.get("/health", tags=["Health"], response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Returns the current status of the API and the configured store.
    """
    return HealthResponse(
        status="healthy",
        version=settings.VERSION,
        environment=settings.ENVIRONMENT,
        store=settings.USER_STORE_BACKEND,
    )


@app.get("/", tags=["Health"])
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": "BallerAI Subscription Webhooks",
        "version": settings.VERSION,
        "docs": "/docs" if settings.is_development else "Disabled in production",
    }


# =============================================================================
# API Routes
# =============================================================================

from app.api.v1 import webhooks
app.include_router(webhooks.router, prefix="/api/v1/webhooks", tags=["Webhooks"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.PORT)
