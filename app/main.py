"""
Billing API - Main Application
==============================

FastAPI application entry point with middleware configuration
and route registration.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import newrelic.agent

# Configure logging for the application (root logger defaults to WARNING)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.db.session import init_db, close_db
from app.services.cache import init_redis, close_redis
from app.core.errors import setup_exception_handlers

logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"


# =============================================================================
# New Relic Transaction Enrichment Middleware (Raw ASGI)
# =============================================================================

class NewRelicTransactionMiddleware:
    """
    Raw ASGI middleware that adds custom attributes to every New Relic
    transaction.

    Raw ASGI keeps the route handler in the same task, so New Relic's
    contextvars-based spans for database and Redis calls stay attached to
    the request transaction.

    Captures: response status, latency, HTTP method, route pattern, PayFast
    mode, and user ID (when authenticated).
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

                client = scope.get("client")
                client_ip = client[0] if client else "unknown"

                newrelic.agent.add_custom_attributes([
                    ("http.method", scope.get("method", "")),
                    ("http.route", route_path),
                    ("http.status_code", status_code),
                    ("http.duration_ms", round(duration_ms, 2)),
                    ("http.client_ip", client_ip),
                    ("environment", settings.ENVIRONMENT),
                    ("payfast.sandbox", settings.PAYFAST_SANDBOX),
                ])

                # Set by the caller dependency on authenticated routes
                state = scope.get("state")
                user_id = state.get("user_id") if isinstance(state, dict) else None
                if user_id:
                    newrelic.agent.add_custom_attribute("enduser.id", str(user_id))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events for:
    - Database connection
    - Redis connection
    """
    # Startup
    logger.info("Starting Billing API (payfast_sandbox=%s)", settings.PAYFAST_SANDBOX)

    # Warn if auth is disabled
    if settings.auth_disabled:
        logger.warning(
            "Authentication is DISABLED (DEV_AUTH_DISABLED=true); "
            "all requests use the development test user"
        )

    if not settings.PAYFAST_MERCHANT_ID:
        logger.warning("PAYFAST_MERCHANT_ID not configured; all webhooks will be rejected")

    # Initialize database
    try:
        await init_db()
    except Exception as e:
        logger.error("Database connection failed: %s", e)
        # Continue startup even if DB fails (for health checks)

    # Initialize Redis
    try:
        await init_redis()
    except Exception as e:
        logger.warning("Redis connection failed: %s", e)

    yield

    # Shutdown
    logger.info("Shutting down Billing API")
    await close_db()
    await close_redis()


# Create FastAPI application
app = FastAPI(
    title="Billing API",
    description="""
## PayFast Subscription Billing Backend

### Features
- **Webhooks**: Signed PayFast ITN ingestion
- **Subscriptions**: Status and user-initiated cancellation
- **Payments**: Signed checkout forms for PayFast's hosted page
    """,
    version=APP_VERSION,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
    responses={
        401: {"description": "Not authenticated"},
        404: {"description": "Resource not found"},
        422: {"description": "Validation error"},
        500: {"description": "Internal server error"},
    },
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
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

@app.get("/health", tags=["Health"])
async def health_check() -> dict:
    """
    Health check endpoint.

    Returns the current status of the API.
    """
    return {
        "status": "healthy",
        "version": APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }


@app.get("/", tags=["Health"])
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": "Billing API",
        "version": APP_VERSION,
        "docs": "/docs" if settings.is_development else "Disabled in production",
    }


# =============================================================================
# API Routes
# =============================================================================

from app.api.v1 import payments, subscription, webhooks
app.include_router(webhooks.router, prefix="/api/v1/webhooks", tags=["Webhooks"])
app.include_router(subscription.router, prefix="/api/v1/subscription", tags=["Subscription"])
app.include_router(payments.router, prefix="/api/v1/payments", tags=["Payments"])
