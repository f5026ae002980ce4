"""
Loop API - Main Application
===========================

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

from loop.config import settings
from loop.core.errors import setup_exception_handlers
from loop.db.session import close_db, init_db
from loop.services.cache import close_redis, init_redis
from loop.services.emotion_colors import EmotionColorAssigner

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


# =============================================================================
# New Relic Transaction Enrichment Middleware (Raw ASGI)
# =============================================================================

class NewRelicTransactionMiddleware:
    """
    Raw ASGI middleware that tags every New Relic transaction with
    method, route pattern, status, latency and the path's user id.

    Raw ASGI keeps the handler in the same task so New Relic's
    contextvars-based spans (DB, Redis) stay attached to the transaction.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        status_code = 500  # until the response starts

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
                # Route pattern (e.g. "/api/v1/users/{user_id}/trends/summary")
                route = scope.get("route")
                route_path = route.path if route else scope.get("path", "unknown")

                newrelic.agent.add_custom_attributes([
                    ("http.method", scope.get("method", "")),
                    ("http.route", route_path),
                    ("http.status_code", status_code),
                    ("http.duration_ms", round(duration_ms, 2)),
                    ("environment", settings.ENVIRONMENT),
                ])

                user_id = scope.get("path_params", {}).get("user_id")
                if user_id:
                    newrelic.agent.add_custom_attribute("enduser.id", str(user_id))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown of:
    - Database connection
    - Redis connection (pending loop cache)
    - The process-wide emotion color assigner
    """
    logger.info("Starting Loop API...")

    app.state.color_assigner = EmotionColorAssigner(settings.emotion_palette_list)

    # Continue startup even if DB fails (for health checks)
    try:
        await init_db()
    except Exception as e:
        logger.warning("Database connection failed: %s", e)

    try:
        await init_redis()
    except Exception as e:
        logger.warning("Redis connection failed: %s", e)

    yield

    logger.info("Shutting down Loop API...")
    await close_db()
    await close_redis()


# Create FastAPI application
app = FastAPI(
    title="Loop API",
    description="""
## Loop Reflection Backend

Schedule and trends for short audio/video reflections ("loops").

### Features
- **Schedule**: day activity by loop kind, month and week calendars, streaks
- **Check-ins**: daily mood rating and sleep hours
- **Trends**: top emotions, speaking highlights, mood correlations
    """,
    version=API_VERSION,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
    responses={
        400: {"description": "Invalid request or time window"},
        404: {"description": "Resource not found"},
        422: {"description": "Validation error"},
        502: {"description": "Stored record could not be decoded"},
        503: {"description": "Data source unavailable"},
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
        "version": API_VERSION,
        "environment": settings.ENVIRONMENT,
    }


@app.get("/", tags=["Health"])
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": "Loop API",
        "version": API_VERSION,
        "docs": "/docs" if settings.is_development else "Disabled in production",
    }


# =============================================================================
# API Routes
# =============================================================================

from loop.api.v1 import loops, schedule, trends
app.include_router(loops.router, prefix="/api/v1/users", tags=["Loops"])
app.include_router(schedule.router, prefix="/api/v1/users", tags=["Schedule"])
app.include_router(trends.router, prefix="/api/v1/users", tags=["Trends"])
