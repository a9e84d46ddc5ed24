"""
FastAPI application entry point for the Sprout reconciliation backend.

Serves the RevenueCat webhook, account status, family sharing, referral,
recap and notification routes. User routes authenticate with Firebase ID
tokens.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from sprout import __version__
from sprout.api.routes import (
    account,
    family,
    health,
    notifications,
    recaps,
    referrals,
    webhooks_revenuecat,
)
from sprout.config.settings import get_settings
from sprout.database.session import get_engine
from sprout.db_base import Base
from sprout.errors import SproutError
from sprout.recaps.generator import NullRecapGenerator

# Importing models registers every table on Base.metadata
import sprout.models  # noqa: F401

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    logger.info("Starting Sprout API", extra={"env": settings.env})

    app.state.auth_configured = bool(settings.firebase_project_id)
    if not app.state.auth_configured:
        logger.warning(
            "FIREBASE_PROJECT_ID not set. Authenticated endpoints will return 503."
        )

    if not settings.revenuecat_webhook_secret:
        logger.warning("RevenueCat webhook secret not set. Webhook deliveries will be rejected.")

    if not settings.database_url:
        logger.error("DATABASE_URL is not set. Database-backed endpoints will return 503.")
        app.state.database_configured = False
    else:
        masked = settings.database_url.split("@")[-1]
        logger.info("DATABASE_URL configured", extra={"host_db": masked})
        app.state.database_configured = True
        if settings.database_url.startswith("sqlite"):
            # Local development: no migrations, create tables directly
            Base.metadata.create_all(bind=get_engine())

    if not getattr(app.state, "recap_generator", None):
        app.state.recap_generator = NullRecapGenerator()

    yield

    logger.info("Shutting down Sprout API")


app = FastAPI(
    title="Sprout API",
    description="Identity, entitlement and family-sharing backend for Sprout",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(webhooks_revenuecat.router)
app.include_router(account.router)
app.include_router(family.router)
app.include_router(recaps.router)
app.include_router(notifications.router)
app.include_router(referrals.router)


@app.exception_handler(SproutError)
async def sprout_error_handler(request: Request, exc: SproutError):
    logger.warning(
        "Unhandled domain error",
        extra={"error": exc.code, "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=exc.to_dict(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions with proper logging."""
    logger.error(
        "Unhandled exception",
        extra={
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path,
        },
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal_error", "message": "Internal server error"},
    )
