"""Marketplace API - FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from marketplace import __version__
from marketplace.logging_config import setup_marketplace_logging

from .config import get_settings
from .deps import get_marketplace
from .errors import register_error_handlers
from .rate_limit import limiter
from .routes import (
    admin_router,
    complaints_router,
    jobs_router,
    offers_router,
    reviews_router,
    upgrades_router,
    users_router,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    setup_marketplace_logging(settings.log_level)
    logger.info(f"Starting Marketplace API (debug={settings.debug})")
    yield
    logger.info("Shutting down Marketplace API")


app = FastAPI(
    title="Marketplace API",
    description="Job requests, offers, reviews, moderation and provider upgrades",
    version=__version__,
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
register_error_handlers(app)

# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(jobs_router, prefix=API_PREFIX)
app.include_router(offers_router, prefix=API_PREFIX)
app.include_router(reviews_router, prefix=API_PREFIX)
app.include_router(users_router, prefix=API_PREFIX)
app.include_router(complaints_router, prefix=API_PREFIX)
app.include_router(upgrades_router, prefix=API_PREFIX)
app.include_router(admin_router, prefix=API_PREFIX)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "marketplace-api",
        "version": __version__,
        "status": "ok",
    }


@app.get("/health")
def health():
    """Detailed health check with actual database verification."""
    db_status = "disconnected"
    try:
        get_marketplace().storage.count_users()
        db_status = "connected"
    except Exception as e:
        logger.error(f"Health check database query failed: {e}")
        db_status = f"error: {str(e)[:50]}"

    overall_status = "healthy" if db_status == "connected" else "degraded"

    return {
        "status": overall_status,
        "database": db_status,
    }
