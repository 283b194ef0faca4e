"""Storefront API main application module.

This module initializes the FastAPI application and configures
core middleware, routers, and startup/shutdown events.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront.api.checkout import router as checkout_router
from storefront.api.errors import register_exception_handlers
from storefront.api.health import router as health_router
from storefront.api.middleware import setup_middleware
from storefront.api.orders import router as admin_orders_router
from storefront.api.refunds import admin_router as admin_refunds_router
from storefront.api.refunds import router as refunds_router
from storefront.api.shipping import router as shipping_router
from storefront.api.tracking import router as tracking_router
from storefront.api.webhooks import router as webhooks_router
from storefront.infrastructure.biteship_client import get_biteship_client
from storefront.infrastructure.config import get_settings
from storefront.infrastructure.database import dispose_engine
from storefront.infrastructure.logging import configure_logging
from storefront.infrastructure.xendit_client import get_xendit_client

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown events.

    Args:
        app: The FastAPI application instance.

    Yields:
        None after startup, cleanup happens after yield.
    """
    settings = get_settings()
    configure_logging(settings)

    # Startup
    logger.info(
        "Starting Storefront API",
        version=settings.api_version,
        debug=settings.debug,
        storage_backend=settings.storage_backend,
        payments_configured=bool(settings.xendit_secret_key),
        shipping_configured=bool(settings.biteship_api_key),
        test_endpoints=settings.enable_test_endpoints,
    )

    yield

    # Shutdown
    logger.info("Shutting down Storefront API")
    await get_xendit_client().close()
    await get_biteship_client().close()
    if settings.storage_backend == "database":
        await dispose_engine()


app = FastAPI(
    title="Storefront API",
    description="Order, payment, shipping and refund backend for the storefront",
    version=get_settings().api_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware (must be added before custom middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Setup custom middleware (request ID, admin API key, error handling)
setup_middleware(app)

register_exception_handlers(app)

# Include routers
app.include_router(health_router, tags=["Health"])
app.include_router(checkout_router)
app.include_router(shipping_router)
app.include_router(tracking_router)
app.include_router(refunds_router)
app.include_router(admin_orders_router)
app.include_router(admin_refunds_router)
app.include_router(webhooks_router)
