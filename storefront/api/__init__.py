"""API layer module.

Contains FastAPI routers and request/response schemas.
"""

from storefront.api.checkout import router as checkout_router
from storefront.api.health import router as health_router
from storefront.api.orders import router as admin_orders_router
from storefront.api.refunds import admin_router as admin_refunds_router
from storefront.api.refunds import router as refunds_router
from storefront.api.shipping import router as shipping_router
from storefront.api.tracking import router as tracking_router
from storefront.api.webhooks import router as webhooks_router

__all__ = [
    "admin_orders_router",
    "admin_refunds_router",
    "checkout_router",
    "health_router",
    "refunds_router",
    "shipping_router",
    "tracking_router",
    "webhooks_router",
]
