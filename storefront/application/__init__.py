"""Application layer module.

Contains application services (use cases) that orchestrate
domain logic and infrastructure.
"""

from storefront.application.order_service import OrderService, get_order_service
from storefront.application.payment_service import PaymentService, get_payment_service
from storefront.application.refund_service import RefundService, get_refund_service
from storefront.application.shipping_service import ShippingService, get_shipping_service
from storefront.application.tracking_service import TrackingService, get_tracking_service
from storefront.application.webhook_service import WebhookService, get_webhook_service

__all__ = [
    "OrderService",
    "get_order_service",
    "PaymentService",
    "get_payment_service",
    "RefundService",
    "get_refund_service",
    "ShippingService",
    "get_shipping_service",
    "TrackingService",
    "get_tracking_service",
    "WebhookService",
    "get_webhook_service",
]
