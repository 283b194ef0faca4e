"""FastAPI dependency providers.

Services are assembled per request from the configured repositories,
provider clients and settings. Tests replace any of these through
``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends

from storefront.application.order_service import OrderService
from storefront.application.payment_service import PaymentService
from storefront.application.refund_service import RefundService
from storefront.application.shipping_service import ShippingService
from storefront.application.tracking_service import TrackingService
from storefront.application.webhook_security import CallbackTokenVerifier
from storefront.application.webhook_service import WebhookService
from storefront.infrastructure.biteship_client import BiteshipClient, get_biteship_client
from storefront.infrastructure.config import Settings, get_settings
from storefront.infrastructure.repositories import (
    OrderRepository,
    RefundRepository,
    get_order_repository,
    get_refund_repository,
)
from storefront.infrastructure.xendit_client import XenditClient, get_xendit_client

# ============================================================================
# Infrastructure
# ============================================================================


def get_app_settings() -> Settings:
    """Get application settings."""
    return get_settings()


def get_xendit() -> XenditClient:
    """Get the Xendit client."""
    return get_xendit_client()


def get_biteship() -> BiteshipClient:
    """Get the Biteship client."""
    return get_biteship_client()


def get_orders() -> OrderRepository:
    """Get the order repository."""
    return get_order_repository()


def get_refunds() -> RefundRepository:
    """Get the refund repository."""
    return get_refund_repository()


SettingsDep = Annotated[Settings, Depends(get_app_settings)]


# ============================================================================
# Services
# ============================================================================


def provide_order_service(order_repo: Annotated[OrderRepository, Depends(get_orders)]) -> OrderService:
    """Build the order service."""
    return OrderService(order_repo=order_repo)


def provide_shipping_service(
    order_service: Annotated[OrderService, Depends(provide_order_service)],
    biteship: Annotated[BiteshipClient, Depends(get_biteship)],
    settings: SettingsDep,
) -> ShippingService:
    """Build the shipping service."""
    return ShippingService(order_service=order_service, biteship=biteship, settings=settings)


def provide_payment_service(
    order_service: Annotated[OrderService, Depends(provide_order_service)],
    shipping_service: Annotated[ShippingService, Depends(provide_shipping_service)],
    xendit: Annotated[XenditClient, Depends(get_xendit)],
    settings: SettingsDep,
) -> PaymentService:
    """Build the payment service."""
    return PaymentService(
        order_service=order_service,
        xendit=xendit,
        shipping_service=shipping_service,
        settings=settings,
    )


def provide_refund_service(
    refund_repo: Annotated[RefundRepository, Depends(get_refunds)],
    order_service: Annotated[OrderService, Depends(provide_order_service)],
    xendit: Annotated[XenditClient, Depends(get_xendit)],
) -> RefundService:
    """Build the refund service."""
    return RefundService(refund_repo=refund_repo, order_service=order_service, xendit=xendit)


def provide_tracking_service(
    order_service: Annotated[OrderService, Depends(provide_order_service)],
    settings: SettingsDep,
) -> TrackingService:
    """Build the guest tracking service."""
    return TrackingService(order_service=order_service, settings=settings)


def provide_webhook_service(
    payment_service: Annotated[PaymentService, Depends(provide_payment_service)],
    shipping_service: Annotated[ShippingService, Depends(provide_shipping_service)],
    refund_service: Annotated[RefundService, Depends(provide_refund_service)],
    settings: SettingsDep,
) -> WebhookService:
    """Build the webhook service."""
    return WebhookService(
        payment_service=payment_service,
        shipping_service=shipping_service,
        refund_service=refund_service,
        verifier=CallbackTokenVerifier(
            settings.xendit_callback_token,
            settings.webhook_replay_tolerance_seconds,
        ),
        settings=settings,
    )


OrderServiceDep = Annotated[OrderService, Depends(provide_order_service)]
ShippingServiceDep = Annotated[ShippingService, Depends(provide_shipping_service)]
PaymentServiceDep = Annotated[PaymentService, Depends(provide_payment_service)]
RefundServiceDep = Annotated[RefundService, Depends(provide_refund_service)]
TrackingServiceDep = Annotated[TrackingService, Depends(provide_tracking_service)]
WebhookServiceDep = Annotated[WebhookService, Depends(provide_webhook_service)]
