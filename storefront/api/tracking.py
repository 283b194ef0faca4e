"""Guest order tracking endpoints.

- POST /tracking/verify - exchange order id and email for an access token
- GET /tracking/order - read the order with ``x-tracking-token``
"""

from typing import Annotated

from fastapi import APIRouter, Header

from storefront.api.dependencies import TrackingServiceDep
from storefront.api.schemas import (
    ErrorResponse,
    GuestOrderItemSchema,
    GuestOrderResponse,
    GuestOrderSchema,
    TrackingVerifyRequest,
    TrackingVerifyResponse,
)
from storefront.domain.entities import Order

router = APIRouter(prefix="/tracking", tags=["Tracking"])


def order_to_guest_view(order: Order) -> GuestOrderSchema:
    """Convert an order to the fields a guest may see."""
    return GuestOrderSchema(
        id=order.id,
        status=order.status.value,
        total_amount=order.total_amount,
        shipping_cost=order.shipping_cost,
        customer_name=order.customer.name,
        customer_email=order.customer.email,
        customer_phone=order.customer.phone,
        shipping_address=order.address.address,
        city=order.address.city,
        postal_code=order.address.postal_code,
        courier_name=order.courier.courier_name,
        service_name=order.courier.service_name,
        tracking_number=order.tracking_number,
        is_local_delivery=order.is_local_delivery,
        created_at=order.created_at,
        updated_at=order.updated_at,
        items=[
            GuestOrderItemSchema(
                id=item.id,
                product_name=item.product_name,
                quantity=item.quantity,
                price=item.unit_price,
            )
            for item in order.items
        ],
    )


@router.post(
    "/verify",
    response_model=TrackingVerifyResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Verify order ownership",
)
async def verify(request: TrackingVerifyRequest, service: TrackingServiceDep) -> TrackingVerifyResponse:
    """Mint a short-lived tracking token for a guest."""
    access = await service.verify(email=request.email, order_id=request.order_id)
    return TrackingVerifyResponse(access_token=access.access_token, expires_at=access.expires_at)


@router.get(
    "/order",
    response_model=GuestOrderResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Get a tracked order",
)
async def get_tracked_order(
    service: TrackingServiceDep,
    x_tracking_token: Annotated[str | None, Header()] = None,
) -> GuestOrderResponse:
    """Read an order with a guest tracking token."""
    order = await service.get_order(x_tracking_token)
    return GuestOrderResponse(order=order_to_guest_view(order))
