"""Admin order endpoints.

Provides endpoints for order fulfilment:
- GET /admin/orders - list orders (paginated)
- GET /admin/orders/{id} - order details, status history and notes
- POST /admin/orders/{id}/shipment - book the courier shipment
- POST /admin/orders/{id}/cancel - cancel the order and its shipment
- PUT /admin/orders/{id}/tracking-number - set a tracking number manually
"""

from fastapi import APIRouter, Query

from storefront.api.dependencies import OrderServiceDep, ShippingServiceDep
from storefront.api.schemas import (
    CancelResponse,
    ErrorResponse,
    OrderCancelRequest,
    OrderCourierSchema,
    OrderItemSchema,
    OrderNoteSchema,
    OrderResponse,
    OrdersListResponse,
    OrderStatusHistorySchema,
    OrderSummarySchema,
    ShipmentResponse,
    TrackingNumberRequest,
)
from storefront.application.order_service import OrderDetails
from storefront.domain.entities import Order
from storefront.domain.state_machines import OrderStatus

router = APIRouter(prefix="/admin/orders", tags=["Admin Orders"])


# ============================================================================
# Converters
# ============================================================================


def order_to_response(details: OrderDetails) -> OrderResponse:
    """Convert order details to OrderResponse."""
    order = details.order
    return OrderResponse(
        id=order.id,
        status=order.status.value,
        version=order.version,
        total_amount=order.total_amount,
        shipping_cost=order.shipping_cost,
        customer_name=order.customer.name,
        customer_email=order.customer.email,
        customer_phone=order.customer.phone,
        shipping_address=order.address.address,
        city=order.address.city,
        postal_code=order.address.postal_code,
        courier=OrderCourierSchema(
            courier_code=order.courier.courier_code,
            courier_name=order.courier.courier_name,
            service_code=order.courier.service_code,
            service_name=order.courier.service_name,
            estimated_days=order.courier.estimated_days,
        ),
        is_local_delivery=order.is_local_delivery,
        total_weight_kg=order.total_weight_kg,
        user_id=order.user_id,
        external_id=order.external_id,
        invoice_url=order.invoice_url,
        shipment_id=order.shipment_id,
        shipment_status=order.shipment_status,
        tracking_number=order.tracking_number,
        shipping_notes=order.shipping_notes,
        cancelled_reason=order.cancelled_reason,
        paid_at=order.paid_at,
        shipped_at=order.shipped_at,
        delivered_at=order.delivered_at,
        created_at=order.created_at,
        updated_at=order.updated_at,
        items=[
            OrderItemSchema(
                id=item.id,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=item.line_total,
                weight_grams=item.weight_grams,
            )
            for item in order.items
        ],
        status_history=[
            OrderStatusHistorySchema(
                from_status=entry.from_status,
                to_status=entry.to_status,
                actor=entry.actor,
                reason=entry.reason,
                created_at=entry.created_at,
            )
            for entry in details.history
        ],
        notes=[
            OrderNoteSchema(
                note=note.note,
                author=note.author,
                is_internal=note.is_internal,
                created_at=note.created_at,
            )
            for note in details.notes
        ],
    )


def order_to_summary(order: Order) -> OrderSummarySchema:
    """Convert Order to OrderSummarySchema."""
    return OrderSummarySchema(
        id=order.id,
        status=order.status.value,
        total_amount=order.total_amount,
        customer_name=order.customer.name,
        customer_email=order.customer.email,
        is_local_delivery=order.is_local_delivery,
        tracking_number=order.tracking_number,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.get(
    "",
    response_model=OrdersListResponse,
    responses={401: {"model": ErrorResponse}},
    summary="List orders",
    description="Get a paginated list of orders, newest first.",
)
async def list_orders(
    service: OrderServiceDep,
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int = Query(default=20, ge=1, le=100, description="Items per page"),
    status: OrderStatus | None = Query(default=None, description="Filter by status"),
) -> OrdersListResponse:
    """List orders with pagination and an optional status filter."""
    result = await service.list_orders(status=status, page=page, page_size=page_size)
    return OrdersListResponse(
        items=[order_to_summary(order) for order in result.orders],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        has_more=(result.page * result.page_size) < result.total,
    )


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Get order details",
)
async def get_order(order_id: str, service: OrderServiceDep) -> OrderResponse:
    """Get an order with its status history and internal notes.

    Args:
        order_id: Order identifier.
        service: Order service.

    Returns:
        Order details.
    """
    return order_to_response(await service.get_order_details(order_id))


@router.post(
    "/{order_id}/shipment",
    response_model=ShipmentResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Create shipment",
    description="Book the Biteship shipment for a paid order, or mark a local order for manual delivery.",
)
async def create_shipment(order_id: str, service: ShippingServiceDep) -> ShipmentResponse:
    """Book the shipment for an order.

    Repeating the call for an order that already has a shipment returns
    the stored shipment without booking another one.
    """
    result = await service.create_shipment(order_id)
    return ShipmentResponse(
        order_id=result.order_id,
        is_local=result.is_local,
        shipment_id=result.shipment_id,
        tracking_number=result.tracking_number,
        created=result.created,
        message=result.message,
    )


@router.post(
    "/{order_id}/cancel",
    response_model=CancelResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Cancel order",
    description="Cancel an order and its Biteship shipment. Delivered orders cannot be cancelled.",
)
async def cancel_order(
    order_id: str,
    request: OrderCancelRequest,
    service: ShippingServiceDep,
) -> CancelResponse:
    """Cancel an order.

    Args:
        order_id: Order identifier.
        request: Cancellation request with reason.
        service: Shipping service.

    Returns:
        Cancellation outcome.
    """
    result = await service.cancel_shipment(order_id, reason=request.reason, actor=request.cancelled_by)
    return CancelResponse(
        order_id=result.order_id,
        status=result.status.value,
        provider_outcome=result.provider_outcome.value if result.provider_outcome else None,
        message=result.message,
    )


@router.put(
    "/{order_id}/tracking-number",
    response_model=OrderResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Set tracking number",
    description="Set or replace a tracking number, typically for local deliveries.",
)
async def set_tracking_number(
    order_id: str,
    request: TrackingNumberRequest,
    service: OrderServiceDep,
) -> OrderResponse:
    """Set the tracking number of an order manually."""
    await service.set_tracking_number(order_id, request.tracking_number, actor=request.updated_by)
    return order_to_response(await service.get_order_details(order_id))
