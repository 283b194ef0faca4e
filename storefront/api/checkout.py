"""Checkout API endpoint.

- POST /checkout - place an order and create its payment invoice
"""

from fastapi import APIRouter, status

from storefront.api.dependencies import PaymentServiceDep
from storefront.api.schemas import CheckoutRequest, CheckoutResponse, ErrorResponse
from storefront.application.payment_service import CheckoutCommand
from storefront.domain.entities import OrderItem
from storefront.domain.value_objects import CourierSelection, CustomerInfo, ShippingAddress

router = APIRouter(prefix="/checkout", tags=["Checkout"])


def request_to_command(request: CheckoutRequest) -> CheckoutCommand:
    """Convert a checkout request into a service command.

    Raises:
        ValidationError: If customer or item data is invalid.
    """
    return CheckoutCommand(
        amount=request.amount,
        customer=CustomerInfo(
            name=request.customer_name,
            email=request.customer_email,
            phone=request.customer_phone,
        ),
        items=[
            OrderItem(
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.price,
                weight_grams=item.weight,
            )
            for item in request.items
        ],
        address=ShippingAddress(
            address=request.shipping_address,
            city=request.city,
            postal_code=request.postal_code,
        ),
        shipping_cost=request.shipping_cost,
        courier=CourierSelection(
            courier_code=request.courier_code,
            courier_name=request.courier_name,
            service_code=request.service_code,
            service_name=request.service_name,
            estimated_days=request.estimated_days,
        ),
        is_local_delivery=request.is_local_delivery,
        total_weight_kg=request.total_weight,
        user_id=request.user_id,
        success_redirect_url=request.success_redirect_url,
        failure_redirect_url=request.failure_redirect_url,
    )


@router.post(
    "",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Place an order",
    description="Create a PENDING order and a Xendit invoice to pay it.",
)
async def create_checkout(request: CheckoutRequest, service: PaymentServiceDep) -> CheckoutResponse:
    """Place an order.

    Args:
        request: Customer, items, amount and courier selection.
        service: Payment service.

    Returns:
        Order id and the invoice to redirect the customer to.
    """
    result = await service.checkout(request_to_command(request))
    return CheckoutResponse(
        order_id=result.order_id,
        invoice_id=result.invoice_id,
        invoice_url=result.invoice_url,
    )
