"""Shipping API endpoints.

- POST /shipping/rates - courier options for a destination
- POST /shipping/track - tracking history by order or waybill
"""

from fastapi import APIRouter

from storefront.api.dependencies import ShippingServiceDep
from storefront.api.schemas import (
    ErrorResponse,
    ShippingOptionSchema,
    ShippingRatesRequest,
    ShippingRatesResponse,
    TrackingEventSchema,
    TrackShipmentRequest,
    TrackShipmentResponse,
)
from storefront.domain.value_objects import ShippingItem

router = APIRouter(prefix="/shipping", tags=["Shipping"])


@router.post(
    "/rates",
    response_model=ShippingRatesResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Calculate shipping rates",
)
async def calculate_rates(request: ShippingRatesRequest, service: ShippingServiceDep) -> ShippingRatesResponse:
    """Quote courier options.

    Local destinations get a single flat-rate option without calling
    Biteship. When Biteship is unavailable, estimated options are returned
    with ``fallback`` set.
    """
    quote = await service.calculate_rates(
        destination_city=request.destination_city,
        items=[
            ShippingItem(name=item.name, value=item.value, weight_grams=item.weight, quantity=item.quantity)
            for item in request.items
        ],
        destination_postal_code=request.destination_postal_code,
        origin_city=request.origin_city,
        total_weight_kg=request.total_weight,
    )
    return ShippingRatesResponse(
        is_local=quote.is_local,
        options=[
            ShippingOptionSchema(
                courier=option.courier,
                courier_name=option.courier_name,
                service=option.service,
                service_name=option.service_name,
                price=option.price,
                estimated_days=option.estimated_days,
                description=option.description,
                is_local=option.is_local,
            )
            for option in quote.options
        ],
        total_weight=quote.total_weight_kg,
        fallback=quote.fallback,
        warning=quote.warning,
    )


@router.post(
    "/track",
    response_model=TrackShipmentResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Track a shipment",
)
async def track_shipment(request: TrackShipmentRequest, service: ShippingServiceDep) -> TrackShipmentResponse:
    """Track a parcel by order id or tracking number."""
    result = await service.track(order_id=request.order_id, tracking_number=request.tracking_number)
    return TrackShipmentResponse(
        is_local=result.is_local,
        tracking_number=result.tracking_number,
        status=result.status,
        courier=result.courier,
        service=result.service,
        history=[
            TrackingEventSchema(status=event.status, note=event.note, updated_at=event.occurred_at)
            for event in result.history
        ],
        link=result.link,
        current_location=result.current_location,
        destination=result.destination,
        estimated_delivery=result.estimated_delivery,
        message=result.message,
        degraded=result.degraded,
    )
