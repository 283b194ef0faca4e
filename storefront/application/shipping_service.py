"""Shipping application service.

Calculates courier options, books and cancels shipments with Biteship,
tracks parcels and reconciles Biteship status webhooks into order state.

Orders in the local delivery zone never touch Biteship: they are quoted
a flat (or free) rate, booked manually by the store, and tracked from
the order's own fields.
"""

from dataclasses import dataclass, field
from typing import Any

import structlog

from storefront.application.order_service import OrderService, get_order_service
from storefront.application.webhook_results import WebhookResult
from storefront.domain.base import utcnow
from storefront.domain.entities import Order
from storefront.domain.exceptions import ExternalProviderError, PreconditionFailed, ValidationError
from storefront.domain.mappings import order_status_for_shipment
from storefront.domain.state_machines import OrderStatus, validate_order_transition
from storefront.domain.value_objects import ShippingItem, ShippingOption, TrackingEvent
from storefront.infrastructure.biteship_client import (
    BiteshipClient,
    CancelOutcome,
    get_biteship_client,
)
from storefront.infrastructure.config import Settings, get_settings

logger = structlog.get_logger()

LOCAL_COURIER_CODE = "local_delivery"
LOCAL_SHIPMENT_NOTE = "Local delivery - tracking number will be added manually"
FALLBACK_DESCRIPTION = "Estimated rate - to be confirmed by the store"

_FALLBACK_LION = ShippingOption(
    courier="lion_parcel",
    courier_name="Lion Parcel",
    service="reg",
    service_name="Regular Service",
    price=25000,
    estimated_days="3-5",
    description=FALLBACK_DESCRIPTION,
)
_FALLBACK_JNE = ShippingOption(
    courier="jne",
    courier_name="JNE",
    service="reg",
    service_name="Regular",
    price=30000,
    estimated_days="2-4",
    description=FALLBACK_DESCRIPTION,
)


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class RateQuote:
    """Courier options for a destination.

    Attributes:
        options: Options sorted by price, cheapest first.
        is_local: True if the destination is in the local delivery zone.
        total_weight_kg: Parcel weight used for the quote.
        fallback: True if the options are estimates, not live rates.
        warning: Explanation shown alongside fallback options.
    """

    options: list[ShippingOption]
    is_local: bool
    total_weight_kg: float
    fallback: bool = False
    warning: str | None = None


@dataclass
class ShipmentResult:
    """Outcome of booking a shipment."""

    order_id: str
    is_local: bool
    shipment_id: str | None
    tracking_number: str | None
    created: bool
    message: str


@dataclass
class CancelResult:
    """Outcome of cancelling a shipment or order."""

    order_id: str
    status: OrderStatus
    provider_outcome: CancelOutcome | None
    message: str


@dataclass
class TrackingResult:
    """Caller-facing tracking view.

    Attributes:
        tracking_number: Waybill number, if any.
        status: Courier status, or the order status when degraded or local.
        is_local: True for local deliveries.
        courier: Courier display name.
        service: Service display name.
        history: Tracking events, oldest first as reported.
        link: Courier tracking page.
        current_location: Last reported parcel location.
        destination: Delivery destination as reported by the courier.
        estimated_delivery: Courier delivery estimate.
        message: Human-readable summary.
        degraded: True if built from local fields after a provider failure.
    """

    tracking_number: str | None
    status: str
    is_local: bool = False
    courier: str | None = None
    service: str | None = None
    history: list[TrackingEvent] = field(default_factory=list)
    link: str | None = None
    current_location: dict[str, Any] | str | None = None
    destination: dict[str, Any] | str | None = None
    estimated_delivery: str | None = None
    message: str = ""
    degraded: bool = False


def _postal_code(value: str | None) -> int:
    try:
        return int(value or 0)
    except ValueError:
        return 0


# ============================================================================
# Shipping Service
# ============================================================================


class ShippingService:
    """Application service for shipment lifecycle operations."""

    def __init__(
        self,
        order_service: OrderService | None = None,
        biteship: BiteshipClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize service.

        Args:
            order_service: Order loading/writing service.
            biteship: Biteship API client.
            settings: Application settings.
        """
        self.order_service = order_service or get_order_service()
        self.biteship = biteship or get_biteship_client()
        self.settings = settings or get_settings()

    # -------------------------------------------------------------------------
    # Rates
    # -------------------------------------------------------------------------

    def is_local_zone(self, city: str | None) -> bool:
        """Check if a city name falls in the local delivery zone."""
        if not city:
            return False
        city = city.lower()
        return any(keyword.lower() in city for keyword in self.settings.local_delivery_keywords)

    def _weight_kg(self, items: list[ShippingItem], total_weight_kg: float | None) -> float:
        if total_weight_kg and total_weight_kg > 0:
            return total_weight_kg
        grams = sum(item.total_weight_grams for item in items)
        return grams / 1000 if grams > 0 else 1.0

    def local_option(self, order_value: int) -> ShippingOption:
        """Build the local delivery option for a basket value."""
        free = order_value >= self.settings.free_shipping_threshold
        return ShippingOption(
            courier=LOCAL_COURIER_CODE,
            courier_name=f"Local Delivery {self.settings.store_city}",
            service="same_day",
            service_name="Same Day / Next Day",
            price=0 if free else self.settings.local_delivery_rate,
            estimated_days="0-1",
            description=(
                f"Free shipping for orders of at least {self.settings.free_shipping_threshold} IDR"
                if free
                else f"Local delivery within {self.settings.store_city}"
            ),
            is_local=True,
        )

    async def calculate_rates(
        self,
        destination_city: str,
        items: list[ShippingItem],
        destination_postal_code: str | None = None,
        origin_city: str | None = None,
        total_weight_kg: float | None = None,
    ) -> RateQuote:
        """Quote courier options for a parcel.

        Args:
            destination_city: Customer city.
            items: Parcel contents.
            destination_postal_code: Customer postal code.
            origin_city: Shipping origin, defaults to the store city.
            total_weight_kg: Explicit parcel weight; computed from items if omitted.

        Returns:
            RateQuote with options sorted by price.

        Raises:
            ValidationError: If the destination cannot be resolved.
        """
        weight_kg = self._weight_kg(items, total_weight_kg)
        order_value = sum(item.total_value for item in items)
        origin_city = origin_city or self.settings.store_city

        if self.is_local_zone(origin_city) and self.is_local_zone(destination_city):
            logger.info("Local delivery quote", destination_city=destination_city, order_value=order_value)
            return RateQuote(options=[self.local_option(order_value)], is_local=True, total_weight_kg=weight_kg)

        if not self.biteship.is_configured:
            logger.warning("Biteship API key not configured, returning fallback rates")
            return RateQuote(
                options=[_FALLBACK_LION, _FALLBACK_JNE],
                is_local=False,
                total_weight_kg=weight_kg,
                fallback=True,
                warning="Shipping API not configured. Using estimated rates.",
            )

        area_id = await self._find_area_id(destination_city)
        if not area_id and not destination_postal_code:
            raise ValidationError(
                "Unable to find destination location",
                details={"destination_city": destination_city},
            )

        provider_items = [item.to_provider_item() for item in items] or [
            {
                "name": "Package",
                "value": order_value or 100000,
                "weight": int(weight_kg * 1000),
                "quantity": 1,
            }
        ]
        payload: dict[str, Any] = {
            "couriers": ",".join(self.settings.priority_couriers),
            "items": provider_items,
        }
        if self.settings.biteship_origin_area_id:
            payload["origin_area_id"] = self.settings.biteship_origin_area_id
        if area_id:
            payload["destination_area_id"] = area_id
        if destination_postal_code:
            payload["destination_postal_code"] = _postal_code(destination_postal_code)

        try:
            rates = await self.biteship.get_rates(payload)
        except ExternalProviderError as e:
            logger.error("Biteship rates failed, returning fallback", error=e.provider_message)
            return RateQuote(
                options=[_FALLBACK_LION],
                is_local=False,
                total_weight_kg=weight_kg,
                fallback=True,
                warning="Shipping API error. Using estimated rates.",
            )

        options = [
            ShippingOption(
                courier=rate.courier_code,
                courier_name=rate.courier_name,
                service=rate.service_code,
                service_name=rate.service_name,
                price=rate.price,
                estimated_days=rate.duration or "2-4",
                description=rate.description,
            )
            for rate in rates
            if rate.available
        ]
        options.sort(key=lambda option: option.price)
        logger.info("Courier rates calculated", destination_city=destination_city, option_count=len(options))
        return RateQuote(options=options, is_local=False, total_weight_kg=weight_kg)

    async def _find_area_id(self, city: str | None) -> str | None:
        if not city:
            return None
        try:
            return await self.biteship.find_area_id(city)
        except ExternalProviderError as e:
            logger.warning("Biteship area lookup failed", city=city, error=e.provider_message)
            return None

    # -------------------------------------------------------------------------
    # Shipment Booking
    # -------------------------------------------------------------------------

    def build_shipment_payload(self, order: Order, destination_area_id: str | None) -> dict[str, Any]:
        """Render an order as a Biteship order request."""
        s = self.settings
        payload: dict[str, Any] = {
            "shipper_contact_name": s.store_name,
            "shipper_contact_phone": s.store_phone,
            "shipper_contact_email": s.store_email,
            "shipper_organization": s.store_name,
            "origin_contact_name": s.store_name,
            "origin_contact_phone": s.store_phone,
            "origin_address": s.store_address,
            "origin_note": s.store_name,
            "origin_postal_code": _postal_code(s.store_postal_code),
            "destination_contact_name": order.customer.name,
            "destination_contact_phone": order.customer.phone,
            "destination_contact_email": order.customer.email,
            "destination_address": order.address.address,
            "destination_postal_code": _postal_code(order.address.postal_code),
            "destination_note": order.shipping_notes or "",
            "courier_company": order.courier.courier_code,
            "courier_type": order.courier.service_code,
            "delivery_type": "now",
            "order_note": f"Order #{order.id}",
            "reference_id": order.id,
            "items": [
                ShippingItem(
                    name=item.product_name,
                    value=item.unit_price,
                    weight_grams=item.weight_grams or s.default_item_weight_grams,
                    quantity=item.quantity,
                ).to_provider_item()
                for item in order.items
            ],
        }
        if s.biteship_origin_area_id:
            payload["origin_area_id"] = s.biteship_origin_area_id
        else:
            payload["origin_coordinate"] = {"latitude": s.store_latitude, "longitude": s.store_longitude}
        if destination_area_id:
            payload["destination_area_id"] = destination_area_id
        return payload

    async def create_shipment(self, order_id: str) -> ShipmentResult:
        """Book the shipment for a paid order.

        Local deliveries are only marked for manual handling. An order that
        already has a Biteship shipment returns it without a second booking.

        Raises:
            OrderNotFoundError: If the order does not exist.
            PreconditionFailed: If the order has not been paid.
            ValidationError: If the order has no courier selection.
            ExternalProviderError: If Biteship rejects the booking.
        """
        order = await self.order_service.get_order(order_id)

        if order.is_local_delivery:

            def mark_local(o: Order) -> None:
                if not o.shipping_notes or LOCAL_SHIPMENT_NOTE not in o.shipping_notes:
                    o.append_shipping_note(LOCAL_SHIPMENT_NOTE)

            await self.order_service.update(order_id, mark_local)
            logger.info("Order marked for local delivery", order_id=order_id)
            return ShipmentResult(
                order_id=order_id,
                is_local=True,
                shipment_id=None,
                tracking_number=order.tracking_number,
                created=False,
                message="Order marked for local delivery. Tracking number will be added manually.",
            )

        if order.shipment_id:
            return ShipmentResult(
                order_id=order_id,
                is_local=False,
                shipment_id=order.shipment_id,
                tracking_number=order.tracking_number,
                created=False,
                message="Shipment already created",
            )
        if not order.status.is_settled():
            raise PreconditionFailed(
                "Shipments can only be created for paid orders",
                details={"order_id": order_id, "status": order.status.value},
            )
        if not order.courier.is_bookable:
            raise ValidationError("Order has no courier selection", details={"order_id": order_id})

        area_id = await self._find_area_id(order.address.city)
        booking = await self.biteship.create_order(self.build_shipment_payload(order, area_id))
        if not booking.waybill_id:
            logger.warning("Biteship returned no waybill", order_id=order_id, shipment_id=booking.id)

        def attach(o: Order) -> bool:
            attached = o.attach_shipment(booking.id)
            if attached:
                o.assign_tracking_number(booking.waybill_id, actor="biteship")
                o.append_shipping_note(f"Shipment created via Biteship: {booking.id}")
            return attached

        mutation = await self.order_service.update(order_id, attach)
        if not mutation.result:
            logger.warning(
                "Order already had a shipment, keeping the stored one",
                order_id=order_id,
                stored_shipment_id=mutation.entity.shipment_id,
                new_shipment_id=booking.id,
            )
        else:
            logger.info("Shipment created", order_id=order_id, shipment_id=booking.id)
        return ShipmentResult(
            order_id=order_id,
            is_local=False,
            shipment_id=mutation.entity.shipment_id,
            tracking_number=mutation.entity.tracking_number,
            created=bool(mutation.result),
            message="Shipment created successfully",
        )

    async def cancel_shipment(self, order_id: str, reason: str, actor: str = "admin") -> CancelResult:
        """Cancel an order and, if one was booked, its Biteship shipment.

        Biteship answering "not found" or "already cancelled" counts as
        success. Any other provider error leaves the order unchanged.

        Raises:
            OrderNotFoundError: If the order does not exist.
            InvalidStateTransitionError: If the order can no longer be cancelled.
            ExternalProviderError: If Biteship fails the cancellation.
        """
        order = await self.order_service.get_order(order_id)
        if order.status == OrderStatus.CANCELLED:
            return CancelResult(order_id, order.status, None, "Order already cancelled")
        validate_order_transition(order.id, order.status, OrderStatus.CANCELLED)

        outcome: CancelOutcome | None = None
        if order.shipment_id:
            outcome = await self.biteship.cancel_order(order.shipment_id, reason)
            note = f"Cancelled via Biteship: {reason}"
        else:
            note = f"Cancelled: {reason}"

        def cancel(o: Order) -> bool:
            changed = o.transition_to(OrderStatus.CANCELLED, actor=actor, reason=reason)
            if changed:
                o.append_shipping_note(note)
            return changed

        mutation = await self.order_service.update(order_id, cancel)
        logger.info(
            "Order cancelled",
            order_id=order_id,
            shipment_id=order.shipment_id,
            provider_outcome=outcome.value if outcome else None,
        )
        return CancelResult(order_id, mutation.entity.status, outcome, note)

    # -------------------------------------------------------------------------
    # Tracking
    # -------------------------------------------------------------------------

    async def track(self, order_id: str | None = None, tracking_number: str | None = None) -> TrackingResult:
        """Track a parcel by order or waybill number.

        Provider failures degrade to a response built from local fields.

        Raises:
            ValidationError: If no tracking number is given or stored.
            OrderNotFoundError: If ``order_id`` is unknown.
        """
        order = await self.order_service.get_order(order_id) if order_id else None
        number = (order.tracking_number if order else None) or tracking_number

        if order is not None and order.is_local_delivery:
            return TrackingResult(
                tracking_number=number,
                status=order.status.value,
                is_local=True,
                courier=order.courier.courier_name,
                service=order.courier.service_name,
                history=[
                    TrackingEvent(
                        status="confirmed",
                        note="Order received",
                        occurred_at=order.created_at.isoformat(),
                    )
                ],
                message="Local delivery, status is updated manually by the store",
            )

        if not number:
            raise ValidationError("No tracking number provided or found in order")

        try:
            tracking = await self.biteship.get_tracking(number)
        except ExternalProviderError as e:
            logger.warning(
                "Tracking lookup failed, returning local view",
                tracking_number=number,
                error=e.provider_message,
            )
            return TrackingResult(
                tracking_number=number,
                status=order.status.value if order else OrderStatus.PENDING.value,
                courier=order.courier.courier_name if order else None,
                service=order.courier.service_name if order else None,
                message="Tracking information not available yet",
                degraded=True,
            )

        return TrackingResult(
            tracking_number=number,
            status=tracking.status or (order.status.value if order else OrderStatus.PENDING.value),
            courier=tracking.courier_name or (order.courier.courier_name if order else None),
            service=tracking.service_name or (order.courier.service_name if order else None),
            history=[
                TrackingEvent(
                    status=entry.get("status", ""),
                    note=entry.get("note", ""),
                    occurred_at=entry.get("updated_at"),
                )
                for entry in tracking.history
            ],
            link=tracking.link,
            current_location=tracking.current_location,
            destination=tracking.destination,
            estimated_delivery=tracking.delivery_time,
            message="Tracking information retrieved successfully",
        )

    # -------------------------------------------------------------------------
    # Webhook
    # -------------------------------------------------------------------------

    async def apply_shipment_event(self, payload: dict[str, Any]) -> WebhookResult:
        """Reconcile a Biteship webhook into the matching order.

        Unknown shipments, unknown events and transitions the order state
        machine does not allow are acknowledged without changes.

        Raises:
            ConcurrentUpdateError: If the order kept changing underneath.
        """
        event = payload.get("event")
        shipment_id = payload.get("order_id")
        if not shipment_id:
            logger.warning("Biteship webhook without order_id", biteship_event=event)
            return WebhookResult.ignored("Missing order_id", success=False)

        order = await self.order_service.order_repo.get_by_shipment_id(shipment_id)
        if order is None:
            logger.warning("Order not found for Biteship shipment", shipment_id=shipment_id, biteship_event=event)
            return WebhookResult.ignored("Order not found", success=False)

        courier = payload.get("courier") or {}
        fallback_waybill = courier.get("waybill_id")

        if event == "order.status":
            raw_status = payload.get("status")
            mutate = self._status_mutation(raw_status, fallback_waybill, shipment_id)
        elif event == "order.waybill_id":
            waybill = payload.get("courier_waybill_id") or payload.get("waybill_id") or fallback_waybill
            mutate = self._waybill_mutation(waybill)
        elif event == "order.price":
            logger.info("Biteship price update received", order_id=order.id, price=payload.get("price"))
            return WebhookResult.ignored("Price update noted", order.id, order.status.value)
        else:
            logger.info("Unhandled Biteship event", order_id=order.id, biteship_event=event)
            return WebhookResult.ignored("Unhandled event", order.id, order.status.value)

        mutation = await self.order_service.update(order.id, mutate)
        if not mutation.changed:
            return WebhookResult.ignored(
                "Webhook received, no updates needed", order.id, mutation.entity.status.value
            )
        return WebhookResult.processed("Webhook processed successfully", order.id, mutation.entity.status.value)

    def _status_mutation(self, raw_status: str | None, fallback_waybill: str | None, shipment_id: str):
        target = order_status_for_shipment(raw_status)

        def apply(o: Order) -> None:
            now = utcnow()
            if raw_status:
                o.record_shipment_status(raw_status, now=now)
            if target is not None and target != o.status:
                if o.status.can_transition_to(target):
                    o.transition_to(target, actor="biteship_webhook", reason=f"Courier status: {raw_status}", now=now)
                else:
                    logger.info(
                        "Ignoring courier status for current order state",
                        order_id=o.id,
                        shipment_id=shipment_id,
                        provider_status=raw_status,
                        from_status=o.status.value,
                        to_status=target.value,
                    )
            elif target is None:
                logger.info("Courier status has no order mapping", order_id=o.id, provider_status=raw_status)
            o.assign_tracking_number(fallback_waybill, actor="biteship_webhook", now=now)

        return apply

    def _waybill_mutation(self, waybill: str | None):
        def apply(o: Order) -> None:
            now = utcnow()
            if o.assign_tracking_number(waybill, actor="biteship_webhook", now=now):
                o.append_shipping_note(f"[{now.isoformat()}] Tracking assigned: {waybill}", now=now)

        return apply


# ============================================================================
# Service Factory
# ============================================================================


def get_shipping_service() -> ShippingService:
    """Get shipping service instance."""
    return ShippingService()
