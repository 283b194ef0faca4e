"""Tests for ShippingService."""

from unittest.mock import MagicMock

import pytest

from storefront.application.shipping_service import LOCAL_SHIPMENT_NOTE, ShippingService
from storefront.application.webhook_results import WebhookOutcome
from storefront.domain.exceptions import (
    ExternalProviderError,
    InvalidStateTransitionError,
    OrderNotFoundError,
    PreconditionFailed,
    ValidationError,
)
from storefront.domain.state_machines import OrderStatus
from storefront.domain.value_objects import CourierSelection, ShippingAddress, ShippingItem
from storefront.infrastructure.biteship_client import CancelOutcome

ITEMS = [ShippingItem(name="Sagu", value=50000, weight_grams=500, quantity=2)]


class TestCalculateRates:
    """Tests for rate calculation."""

    @pytest.mark.asyncio
    async def test_local_zone_gets_flat_rate(self, shipping_service: ShippingService, biteship: MagicMock) -> None:
        """Ternate to Ternate never calls Biteship."""
        quote = await shipping_service.calculate_rates("Kota Ternate", ITEMS)

        assert quote.is_local
        assert len(quote.options) == 1
        assert quote.options[0].price == 10000
        assert quote.options[0].is_local
        biteship.get_rates.assert_not_called()

    @pytest.mark.asyncio
    async def test_local_free_shipping_threshold(self, shipping_service: ShippingService) -> None:
        """Baskets at the threshold ship free locally."""
        items = [ShippingItem(name="Sagu", value=75000, weight_grams=500, quantity=2)]
        quote = await shipping_service.calculate_rates("Ternate", items)
        assert quote.options[0].price == 0

    @pytest.mark.asyncio
    async def test_local_origin_only_is_not_local(
        self, shipping_service: ShippingService, biteship: MagicMock
    ) -> None:
        """Both ends must be in the local zone."""
        quote = await shipping_service.calculate_rates("Jakarta", ITEMS, origin_city="Ternate")
        assert not quote.is_local
        biteship.get_rates.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_live_rates_sorted_and_filtered(
        self, shipping_service: ShippingService, biteship: MagicMock
    ) -> None:
        """Unavailable services are dropped and options sorted by price."""
        quote = await shipping_service.calculate_rates("Jakarta", ITEMS, destination_postal_code="12730")

        assert [o.courier for o in quote.options] == ["lion", "jne"]
        assert [o.price for o in quote.options] == [27000, 32000]
        assert not quote.fallback
        assert quote.total_weight_kg == 1.0

        payload = biteship.get_rates.call_args.args[0]
        assert payload["destination_area_id"] == "IDNP6IDNC148IDND845"
        assert payload["destination_postal_code"] == 12730
        assert payload["couriers"] == "lion,jne,jnt,sicepat,anteraja"
        assert payload["items"] == [{"name": "Sagu", "value": 50000, "weight": 500, "quantity": 2}]

    @pytest.mark.asyncio
    async def test_unconfigured_returns_fallback(
        self, shipping_service: ShippingService, biteship: MagicMock
    ) -> None:
        biteship.is_configured = False

        quote = await shipping_service.calculate_rates("Jakarta", ITEMS)

        assert quote.fallback
        assert [o.courier for o in quote.options] == ["lion_parcel", "jne"]
        assert quote.warning == "Shipping API not configured. Using estimated rates."

    @pytest.mark.asyncio
    async def test_provider_error_returns_single_fallback(
        self, shipping_service: ShippingService, biteship: MagicMock
    ) -> None:
        biteship.get_rates.side_effect = ExternalProviderError("biteship", "timeout")

        quote = await shipping_service.calculate_rates("Jakarta", ITEMS)

        assert quote.fallback
        assert len(quote.options) == 1
        assert quote.options[0].price == 25000
        assert quote.warning == "Shipping API error. Using estimated rates."

    @pytest.mark.asyncio
    async def test_unknown_destination_raises(self, shipping_service: ShippingService, biteship: MagicMock) -> None:
        """Without an area or postal code there is nothing to quote."""
        biteship.find_area_id.return_value = None

        with pytest.raises(ValidationError, match="Unable to find destination location"):
            await shipping_service.calculate_rates("Atlantis", ITEMS)

    @pytest.mark.asyncio
    async def test_explicit_weight_wins(self, shipping_service: ShippingService) -> None:
        quote = await shipping_service.calculate_rates("Jakarta", ITEMS, total_weight_kg=3.5)
        assert quote.total_weight_kg == 3.5


class TestCreateShipment:
    """Tests for shipment booking."""

    @pytest.mark.asyncio
    async def test_books_paid_order(self, shipping_service: ShippingService, biteship: MagicMock, stored_order) -> None:
        """Booking stores the shipment id and waybill."""
        order = await stored_order(status=OrderStatus.PAID)

        result = await shipping_service.create_shipment(order.id)

        assert result.created
        assert result.shipment_id == "bs-ord-001"
        assert result.tracking_number == "JNE0001"
        payload = biteship.create_order.call_args.args[0]
        assert payload["reference_id"] == order.id
        assert payload["courier_company"] == "jne"
        assert payload["courier_type"] == "reg"
        assert payload["destination_postal_code"] == 12730
        assert payload["items"][0]["weight"] == 500
        assert payload["origin_coordinate"] == {"latitude": 0.7893, "longitude": 127.3774}

    @pytest.mark.asyncio
    async def test_second_call_does_not_rebook(
        self, shipping_service: ShippingService, biteship: MagicMock, stored_order
    ) -> None:
        order = await stored_order(status=OrderStatus.PAID)
        await shipping_service.create_shipment(order.id)

        result = await shipping_service.create_shipment(order.id)

        assert not result.created
        assert result.message == "Shipment already created"
        biteship.create_order.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unpaid_order_rejected(self, shipping_service: ShippingService, stored_order) -> None:
        order = await stored_order()
        with pytest.raises(PreconditionFailed):
            await shipping_service.create_shipment(order.id)

    @pytest.mark.asyncio
    async def test_missing_courier_rejected(self, shipping_service: ShippingService, stored_order) -> None:
        order = await stored_order(status=OrderStatus.PAID, courier=CourierSelection())
        with pytest.raises(ValidationError):
            await shipping_service.create_shipment(order.id)

    @pytest.mark.asyncio
    async def test_local_order_marked_for_manual_delivery(
        self, shipping_service: ShippingService, biteship: MagicMock, stored_order
    ) -> None:
        """Local orders are noted once and never booked."""
        order = await stored_order(
            status=OrderStatus.PAID,
            is_local_delivery=True,
            address=ShippingAddress(address="Jl. Pahlawan", city="Ternate", postal_code="97711"),
        )

        await shipping_service.create_shipment(order.id)
        result = await shipping_service.create_shipment(order.id)

        assert result.is_local
        assert not result.created
        stored = await shipping_service.order_service.get_order(order.id)
        assert stored.shipping_notes == LOCAL_SHIPMENT_NOTE
        biteship.create_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_provider_error_propagates(
        self, shipping_service: ShippingService, biteship: MagicMock, stored_order
    ) -> None:
        biteship.create_order.side_effect = ExternalProviderError("biteship", "invalid courier", 400)
        order = await stored_order(status=OrderStatus.PAID)

        with pytest.raises(ExternalProviderError):
            await shipping_service.create_shipment(order.id)

        stored = await shipping_service.order_service.get_order(order.id)
        assert stored.shipment_id is None


class TestCancelShipment:
    """Tests for cancellation."""

    @pytest.mark.asyncio
    async def test_cancels_booked_shipment(
        self, shipping_service: ShippingService, biteship: MagicMock, stored_order
    ) -> None:
        order = await stored_order(status=OrderStatus.PROCESSING, shipment_id="bs-1")

        result = await shipping_service.cancel_shipment(order.id, reason="Out of stock")

        assert result.status == OrderStatus.CANCELLED
        assert result.provider_outcome == CancelOutcome.CANCELLED
        biteship.cancel_order.assert_awaited_once_with("bs-1", "Out of stock")
        stored = await shipping_service.order_service.get_order(order.id)
        assert stored.cancelled_reason == "Out of stock"
        assert "Cancelled via Biteship: Out of stock" in stored.shipping_notes

    @pytest.mark.asyncio
    async def test_already_gone_counts_as_success(
        self, shipping_service: ShippingService, biteship: MagicMock, stored_order
    ) -> None:
        biteship.cancel_order.return_value = CancelOutcome.ALREADY_GONE
        order = await stored_order(status=OrderStatus.PAID, shipment_id="bs-1")

        result = await shipping_service.cancel_shipment(order.id, reason="dup")

        assert result.status == OrderStatus.CANCELLED
        assert result.provider_outcome == CancelOutcome.ALREADY_GONE

    @pytest.mark.asyncio
    async def test_provider_failure_leaves_order(
        self, shipping_service: ShippingService, biteship: MagicMock, stored_order
    ) -> None:
        biteship.cancel_order.side_effect = ExternalProviderError("biteship", "server error", 500)
        order = await stored_order(status=OrderStatus.PAID, shipment_id="bs-1")

        with pytest.raises(ExternalProviderError):
            await shipping_service.cancel_shipment(order.id, reason="dup")

        stored = await shipping_service.order_service.get_order(order.id)
        assert stored.status == OrderStatus.PAID

    @pytest.mark.asyncio
    async def test_delivered_cannot_be_cancelled(
        self, shipping_service: ShippingService, biteship: MagicMock, stored_order
    ) -> None:
        order = await stored_order(status=OrderStatus.DELIVERED, shipment_id="bs-1")

        with pytest.raises(InvalidStateTransitionError):
            await shipping_service.cancel_shipment(order.id, reason="late")

        biteship.cancel_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_without_shipment_skips_provider(
        self, shipping_service: ShippingService, biteship: MagicMock, stored_order
    ) -> None:
        order = await stored_order()
        result = await shipping_service.cancel_shipment(order.id, reason="changed mind")
        assert result.provider_outcome is None
        biteship.cancel_order.assert_not_called()


class TestTrack:
    """Tests for tracking."""

    @pytest.mark.asyncio
    async def test_track_by_order(self, shipping_service: ShippingService, biteship: MagicMock, stored_order) -> None:
        order = await stored_order(status=OrderStatus.SHIPPED)
        await shipping_service.order_service.update(order.id, lambda o: o.assign_tracking_number("JNE0001"))

        result = await shipping_service.track(order_id=order.id)

        assert result.status == "dropping_off"
        assert len(result.history) == 2
        assert result.history[0].status == "picked"
        assert result.current_location == "Jakarta Selatan Hub"
        assert result.destination == {"contact_name": "Rina", "address": "Jl. Kemang Raya 10"}
        assert result.estimated_delivery == "2026-10-21"
        biteship.get_tracking.assert_awaited_once_with("JNE0001")

    @pytest.mark.asyncio
    async def test_provider_failure_degrades(
        self, shipping_service: ShippingService, biteship: MagicMock, stored_order
    ) -> None:
        """Tracking errors fall back to the order's own status."""
        biteship.get_tracking.side_effect = ExternalProviderError("biteship", "not found", 404)
        order = await stored_order(status=OrderStatus.SHIPPED)
        await shipping_service.order_service.update(order.id, lambda o: o.assign_tracking_number("JNE0001"))

        result = await shipping_service.track(order_id=order.id)

        assert result.degraded
        assert result.status == "SHIPPED"
        assert result.message == "Tracking information not available yet"

    @pytest.mark.asyncio
    async def test_local_order_synthetic_history(
        self, shipping_service: ShippingService, biteship: MagicMock, stored_order
    ) -> None:
        order = await stored_order(status=OrderStatus.PAID, is_local_delivery=True)

        result = await shipping_service.track(order_id=order.id)

        assert result.is_local
        assert result.history[0].status == "confirmed"
        assert result.history[0].note == "Order received"
        biteship.get_tracking.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_tracking_number(self, shipping_service: ShippingService, stored_order) -> None:
        order = await stored_order(status=OrderStatus.PAID)
        with pytest.raises(ValidationError):
            await shipping_service.track(order_id=order.id)

    @pytest.mark.asyncio
    async def test_unknown_order(self, shipping_service: ShippingService) -> None:
        with pytest.raises(OrderNotFoundError):
            await shipping_service.track(order_id="missing")


class TestApplyShipmentEvent:
    """Tests for Biteship webhook reconciliation."""

    @pytest.mark.asyncio
    async def test_status_moves_order(self, shipping_service: ShippingService, stored_order) -> None:
        order = await stored_order(status=OrderStatus.PAID, shipment_id="bs-1")

        result = await shipping_service.apply_shipment_event(
            {"event": "order.status", "order_id": "bs-1", "status": "picked", "courier": {"waybill_id": "WB-7"}}
        )

        assert result.outcome == WebhookOutcome.PROCESSED
        stored = await shipping_service.order_service.get_order(order.id)
        assert stored.status == OrderStatus.SHIPPED
        assert stored.shipped_at is not None
        assert stored.shipment_status == "picked"
        assert stored.tracking_number == "WB-7"
        assert "Status: picked" in stored.shipping_notes

    @pytest.mark.asyncio
    async def test_redelivery_is_noop(self, shipping_service: ShippingService, stored_order) -> None:
        """The same status twice leaves one note and one transition."""
        order = await stored_order(status=OrderStatus.PAID, shipment_id="bs-1")
        payload = {"event": "order.status", "order_id": "bs-1", "status": "delivered"}
        await shipping_service.apply_shipment_event(payload)
        first = await shipping_service.order_service.get_order(order.id)

        result = await shipping_service.apply_shipment_event(payload)

        assert result.outcome == WebhookOutcome.IGNORED
        second = await shipping_service.order_service.get_order(order.id)
        assert second.version == first.version
        assert second.shipping_notes.count("Status: delivered") == 1

    @pytest.mark.asyncio
    async def test_backward_status_is_recorded_not_applied(
        self, shipping_service: ShippingService, stored_order
    ) -> None:
        """A late 'picked' after delivery keeps the order DELIVERED."""
        order = await stored_order(status=OrderStatus.DELIVERED, shipment_id="bs-1")

        await shipping_service.apply_shipment_event({"event": "order.status", "order_id": "bs-1", "status": "picked"})

        stored = await shipping_service.order_service.get_order(order.id)
        assert stored.status == OrderStatus.DELIVERED
        assert stored.shipment_status == "picked"

    @pytest.mark.asyncio
    async def test_unmapped_status_only_recorded(self, shipping_service: ShippingService, stored_order) -> None:
        order = await stored_order(status=OrderStatus.SHIPPED, shipment_id="bs-1")

        await shipping_service.apply_shipment_event({"event": "order.status", "order_id": "bs-1", "status": "on_hold"})

        stored = await shipping_service.order_service.get_order(order.id)
        assert stored.status == OrderStatus.SHIPPED
        assert stored.shipment_status == "on_hold"

    @pytest.mark.asyncio
    async def test_waybill_does_not_overwrite(self, shipping_service: ShippingService, stored_order) -> None:
        """Operator-set tracking numbers survive waybill events."""
        order = await stored_order(status=OrderStatus.PAID, shipment_id="bs-1")
        await shipping_service.order_service.set_tracking_number(order.id, "MANUAL", actor="admin")

        result = await shipping_service.apply_shipment_event(
            {"event": "order.waybill_id", "order_id": "bs-1", "courier_waybill_id": "AUTO"}
        )

        assert result.outcome == WebhookOutcome.IGNORED
        stored = await shipping_service.order_service.get_order(order.id)
        assert stored.tracking_number == "MANUAL"

    @pytest.mark.asyncio
    async def test_waybill_assigned(self, shipping_service: ShippingService, stored_order) -> None:
        order = await stored_order(status=OrderStatus.PAID, shipment_id="bs-1")

        await shipping_service.apply_shipment_event(
            {"event": "order.waybill_id", "order_id": "bs-1", "courier_waybill_id": "WB-9"}
        )

        stored = await shipping_service.order_service.get_order(order.id)
        assert stored.tracking_number == "WB-9"
        assert "Tracking assigned: WB-9" in stored.shipping_notes

    @pytest.mark.asyncio
    async def test_price_event_acknowledged(self, shipping_service: ShippingService, stored_order) -> None:
        await stored_order(status=OrderStatus.PAID, shipment_id="bs-1")
        result = await shipping_service.apply_shipment_event({"event": "order.price", "order_id": "bs-1", "price": 1})
        assert result.outcome == WebhookOutcome.IGNORED
        assert result.success

    @pytest.mark.asyncio
    async def test_unknown_shipment(self, shipping_service: ShippingService) -> None:
        result = await shipping_service.apply_shipment_event({"event": "order.status", "order_id": "nope"})
        assert not result.success
        assert result.message == "Order not found"
