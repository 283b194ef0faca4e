"""Tests for admin order endpoints."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from storefront.application.shipping_service import LOCAL_SHIPMENT_NOTE
from storefront.domain.exceptions import ExternalProviderError
from storefront.domain.state_machines import OrderStatus


class TestListOrders:
    """Tests for GET /admin/orders."""

    def test_requires_auth(self, client: TestClient) -> None:
        response = client.get("/admin/orders")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_pagination(self, auth_client: TestClient, stored_order) -> None:
        for _ in range(3):
            await stored_order()

        data = auth_client.get("/admin/orders", params={"page": 1, "page_size": 2}).json()

        assert data["total"] == 3
        assert len(data["items"]) == 2
        assert data["has_more"] is True

    @pytest.mark.asyncio
    async def test_status_filter(self, auth_client: TestClient, stored_order) -> None:
        await stored_order()
        paid = await stored_order(status=OrderStatus.PAID)

        data = auth_client.get("/admin/orders", params={"status": "PAID"}).json()

        assert [item["id"] for item in data["items"]] == [paid.id]

    def test_unknown_status_filter(self, auth_client: TestClient) -> None:
        response = auth_client.get("/admin/orders", params={"status": "LOST"})
        assert response.status_code == 400


class TestGetOrder:
    """Tests for GET /admin/orders/{id}."""

    @pytest.mark.asyncio
    async def test_includes_history(self, auth_client: TestClient, stored_order) -> None:
        order = await stored_order(status=OrderStatus.PAID)

        data = auth_client.get(f"/admin/orders/{order.id}").json()

        assert data["status"] == "PAID"
        assert [entry["to_status"] for entry in data["status_history"]] == ["PENDING", "PAID"]
        assert data["customer_email"] == "ana@example.com"
        assert data["version"] == order.version

    def test_unknown(self, auth_client: TestClient) -> None:
        response = auth_client.get("/admin/orders/missing")
        assert response.status_code == 404
        assert response.json()["error_code"] == "ORDER_NOT_FOUND"


class TestCreateShipment:
    """Tests for POST /admin/orders/{id}/shipment."""

    @pytest.mark.asyncio
    async def test_books_once(self, auth_client: TestClient, biteship: MagicMock, stored_order) -> None:
        order = await stored_order(status=OrderStatus.PAID)

        first = auth_client.post(f"/admin/orders/{order.id}/shipment").json()
        second = auth_client.post(f"/admin/orders/{order.id}/shipment").json()

        assert first["created"] is True
        assert first["shipment_id"] == "bs-ord-001"
        assert first["tracking_number"] == "JNE0001"
        assert second["created"] is False
        assert second["message"] == "Shipment already created"
        biteship.create_order.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_local_order(self, auth_client: TestClient, biteship: MagicMock, stored_order) -> None:
        order = await stored_order(status=OrderStatus.PAID, is_local_delivery=True)

        data = auth_client.post(f"/admin/orders/{order.id}/shipment").json()

        assert data["is_local"] is True
        assert auth_client.get(f"/admin/orders/{order.id}").json()["shipping_notes"] == LOCAL_SHIPMENT_NOTE
        biteship.create_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_unpaid_order(self, auth_client: TestClient, stored_order) -> None:
        order = await stored_order()
        response = auth_client.post(f"/admin/orders/{order.id}/shipment")
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_provider_error(self, auth_client: TestClient, biteship: MagicMock, stored_order) -> None:
        biteship.create_order.side_effect = ExternalProviderError("biteship", "Courier unavailable", 400)
        order = await stored_order(status=OrderStatus.PAID)

        response = auth_client.post(f"/admin/orders/{order.id}/shipment")

        assert response.status_code == 502
        assert auth_client.get(f"/admin/orders/{order.id}").json()["shipment_id"] is None


class TestCancelOrder:
    """Tests for POST /admin/orders/{id}/cancel."""

    @pytest.mark.asyncio
    async def test_cancels_shipment(self, auth_client: TestClient, biteship: MagicMock, stored_order) -> None:
        order = await stored_order(status=OrderStatus.PROCESSING, shipment_id="bs-1")

        response = auth_client.post(
            f"/admin/orders/{order.id}/cancel", json={"reason": "Out of stock", "cancelled_by": "admin-7"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "CANCELLED"
        assert data["provider_outcome"] == "cancelled"
        assert data["message"] == "Cancelled via Biteship: Out of stock"
        details = auth_client.get(f"/admin/orders/{order.id}").json()
        assert details["status_history"][-1]["actor"] == "admin-7"
        biteship.cancel_order.assert_awaited_once_with("bs-1", "Out of stock")

    @pytest.mark.asyncio
    async def test_delivered_cannot_cancel(self, auth_client: TestClient, biteship: MagicMock, stored_order) -> None:
        order = await stored_order(status=OrderStatus.DELIVERED, shipment_id="bs-1")

        response = auth_client.post(f"/admin/orders/{order.id}/cancel", json={"reason": "Too late"})

        assert response.status_code == 409
        biteship.cancel_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_reason_required(self, auth_client: TestClient, stored_order) -> None:
        order = await stored_order()
        response = auth_client.post(f"/admin/orders/{order.id}/cancel", json={"reason": ""})
        assert response.status_code == 400


class TestSetTrackingNumber:
    """Tests for PUT /admin/orders/{id}/tracking-number."""

    @pytest.mark.asyncio
    async def test_sets_number(self, auth_client: TestClient, stored_order) -> None:
        order = await stored_order(status=OrderStatus.PAID, is_local_delivery=True)

        response = auth_client.put(
            f"/admin/orders/{order.id}/tracking-number",
            json={"tracking_number": "KURIR-01", "updated_by": "admin-7"},
        )

        assert response.status_code == 200
        assert response.json()["tracking_number"] == "KURIR-01"

    def test_unknown_order(self, auth_client: TestClient) -> None:
        response = auth_client.put("/admin/orders/missing/tracking-number", json={"tracking_number": "X"})
        assert response.status_code == 404
