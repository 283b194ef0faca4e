"""Tests for refund endpoints, storefront and admin."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from storefront.domain.exceptions import ExternalProviderError
from storefront.domain.state_machines import OrderStatus


def request_refund(client: TestClient, order_id: str, amount: int = 150000) -> dict:
    response = client.post(
        "/refunds",
        json={
            "orderId": order_id,
            "amount": amount,
            "reason": "REQUESTED_BY_CUSTOMER",
            "reasonNote": "Jar arrived broken",
            "requesterId": "user-1",
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestRequestRefund:
    """Tests for POST /refunds."""

    @pytest.mark.asyncio
    async def test_creates_pending_request(self, client: TestClient, stored_order) -> None:
        order = await stored_order(status=OrderStatus.DELIVERED)

        refund = request_refund(client, order.id, amount=50000)

        assert refund["status"] == "pending"
        assert refund["amount"] == 50000
        assert refund["reason_note"] == "Jar arrived broken"

    @pytest.mark.asyncio
    async def test_unpaid_order(self, client: TestClient, stored_order) -> None:
        order = await stored_order()

        response = client.post("/refunds", json={"orderId": order.id, "amount": 1000, "reason": "OTHERS"})

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_amount_too_large(self, client: TestClient, stored_order) -> None:
        order = await stored_order(status=OrderStatus.PAID)

        response = client.post("/refunds", json={"orderId": order.id, "amount": 999999, "reason": "OTHERS"})

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_REFUND_AMOUNT"

    @pytest.mark.asyncio
    async def test_second_request_beyond_balance(self, client: TestClient, stored_order) -> None:
        order = await stored_order(status=OrderStatus.PAID)
        request_refund(client, order.id, amount=100000)

        response = client.post("/refunds", json={"orderId": order.id, "amount": 100000, "reason": "OTHERS"})

        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "INVALID_REFUND_AMOUNT"
        assert body["details"]["refundable"] == 50000

    @pytest.mark.asyncio
    async def test_unknown_reason(self, client: TestClient, stored_order) -> None:
        order = await stored_order(status=OrderStatus.PAID)
        response = client.post("/refunds", json={"orderId": order.id, "amount": 1000, "reason": "CHANGED_MIND"})
        assert response.status_code == 400

    def test_unknown_order(self, client: TestClient) -> None:
        response = client.post("/refunds", json={"orderId": "missing", "amount": 1000, "reason": "OTHERS"})
        assert response.status_code == 404


class TestAdminRefunds:
    """Tests for /admin/refunds."""

    def test_requires_auth(self, client: TestClient) -> None:
        assert client.get("/admin/refunds").status_code == 401

    @pytest.mark.asyncio
    async def test_list_and_filter(self, auth_client: TestClient, stored_order) -> None:
        order = await stored_order(status=OrderStatus.PAID)
        other = await stored_order(status=OrderStatus.PAID)
        request_refund(auth_client, order.id, amount=1000)
        request_refund(auth_client, other.id, amount=1000)

        data = auth_client.get("/admin/refunds", params={"order_id": order.id}).json()

        assert data["total"] == 1
        assert data["items"][0]["order_id"] == order.id
        assert data["has_more"] is False

    @pytest.mark.asyncio
    async def test_get_refund(self, auth_client: TestClient, stored_order) -> None:
        order = await stored_order(status=OrderStatus.PAID)
        refund = request_refund(auth_client, order.id)

        response = auth_client.get(f"/admin/refunds/{refund['id']}")

        assert response.status_code == 200
        assert response.json()["id"] == refund["id"]

    def test_get_unknown(self, auth_client: TestClient) -> None:
        response = auth_client.get("/admin/refunds/missing")
        assert response.status_code == 404
        assert response.json()["error_code"] == "REFUND_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_review_approve_then_process(self, auth_client: TestClient, stored_order) -> None:
        order = await stored_order(status=OrderStatus.PAID)
        refund = request_refund(auth_client, order.id)

        reviewed = auth_client.post(
            f"/admin/refunds/{refund['id']}/review",
            json={"action": "approve", "reviewer_id": "admin-7", "note": "Photo checked"},
        ).json()
        processed = auth_client.post(f"/admin/refunds/{refund['id']}/process").json()

        assert reviewed["status"] == "approved"
        assert reviewed["reviewed_by"] == "admin-7"
        assert processed["status"] == "processing"
        assert processed["gateway_refund_id"] == "rfd-001"

    @pytest.mark.asyncio
    async def test_review_twice_conflicts(self, auth_client: TestClient, stored_order) -> None:
        order = await stored_order(status=OrderStatus.PAID)
        refund = request_refund(auth_client, order.id)
        auth_client.post(f"/admin/refunds/{refund['id']}/review", json={"action": "reject"})

        response = auth_client.post(f"/admin/refunds/{refund['id']}/review", json={"action": "approve"})

        assert response.status_code == 409
        assert response.json()["error_code"] == "INVALID_TRANSITION"

    @pytest.mark.asyncio
    async def test_invalid_action(self, auth_client: TestClient, stored_order) -> None:
        order = await stored_order(status=OrderStatus.PAID)
        refund = request_refund(auth_client, order.id)
        response = auth_client.post(f"/admin/refunds/{refund['id']}/review", json={"action": "maybe"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_process_gateway_error(self, auth_client: TestClient, xendit: MagicMock, stored_order) -> None:
        """Gateway refusals are reported and leave the refund failed."""
        xendit.create_refund.side_effect = ExternalProviderError("xendit", "INSUFFICIENT_BALANCE", 400)
        order = await stored_order(status=OrderStatus.PAID)
        refund = request_refund(auth_client, order.id)
        auth_client.post(f"/admin/refunds/{refund['id']}/review", json={"action": "approve"})

        response = auth_client.post(f"/admin/refunds/{refund['id']}/process")

        assert response.status_code == 502
        stored = auth_client.get(f"/admin/refunds/{refund['id']}").json()
        assert stored["status"] == "failed"
        assert "INSUFFICIENT_BALANCE" in stored["admin_notes"]

    @pytest.mark.asyncio
    async def test_simulate_completion(self, auth_client: TestClient, stored_order) -> None:
        order = await stored_order(status=OrderStatus.PAID)
        refund = request_refund(auth_client, order.id)
        auth_client.post(f"/admin/refunds/{refund['id']}/review", json={"action": "approve"})

        response = auth_client.post(f"/admin/refunds/{refund['id']}/simulate-completion")

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert auth_client.get(f"/admin/orders/{order.id}").json()["status"] == "REFUNDED"

    @pytest.mark.asyncio
    async def test_simulate_completion_disabled(self, auth_client: TestClient, settings, stored_order) -> None:
        """The endpoint is hidden unless test endpoints are enabled."""
        settings.enable_test_endpoints = False
        order = await stored_order(status=OrderStatus.PAID)
        refund = request_refund(auth_client, order.id)

        response = auth_client.post(f"/admin/refunds/{refund['id']}/simulate-completion")

        assert response.status_code == 404
