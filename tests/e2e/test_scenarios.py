"""E2E Integration Test Scenarios for the storefront.

Drives the HTTP API end to end with Xendit and Biteship mocked:
1. Happy path purchase through delivery
2. Duplicate webhooks
3. Out-of-order webhooks
4. Full refund flow
5. Partial refund
6. Local delivery with guest tracking
7. Cancellation of a booked shipment
8. Invoice creation failure
"""

from datetime import datetime, timezone
from typing import Any
from unittest.mock import MagicMock

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from storefront.domain.exceptions import ExternalProviderError

CALLBACK_TOKEN = "test-callback-token"


# ============================================================================
# Helpers
# ============================================================================


def checkout_body(**overrides: Any) -> dict[str, Any]:
    body = {
        "amount": 150000,
        "customerName": "Ana Lestari",
        "customerEmail": "ana@example.com",
        "customerPhone": "081200000001",
        "shippingAddress": "Jl. Kemang Raya 5",
        "city": "Jakarta Selatan",
        "postalCode": "12730",
        "items": [
            {"productId": "sagu-lempeng", "productName": "Sagu Lempeng", "quantity": 2, "price": 50000, "weight": 500},
            {"productId": "kenari", "productName": "Kenari Panggang", "quantity": 1, "price": 25000, "weight": 250},
        ],
        "shippingCost": 25000,
        "courierCode": "jne",
        "courierName": "JNE",
        "serviceCode": "reg",
        "serviceName": "Reguler",
        "totalWeight": 1.25,
    }
    body.update(overrides)
    return body


def place_order(client: TestClient, **overrides: Any) -> str:
    response = client.post("/checkout", json=checkout_body(**overrides))
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()["orderId"]


def invoice_webhook(client: TestClient, order_id: str, invoice_status: str):
    return client.post(
        "/webhooks/xendit/invoice",
        json={"id": "inv-001", "external_id": order_id, "status": invoice_status, "paid_amount": 150000},
        headers={"x-callback-token": CALLBACK_TOKEN},
    )


def biteship_webhook(client: TestClient, shipment_id: str, provider_status: str):
    return client.post(
        "/webhooks/biteship",
        json={"event": "order.status", "order_id": shipment_id, "status": provider_status},
    )


def refund_webhook(client: TestClient, refund_id: str, refund_status: str = "SUCCEEDED"):
    return client.post(
        "/webhooks/xendit/refund",
        json={
            "event": f"refund.{refund_status.lower()}",
            "created": datetime.now(timezone.utc).isoformat(),
            "data": {"id": "rfd-001", "reference_id": refund_id, "status": refund_status, "channel_code": "BCA"},
        },
        headers={"x-callback-token": CALLBACK_TOKEN},
    )


def get_order(client: TestClient, order_id: str) -> dict[str, Any]:
    response = client.get(f"/admin/orders/{order_id}")
    assert response.status_code == status.HTTP_200_OK
    return response.json()


def approved_refund(client: TestClient, order_id: str, amount: int) -> str:
    refund = client.post(
        "/refunds",
        json={"orderId": order_id, "amount": amount, "reason": "REQUESTED_BY_CUSTOMER"},
    ).json()
    reviewed = client.post(f"/admin/refunds/{refund['id']}/review", json={"action": "approve"})
    assert reviewed.status_code == status.HTTP_200_OK
    return refund["id"]


# ============================================================================
# Scenario 1: Happy Path Purchase
# ============================================================================


class TestScenario1HappyPath:
    """Checkout, payment, automatic booking and delivery."""

    def test_happy_path_full_flow(self, auth_client: TestClient, biteship: MagicMock) -> None:
        order_id = place_order(auth_client)
        assert get_order(auth_client, order_id)["status"] == "PENDING"

        paid = invoice_webhook(auth_client, order_id, "PAID")
        assert paid.json()["outcome"] == "processed"

        order = get_order(auth_client, order_id)
        assert order["status"] == "PAID"
        assert order["shipment_id"] == "bs-ord-001"
        assert order["tracking_number"] == "JNE0001"
        booking = biteship.create_order.call_args.args[0]
        assert booking["reference_id"] == order_id
        assert booking["courier_company"] == "jne"

        biteship_webhook(auth_client, "bs-ord-001", "allocated")
        biteship_webhook(auth_client, "bs-ord-001", "picked")
        biteship_webhook(auth_client, "bs-ord-001", "delivered")

        order = get_order(auth_client, order_id)
        assert order["status"] == "DELIVERED"
        assert order["delivered_at"] is not None
        assert [entry["to_status"] for entry in order["status_history"]] == [
            "PENDING",
            "PAID",
            "PROCESSING",
            "SHIPPED",
            "DELIVERED",
        ]


# ============================================================================
# Scenario 2: Duplicate Webhooks
# ============================================================================


class TestScenario2DuplicateWebhooks:
    """Redelivered webhooks never change state twice."""

    def test_duplicate_paid(self, auth_client: TestClient, biteship: MagicMock) -> None:
        order_id = place_order(auth_client)
        invoice_webhook(auth_client, order_id, "PAID")
        first = get_order(auth_client, order_id)

        again = invoice_webhook(auth_client, order_id, "PAID")

        assert again.status_code == status.HTTP_200_OK
        assert again.json()["outcome"] == "ignored"
        second = get_order(auth_client, order_id)
        assert second["version"] == first["version"]
        assert second["paid_at"] == first["paid_at"]
        assert len(second["status_history"]) == len(first["status_history"])
        biteship.create_order.assert_awaited_once()

    def test_duplicate_delivered(self, auth_client: TestClient) -> None:
        order_id = place_order(auth_client)
        invoice_webhook(auth_client, order_id, "PAID")
        biteship_webhook(auth_client, "bs-ord-001", "delivered")
        before = get_order(auth_client, order_id)

        biteship_webhook(auth_client, "bs-ord-001", "delivered")

        assert get_order(auth_client, order_id)["version"] == before["version"]


# ============================================================================
# Scenario 3: Out-of-Order Webhooks
# ============================================================================


class TestScenario3OutOfOrderWebhooks:
    """Late deliveries never move an order backwards."""

    def test_expired_after_paid(self, auth_client: TestClient) -> None:
        order_id = place_order(auth_client)
        invoice_webhook(auth_client, order_id, "PAID")

        late = invoice_webhook(auth_client, order_id, "EXPIRED")

        assert late.status_code == status.HTTP_200_OK
        assert get_order(auth_client, order_id)["status"] == "PAID"

    def test_picked_after_delivered(self, auth_client: TestClient) -> None:
        order_id = place_order(auth_client)
        invoice_webhook(auth_client, order_id, "PAID")
        biteship_webhook(auth_client, "bs-ord-001", "delivered")

        biteship_webhook(auth_client, "bs-ord-001", "picked")

        order = get_order(auth_client, order_id)
        assert order["status"] == "DELIVERED"
        assert order["shipment_status"] == "picked"


# ============================================================================
# Scenario 4: Full Refund
# ============================================================================


class TestScenario4FullRefund:
    """Refund request through gateway confirmation."""

    def test_full_refund_marks_order_refunded(self, auth_client: TestClient, xendit: MagicMock) -> None:
        order_id = place_order(auth_client)
        invoice_webhook(auth_client, order_id, "PAID")
        biteship_webhook(auth_client, "bs-ord-001", "delivered")

        refund_id = approved_refund(auth_client, order_id, 150000)
        processed = auth_client.post(f"/admin/refunds/{refund_id}/process").json()
        assert processed["status"] == "processing"
        assert xendit.create_refund.call_args.kwargs["reference_id"] == refund_id

        ack = refund_webhook(auth_client, refund_id)
        assert ack.json()["outcome"] == "processed"

        refund = auth_client.get(f"/admin/refunds/{refund_id}").json()
        assert refund["status"] == "completed"
        assert refund["completed_at"] is not None
        assert get_order(auth_client, order_id)["status"] == "REFUNDED"

        replay = refund_webhook(auth_client, refund_id)
        assert replay.json()["message"] == "Refund already resolved"


# ============================================================================
# Scenario 5: Partial Refund
# ============================================================================


class TestScenario5PartialRefund:
    def test_partial_refund_keeps_order_status(self, auth_client: TestClient) -> None:
        order_id = place_order(auth_client)
        invoice_webhook(auth_client, order_id, "PAID")

        refund_id = approved_refund(auth_client, order_id, 25000)
        auth_client.post(f"/admin/refunds/{refund_id}/process")
        refund_webhook(auth_client, refund_id)

        order = get_order(auth_client, order_id)
        assert order["status"] == "PAID"
        assert order["notes"][-1]["note"] == f"Partial refund of 25000 IDR processed (refund {refund_id})"


# ============================================================================
# Scenario 6: Local Delivery and Guest Tracking
# ============================================================================


class TestScenario6LocalDelivery:
    """Local orders skip Biteship and are tracked manually."""

    def test_local_order_flow(self, auth_client: TestClient, biteship: MagicMock) -> None:
        rates = auth_client.post(
            "/shipping/rates",
            json={"destinationCity": "Ternate Selatan", "items": [{"name": "Sagu", "value": 150000, "weight": 500}]},
        ).json()
        assert rates["isLocal"] is True
        assert rates["options"][0]["price"] == 0

        order_id = place_order(
            auth_client,
            city="Ternate Selatan",
            postalCode="97716",
            shippingCost=0,
            courierCode="local_delivery",
            serviceCode="same_day",
            isLocalDelivery=True,
        )
        invoice_webhook(auth_client, order_id, "PAID")
        biteship.create_order.assert_not_called()

        auth_client.post(f"/admin/orders/{order_id}/shipment")
        auth_client.put(f"/admin/orders/{order_id}/tracking-number", json={"tracking_number": "KURIR-7"})

        token = auth_client.post(
            "/tracking/verify", json={"orderId": order_id, "email": "ana@example.com"}
        ).json()["accessToken"]
        tracked = auth_client.get("/tracking/order", headers={"x-tracking-token": token}).json()["order"]
        assert tracked["status"] == "PAID"
        assert tracked["trackingNumber"] == "KURIR-7"
        assert tracked["isLocalDelivery"] is True

        track = auth_client.post("/shipping/track", json={"orderId": order_id}).json()
        assert track["isLocal"] is True
        biteship.get_tracking.assert_not_called()


# ============================================================================
# Scenario 7: Cancellation
# ============================================================================


class TestScenario7Cancellation:
    def test_cancel_booked_order(self, auth_client: TestClient, biteship: MagicMock) -> None:
        order_id = place_order(auth_client)
        invoice_webhook(auth_client, order_id, "PAID")

        response = auth_client.post(f"/admin/orders/{order_id}/cancel", json={"reason": "Customer request"})

        assert response.status_code == status.HTTP_200_OK
        assert get_order(auth_client, order_id)["status"] == "CANCELLED"
        biteship.cancel_order.assert_awaited_once_with("bs-ord-001", "Customer request")

        late = biteship_webhook(auth_client, "bs-ord-001", "delivered")
        assert late.status_code == status.HTTP_200_OK
        assert get_order(auth_client, order_id)["status"] == "CANCELLED"


# ============================================================================
# Scenario 8: Invoice Failure
# ============================================================================


class TestScenario8InvoiceFailure:
    @pytest.mark.parametrize("gateway_status", [400, 503])
    def test_failed_order_is_recorded(self, auth_client: TestClient, xendit: MagicMock, gateway_status: int) -> None:
        xendit.create_invoice.side_effect = ExternalProviderError("xendit", "Gateway unavailable", gateway_status)

        response = auth_client.post("/checkout", json=checkout_body())

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        orders = auth_client.get("/admin/orders", params={"status": "FAILED"}).json()
        assert orders["total"] == 1
