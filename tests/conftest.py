"""Shared fixtures for storefront tests.

Xendit and Biteship are replaced by mocks; repositories are the
in-memory implementations, reset around every test.
"""

from collections.abc import Awaitable, Callable, Iterator
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from storefront.api.dependencies import get_app_settings, get_biteship, get_xendit
from storefront.application.order_service import OrderService
from storefront.application.payment_service import PaymentService
from storefront.application.refund_service import RefundService
from storefront.application.shipping_service import ShippingService
from storefront.application.tracking_service import TrackingService
from storefront.application.webhook_security import CallbackTokenVerifier
from storefront.application.webhook_service import WebhookService
from storefront.domain.entities import Order, OrderItem
from storefront.domain.state_machines import OrderStatus
from storefront.domain.value_objects import CourierSelection, CustomerInfo, ShippingAddress
from storefront.infrastructure.biteship_client import (
    BiteshipClient,
    BiteshipOrder,
    BiteshipTracking,
    CancelOutcome,
    CourierRate,
)
from storefront.infrastructure.config import Settings, get_settings
from storefront.infrastructure.repositories import (
    OrderRepository,
    RefundRepository,
    get_order_repository,
    get_refund_repository,
    reset_repositories,
)
from storefront.infrastructure.xendit_client import XenditClient, XenditInvoice, XenditRefund
from storefront.main import app

CALLBACK_TOKEN = "test-callback-token"


# ============================================================================
# State Reset
# ============================================================================


@pytest.fixture(autouse=True)
def reset_state() -> Iterator[None]:
    """Start every test with empty repositories and no overrides."""
    reset_repositories()
    yield
    reset_repositories()
    app.dependency_overrides.clear()


# ============================================================================
# Settings & Provider Doubles
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings with both providers configured."""
    return Settings(
        _env_file=None,
        xendit_secret_key="xnd_development_test",
        xendit_callback_token=CALLBACK_TOKEN,
        biteship_api_key="biteship_test.key",
        enable_test_endpoints=True,
        auto_create_shipment=True,
    )


@pytest.fixture
def xendit() -> MagicMock:
    """Mock Xendit client that accepts invoices and refunds."""
    client = MagicMock(spec=XenditClient)
    client.create_invoice = AsyncMock(
        return_value=XenditInvoice(
            id="inv-001",
            external_id="",
            status="PENDING",
            invoice_url="https://checkout.xendit.co/web/inv-001",
            amount=150000,
        )
    )
    client.create_refund = AsyncMock(
        return_value=XenditRefund(
            id="rfd-001",
            status="PENDING",
            amount=150000,
            currency="IDR",
            channel_code="BCA",
            reference_id=None,
        )
    )
    client.close = AsyncMock()
    return client


@pytest.fixture
def biteship() -> MagicMock:
    """Mock Biteship client with one area, three rates and a booked shipment."""
    client = MagicMock(spec=BiteshipClient)
    client.is_configured = True
    client.find_area_id = AsyncMock(return_value="IDNP6IDNC148IDND845")
    client.get_rates = AsyncMock(
        return_value=[
            CourierRate(
                courier_code="jne",
                courier_name="JNE",
                service_code="reg",
                service_name="Reguler",
                price=32000,
                duration="2 - 4 days",
                description="Layanan reguler",
                available=True,
            ),
            CourierRate(
                courier_code="lion",
                courier_name="Lion Parcel",
                service_code="reg_pack",
                service_name="Regpack",
                price=27000,
                duration="3 - 5 days",
                description=None,
                available=True,
            ),
            CourierRate(
                courier_code="sicepat",
                courier_name="SiCepat",
                service_code="best",
                service_name="Besok Sampai Tujuan",
                price=18000,
                duration="1 days",
                description=None,
                available=False,
            ),
        ]
    )
    client.create_order = AsyncMock(
        return_value=BiteshipOrder(id="bs-ord-001", status="confirmed", waybill_id="JNE0001")
    )
    client.cancel_order = AsyncMock(return_value=CancelOutcome.CANCELLED)
    client.get_tracking = AsyncMock(
        return_value=BiteshipTracking(
            status="dropping_off",
            courier_name="jne",
            service_name="reg",
            link="https://track.biteship.com/JNE0001",
            history=[
                {"status": "picked", "note": "Picked up by courier", "updated_at": "2026-10-19T09:00:00+07:00"},
                {"status": "dropping_off", "note": "On the way", "updated_at": "2026-10-20T08:00:00+07:00"},
            ],
            current_location="Jakarta Selatan Hub",
            destination={"contact_name": "Rina", "address": "Jl. Kemang Raya 10"},
            delivery_time="2026-10-21",
        )
    )
    client.close = AsyncMock()
    return client


# ============================================================================
# Services
# ============================================================================


@pytest.fixture
def order_repo() -> OrderRepository:
    """The process-wide order repository, shared with the API."""
    return get_order_repository()


@pytest.fixture
def refund_repo() -> RefundRepository:
    """The process-wide refund repository, shared with the API."""
    return get_refund_repository()


@pytest.fixture
def order_service(order_repo: OrderRepository) -> OrderService:
    return OrderService(order_repo=order_repo)


@pytest.fixture
def shipping_service(order_service: OrderService, biteship: MagicMock, settings: Settings) -> ShippingService:
    return ShippingService(order_service=order_service, biteship=biteship, settings=settings)


@pytest.fixture
def payment_service(
    order_service: OrderService,
    xendit: MagicMock,
    shipping_service: ShippingService,
    settings: Settings,
) -> PaymentService:
    return PaymentService(
        order_service=order_service,
        xendit=xendit,
        shipping_service=shipping_service,
        settings=settings,
    )


@pytest.fixture
def refund_service(refund_repo: RefundRepository, order_service: OrderService, xendit: MagicMock) -> RefundService:
    return RefundService(refund_repo=refund_repo, order_service=order_service, xendit=xendit)


@pytest.fixture
def tracking_service(order_service: OrderService, settings: Settings) -> TrackingService:
    return TrackingService(order_service=order_service, settings=settings)


@pytest.fixture
def webhook_service(
    payment_service: PaymentService,
    shipping_service: ShippingService,
    refund_service: RefundService,
    settings: Settings,
) -> WebhookService:
    return WebhookService(
        payment_service=payment_service,
        shipping_service=shipping_service,
        refund_service=refund_service,
        verifier=CallbackTokenVerifier(settings.xendit_callback_token, settings.webhook_replay_tolerance_seconds),
        settings=settings,
    )


# ============================================================================
# Orders
# ============================================================================


@pytest.fixture
def new_order() -> Callable[..., Order]:
    """Factory for unsaved inter-city orders."""

    def _create(**overrides: Any) -> Order:
        values: dict[str, Any] = {
            "customer": CustomerInfo(name="Ana Lestari", email="ana@example.com", phone="081200000001"),
            "items": [
                OrderItem(
                    product_id="sagu-lempeng",
                    product_name="Sagu Lempeng",
                    quantity=2,
                    unit_price=50000,
                    weight_grams=500,
                ),
                OrderItem(
                    product_id="kenari-panggang",
                    product_name="Kenari Panggang",
                    quantity=1,
                    unit_price=25000,
                    weight_grams=250,
                ),
            ],
            "total_amount": 150000,
            "address": ShippingAddress(address="Jl. Kemang Raya 5", city="Jakarta Selatan", postal_code="12730"),
            "shipping_cost": 25000,
            "courier": CourierSelection(
                courier_code="jne",
                courier_name="JNE",
                service_code="reg",
                service_name="Reguler",
                estimated_days="2-4",
            ),
            "total_weight_kg": 1.25,
        }
        values.update(overrides)
        return Order.create(**values)

    return _create


@pytest.fixture
def stored_order(
    order_service: OrderService, new_order: Callable[..., Order]
) -> Callable[..., Awaitable[Order]]:
    """Factory that saves an order and walks it to the requested status."""

    async def _store(
        status: OrderStatus = OrderStatus.PENDING,
        external_id: str | None = "inv-001",
        shipment_id: str | None = None,
        **overrides: Any,
    ) -> Order:
        order = new_order(**overrides)
        if external_id:
            order.attach_invoice(external_id, f"https://checkout.xendit.co/web/{external_id}")
        await order_service.create(order)

        def advance(o: Order) -> None:
            if shipment_id:
                o.attach_shipment(shipment_id)
            if status == OrderStatus.PENDING:
                return
            if status not in (OrderStatus.PAID, OrderStatus.EXPIRED, OrderStatus.FAILED, OrderStatus.CANCELLED):
                o.transition_to(OrderStatus.PAID, actor="test")
            o.transition_to(status, actor="test")

        await order_service.update(order.id, advance)
        return await order_service.get_order(order.id)

    return _store


def iso_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


@pytest.fixture
def now_iso() -> Callable[[], str]:
    return iso_now


# ============================================================================
# HTTP Clients
# ============================================================================


@pytest.fixture
def client(settings: Settings, xendit: MagicMock, biteship: MagicMock) -> TestClient:
    """Test client with provider doubles and test settings injected."""
    app.dependency_overrides[get_app_settings] = lambda: settings
    app.dependency_overrides[get_xendit] = lambda: xendit
    app.dependency_overrides[get_biteship] = lambda: biteship
    return TestClient(app)


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Admin authentication headers."""
    return {"Authorization": f"Bearer {get_settings().admin_api_key}"}


@pytest.fixture
def auth_client(client: TestClient, auth_headers: dict[str, str]) -> TestClient:
    """Test client with valid admin API key authentication."""
    client.headers.update(auth_headers)
    return client
