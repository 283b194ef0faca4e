"""Payment application service.

Creates orders and their Xendit invoices at checkout, and reconciles
Xendit invoice webhooks into order status.
"""

from dataclasses import dataclass, field

import structlog

from storefront.application.order_service import OrderService, get_order_service
from storefront.application.shipping_service import ShippingService, get_shipping_service
from storefront.application.webhook_results import WebhookResult
from storefront.domain.entities import Order, OrderItem
from storefront.domain.exceptions import DomainError, ExternalProviderError
from storefront.domain.mappings import order_status_for_invoice
from storefront.domain.state_machines import OrderStatus
from storefront.domain.value_objects import CourierSelection, CustomerInfo, ShippingAddress
from storefront.infrastructure.config import Settings, get_settings
from storefront.infrastructure.xendit_client import XenditClient, get_xendit_client

logger = structlog.get_logger()

INVOICE_ITEM_CATEGORY = "Food"
PAID_AMOUNT_TOLERANCE = 1


@dataclass
class CheckoutCommand:
    """Everything needed to place an order.

    Attributes:
        amount: Amount to charge, including shipping.
        customer: Customer contact details.
        items: Line items.
        address: Shipping address.
        shipping_cost: Shipping part of the amount.
        courier: Courier/service chosen by the customer.
        is_local_delivery: Local zone fulfilment flag.
        total_weight_kg: Parcel weight.
        user_id: Authenticated buyer, if any.
        success_redirect_url: Redirect after payment.
        failure_redirect_url: Redirect after a failed payment.
    """

    amount: int
    customer: CustomerInfo
    items: list[OrderItem]
    address: ShippingAddress = field(default_factory=ShippingAddress)
    shipping_cost: int = 0
    courier: CourierSelection = field(default_factory=CourierSelection)
    is_local_delivery: bool = False
    total_weight_kg: float | None = None
    user_id: str | None = None
    success_redirect_url: str | None = None
    failure_redirect_url: str | None = None


@dataclass
class CheckoutResult:
    """Order and invoice created at checkout."""

    order_id: str
    invoice_id: str
    invoice_url: str | None


def invoice_description(order: Order) -> str:
    """Describe an order's items for the hosted invoice page."""
    lines = ", ".join(f"{item.product_name} x{item.quantity}" for item in order.items)
    return f"Order {order.id} - {lines}"


class PaymentService:
    """Application service for checkout and payment reconciliation."""

    def __init__(
        self,
        order_service: OrderService | None = None,
        xendit: XenditClient | None = None,
        shipping_service: ShippingService | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize service.

        Args:
            order_service: Order loading/writing service.
            xendit: Xendit API client.
            shipping_service: Used to book shipments once an order is paid.
            settings: Application settings.
        """
        self.order_service = order_service or get_order_service()
        self.xendit = xendit or get_xendit_client()
        self.shipping_service = shipping_service or get_shipping_service()
        self.settings = settings or get_settings()

    async def checkout(self, command: CheckoutCommand) -> CheckoutResult:
        """Create a PENDING order and its payment invoice.

        Args:
            command: Checkout request.

        Returns:
            CheckoutResult with the invoice to redirect the customer to.

        Raises:
            ValidationError: If the order data is invalid.
            ExternalProviderError: If Xendit refuses the invoice. The order
                is kept and moved to FAILED.
        """
        order = Order.create(
            customer=command.customer,
            items=command.items,
            total_amount=command.amount,
            address=command.address,
            shipping_cost=command.shipping_cost,
            courier=command.courier,
            is_local_delivery=command.is_local_delivery,
            total_weight_kg=command.total_weight_kg,
            user_id=command.user_id,
        )
        await self.order_service.create(order)

        try:
            invoice = await self.xendit.create_invoice(
                external_id=order.id,
                amount=order.total_amount,
                payer_email=order.customer.email,
                description=invoice_description(order),
                customer={
                    "given_names": order.customer.name,
                    "email": order.customer.email,
                    "mobile_number": order.customer.phone,
                },
                items=[
                    {
                        "name": item.product_name,
                        "quantity": item.quantity,
                        "price": item.unit_price,
                        "category": INVOICE_ITEM_CATEGORY,
                    }
                    for item in order.items
                ],
                success_redirect_url=command.success_redirect_url,
                failure_redirect_url=command.failure_redirect_url,
            )
        except ExternalProviderError as e:
            logger.error("Invoice creation failed", order_id=order.id, error=e.provider_message)

            def mark_failed(o: Order) -> None:
                o.transition_to(OrderStatus.FAILED, actor="checkout", reason="Invoice creation failed")
                o.add_note(f"[Xendit] Invoice creation failed: {e.provider_message}")

            await self.order_service.update(order.id, mark_failed)
            raise

        await self.order_service.update(
            order.id, lambda o: o.attach_invoice(invoice.id, invoice.invoice_url)
        )
        logger.info("Checkout completed", order_id=order.id, invoice_id=invoice.id)
        return CheckoutResult(order_id=order.id, invoice_id=invoice.id, invoice_url=invoice.invoice_url)

    async def apply_invoice_status(
        self,
        external_id: str | None,
        raw_status: str | None,
        paid_amount: int | float | None = None,
    ) -> WebhookResult:
        """Reconcile an invoice webhook into the order it belongs to.

        Unknown orders, unknown statuses and transitions the state machine
        does not allow are acknowledged without changes.

        Args:
            external_id: Our order id, echoed back by Xendit.
            raw_status: Invoice status string.
            paid_amount: Amount Xendit reports as paid.

        Returns:
            WebhookResult describing what happened.

        Raises:
            ConcurrentUpdateError: If the order kept changing underneath.
        """
        if not external_id:
            logger.warning("Invoice webhook without external_id", invoice_status=raw_status)
            return WebhookResult.ignored("Missing external_id", success=False)

        order = await self.order_service.order_repo.get(external_id)
        if order is None:
            logger.warning("Order not found for invoice webhook", order_id=external_id, invoice_status=raw_status)
            return WebhookResult.ignored("Order not found", success=False)

        target = order_status_for_invoice(raw_status)
        if target is None:
            logger.info("Unhandled invoice status", order_id=order.id, invoice_status=raw_status)
            return WebhookResult.ignored("Unhandled status", order.id, order.status.value)

        if (
            target == OrderStatus.PAID
            and paid_amount is not None
            and abs(paid_amount - order.total_amount) > PAID_AMOUNT_TOLERANCE
        ):
            logger.warning(
                "Paid amount does not match order total",
                order_id=order.id,
                paid_amount=paid_amount,
                total_amount=order.total_amount,
            )

        def apply(o: Order) -> bool:
            if o.status != target and not o.status.can_transition_to(target):
                logger.info(
                    "Ignoring invoice status for current order state",
                    order_id=o.id,
                    invoice_status=raw_status,
                    from_status=o.status.value,
                    to_status=target.value,
                )
                return False
            return o.transition_to(target, actor="xendit_webhook", reason=f"Invoice {raw_status.upper()}")

        mutation = await self.order_service.update(order.id, apply)
        result_status = mutation.entity.status.value
        if not mutation.changed:
            return WebhookResult.ignored("Webhook received, no updates needed", order.id, result_status)

        if target == OrderStatus.PAID:
            await self._after_payment(mutation.entity)
        return WebhookResult.processed("Webhook processed successfully", order.id, result_status)

    async def _after_payment(self, order: Order) -> None:
        if not self.settings.auto_create_shipment or not order.needs_external_shipment:
            return
        try:
            await self.shipping_service.create_shipment(order.id)
        except DomainError as e:
            logger.error("Automatic shipment creation failed", order_id=order.id, error=e.message)


# ============================================================================
# Service Factory
# ============================================================================


def get_payment_service() -> PaymentService:
    """Get payment service instance."""
    return PaymentService()
