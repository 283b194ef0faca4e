"""Domain entities and aggregate roots.

Order and RefundRequest are the two aggregates of the storefront's
reconciliation protocol. Every mutating method either changes state and
bumps ``version`` or leaves the aggregate untouched, so the persistence
layer can tell a real change from an idempotent re-application.
"""

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from uuid import uuid4

from storefront.domain.base import AggregateRoot, utcnow
from storefront.domain.events import (
    OrderCreated,
    OrderNoteAdded,
    OrderStatusChanged,
    RefundRequested,
    RefundStatusChanged,
    TrackingNumberAssigned,
)
from storefront.domain.exceptions import InvalidRefundAmountError, ValidationError
from storefront.domain.state_machines import (
    OrderStatus,
    RefundStatus,
    validate_order_transition,
    validate_refund_transition,
)
from storefront.domain.value_objects import CourierSelection, CustomerInfo, ShippingAddress


def _new_id() -> str:
    return str(uuid4())


def _append_line(existing: str | None, line: str) -> str:
    return f"{existing}\n{line}" if existing else line


# ============================================================================
# Order Aggregate Root
# ============================================================================


@dataclass(frozen=True)
class OrderItem:
    """A line item in an order.

    Order items are immutable snapshots taken at checkout; later catalog
    price changes never alter them.

    Attributes:
        product_id: Product identifier.
        product_name: Product name at time of order.
        quantity: Ordered quantity.
        unit_price: Price per unit in IDR at time of order.
        weight_grams: Unit weight if known, used for shipment booking.
    """

    product_id: str
    product_name: str
    quantity: int
    unit_price: int
    weight_grams: int | None = None
    id: str = field(default_factory=_new_id)

    def __post_init__(self) -> None:
        """Validate item."""
        if self.quantity <= 0:
            raise ValidationError(
                "Item quantity must be positive",
                details={"product_id": self.product_id, "quantity": self.quantity},
            )
        if self.unit_price < 0:
            raise ValidationError(
                "Item price cannot be negative",
                details={"product_id": self.product_id, "unit_price": self.unit_price},
            )

    @property
    def line_total(self) -> int:
        """Unit price multiplied by quantity."""
        return self.unit_price * self.quantity


@dataclass(kw_only=True)
class Order(AggregateRoot):
    """Order aggregate root.

    Tracks a purchase from checkout through payment, fulfilment and
    refund. Status changes go through ``transition_to`` which enforces
    the order state machine.

    Attributes:
        id: Unique order identifier (also the invoice ``external_id``).
        customer: Customer contact details.
        address: Shipping address.
        total_amount: Amount charged, in IDR.
        shipping_cost: Shipping part of the total, in IDR.
        status: Current order status.
        items: Line item snapshots.
        courier: Courier/service chosen at checkout.
        is_local_delivery: True when fulfilled without the courier aggregator.
        total_weight_kg: Parcel weight.
        user_id: Authenticated buyer, if any.
        external_id: Payment gateway invoice id.
        invoice_url: Hosted invoice page.
        shipment_id: Courier aggregator order id.
        shipment_status: Last status reported by the courier aggregator.
        tracking_number: Courier waybill number.
        shipping_notes: Accumulated shipment log lines.
        tracking_token: Random token generated at checkout.
        tracking_access_token: Short-lived guest tracking capability.
        tracking_access_expires_at: Expiry of the guest capability.
    """

    customer: CustomerInfo
    address: ShippingAddress = field(default_factory=ShippingAddress)
    total_amount: int
    shipping_cost: int = 0
    status: OrderStatus = OrderStatus.PENDING
    items: list[OrderItem] = field(default_factory=list)
    courier: CourierSelection = field(default_factory=CourierSelection)
    is_local_delivery: bool = False
    total_weight_kg: float = 1.0
    user_id: str | None = None
    external_id: str | None = None
    invoice_url: str | None = None
    shipment_id: str | None = None
    shipment_status: str | None = None
    tracking_number: str | None = None
    shipping_notes: str | None = None
    tracking_token: str = field(default_factory=lambda: secrets.token_urlsafe(24))
    tracking_access_token: str | None = None
    tracking_access_expires_at: datetime | None = None
    paid_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_reason: str | None = None

    @classmethod
    def create(
        cls,
        customer: CustomerInfo,
        items: list[OrderItem],
        total_amount: int,
        address: ShippingAddress | None = None,
        shipping_cost: int = 0,
        courier: CourierSelection | None = None,
        is_local_delivery: bool = False,
        total_weight_kg: float | None = None,
        user_id: str | None = None,
        order_id: str | None = None,
    ) -> "Order":
        """Create a PENDING order at checkout.

        Args:
            customer: Customer contact details.
            items: Line item snapshots, at least one.
            total_amount: Amount to charge in IDR, must be positive.
            address: Shipping address.
            shipping_cost: Shipping cost in IDR.
            courier: Selected courier and service.
            is_local_delivery: Local-zone fulfilment flag.
            total_weight_kg: Parcel weight, defaults to 1 kg.
            user_id: Authenticated buyer, if any.
            order_id: Optional pre-generated id.

        Returns:
            New Order instance.

        Raises:
            ValidationError: If amounts or items are invalid.
        """
        if total_amount <= 0:
            raise ValidationError("Amount must be greater than 0", details={"amount": total_amount})
        if shipping_cost < 0:
            raise ValidationError("Shipping cost cannot be negative", details={"shipping_cost": shipping_cost})
        if not items:
            raise ValidationError("Order must contain at least one item")

        order = cls(
            id=order_id or _new_id(),
            customer=customer,
            address=address or ShippingAddress(),
            total_amount=total_amount,
            shipping_cost=shipping_cost,
            items=list(items),
            courier=courier or CourierSelection(),
            is_local_delivery=is_local_delivery,
            total_weight_kg=total_weight_kg if total_weight_kg and total_weight_kg > 0 else 1.0,
            user_id=user_id,
        )
        order._record_event(
            OrderCreated(
                aggregate_id=order.id,
                aggregate_type="Order",
                order_id=order.id,
                total_amount=total_amount,
                item_count=len(order.items),
                is_local_delivery=is_local_delivery,
            )
        )
        return order

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    @property
    def item_count(self) -> int:
        """Sum of all item quantities."""
        return sum(item.quantity for item in self.items)

    @property
    def needs_external_shipment(self) -> bool:
        """Check if the order must be booked with the courier aggregator."""
        return not self.is_local_delivery and self.courier.is_bookable

    def has_valid_tracking_access(self, token: str, now: datetime | None = None) -> bool:
        """Check a guest tracking token against the one stored on this order.

        Args:
            token: Token presented by the guest.
            now: Current time.

        Returns:
            True if the token matches and has not expired.
        """
        if not token or not self.tracking_access_token or not self.tracking_access_expires_at:
            return False
        if not secrets.compare_digest(token, self.tracking_access_token):
            return False
        return (now or utcnow()) < self.tracking_access_expires_at

    # -------------------------------------------------------------------------
    # State Transitions
    # -------------------------------------------------------------------------

    def transition_to(
        self,
        target: OrderStatus,
        actor: str = "system",
        reason: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Move the order to a new status.

        Re-applying the current status is a no-op. Lifecycle timestamps
        are written only the first time their status is reached.

        Args:
            target: Target status.
            actor: Who caused the change (system, webhook name, admin id).
            reason: Optional reason recorded in the status history.
            now: Current time.

        Returns:
            True if the status changed.

        Raises:
            InvalidStateTransitionError: If the transition is not allowed.
        """
        if target == self.status:
            return False
        validate_order_transition(self.id, self.status, target)

        now = now or utcnow()
        previous = self.status
        self.status = target
        if target == OrderStatus.PAID and self.paid_at is None:
            self.paid_at = now
        elif target == OrderStatus.SHIPPED and self.shipped_at is None:
            self.shipped_at = now
        elif target == OrderStatus.DELIVERED and self.delivered_at is None:
            self.delivered_at = now
        elif target == OrderStatus.CANCELLED and reason:
            self.cancelled_reason = reason

        self._touch(now)
        self._record_event(
            OrderStatusChanged(
                aggregate_id=self.id,
                aggregate_type="Order",
                occurred_at=now,
                order_id=self.id,
                from_status=previous.value,
                to_status=target.value,
                actor=actor,
                reason=reason,
            )
        )
        return True

    # -------------------------------------------------------------------------
    # Payment & Shipment References
    # -------------------------------------------------------------------------

    def attach_invoice(self, invoice_id: str, invoice_url: str | None) -> None:
        """Store the payment gateway invoice reference."""
        self.external_id = invoice_id
        self.invoice_url = invoice_url
        self._touch()

    def attach_shipment(self, shipment_id: str, now: datetime | None = None) -> bool:
        """Store the courier aggregator order id.

        Returns:
            False if a shipment was already attached.
        """
        if self.shipment_id:
            return False
        self.shipment_id = shipment_id
        self._touch(now)
        return True

    def assign_tracking_number(
        self,
        tracking_number: str | None,
        actor: str = "system",
        now: datetime | None = None,
    ) -> bool:
        """Store a tracking number unless one is already set.

        Automated sources must never overwrite an existing value, which
        may have been corrected by an operator.

        Returns:
            True if the tracking number was stored.
        """
        if not tracking_number or self.tracking_number:
            return False
        self.tracking_number = tracking_number
        self._touch(now)
        self._record_event(
            TrackingNumberAssigned(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                tracking_number=tracking_number,
                actor=actor,
            )
        )
        return True

    def override_tracking_number(self, tracking_number: str, actor: str) -> bool:
        """Replace the tracking number by operator decision.

        Raises:
            ValidationError: If the tracking number is blank.
        """
        tracking_number = (tracking_number or "").strip()
        if not tracking_number:
            raise ValidationError("Tracking number cannot be empty")
        if tracking_number == self.tracking_number:
            return False
        previous = self.tracking_number
        self.tracking_number = tracking_number
        self._touch()
        self._record_event(
            TrackingNumberAssigned(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                tracking_number=tracking_number,
                previous=previous,
                actor=actor,
            )
        )
        return True

    def record_shipment_status(self, provider_status: str, now: datetime | None = None) -> bool:
        """Remember the courier's raw status and log it once per distinct value.

        Returns:
            True if the provider status differs from the last one seen.
        """
        if provider_status == self.shipment_status:
            return False
        now = now or utcnow()
        self.shipment_status = provider_status
        self.append_shipping_note(f"[{now.isoformat()}] Status: {provider_status}", now=now)
        return True

    # -------------------------------------------------------------------------
    # Notes
    # -------------------------------------------------------------------------

    def append_shipping_note(self, line: str, now: datetime | None = None) -> None:
        """Append a line to the shipment log."""
        self.shipping_notes = _append_line(self.shipping_notes, line)
        self._touch(now)

    def add_note(self, note: str, author: str = "system") -> None:
        """Attach an internal, operator-facing note."""
        self._touch()
        self._record_event(
            OrderNoteAdded(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                note=note,
                author=author,
            )
        )

    # -------------------------------------------------------------------------
    # Guest Tracking
    # -------------------------------------------------------------------------

    def issue_tracking_access(self, ttl_seconds: int, now: datetime | None = None) -> tuple[str, datetime]:
        """Mint a guest tracking token, replacing any previous one.

        Args:
            ttl_seconds: Token lifetime.
            now: Current time.

        Returns:
            Tuple of (token, expiry).
        """
        now = now or utcnow()
        self.tracking_access_token = secrets.token_urlsafe(32)
        self.tracking_access_expires_at = now + timedelta(seconds=ttl_seconds)
        self._touch(now)
        return self.tracking_access_token, self.tracking_access_expires_at


# ============================================================================
# Refund Request Aggregate Root
# ============================================================================


class RefundReason(str, Enum):
    """Refund reasons accepted by the payment gateway."""

    FRAUDULENT = "FRAUDULENT"
    DUPLICATE = "DUPLICATE"
    REQUESTED_BY_CUSTOMER = "REQUESTED_BY_CUSTOMER"
    CANCELLATION = "CANCELLATION"
    OTHERS = "OTHERS"


@dataclass(kw_only=True)
class RefundRequest(AggregateRoot):
    """Refund request aggregate root.

    Attributes:
        id: Refund request id, also the gateway ``reference_id``.
        order_id: Order being refunded.
        requester_id: Who asked for the refund.
        reason: Closed reason code.
        reason_note: Free-text explanation from the requester.
        amount: Requested amount in IDR.
        status: Current refund status.
        reviewed_by: Admin who approved or rejected.
        reviewed_at: Review timestamp.
        admin_notes: Accumulated operator and system notes.
        gateway_refund_id: Refund id assigned by the payment gateway.
        payment_reference: Invoice id the refund was issued against.
        refund_method: Channel used by the gateway.
        completed_at: Completion timestamp.
    """

    order_id: str
    amount: int
    reason: RefundReason
    requester_id: str | None = None
    reason_note: str | None = None
    status: RefundStatus = RefundStatus.PENDING
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    admin_notes: str | None = None
    gateway_refund_id: str | None = None
    payment_reference: str | None = None
    refund_method: str | None = None
    completed_at: datetime | None = None

    @classmethod
    def create(
        cls,
        order_id: str,
        order_total: int,
        amount: int,
        reason: RefundReason | str,
        requester_id: str | None = None,
        reason_note: str | None = None,
        refund_id: str | None = None,
    ) -> "RefundRequest":
        """Create a pending refund request.

        Args:
            order_id: Order being refunded.
            order_total: The order's total amount.
            amount: Requested amount, must satisfy 0 < amount <= order_total.
            reason: Reason code.
            requester_id: Who asked for the refund.
            reason_note: Free-text explanation.
            refund_id: Optional pre-generated id.

        Returns:
            New RefundRequest.

        Raises:
            InvalidRefundAmountError: If the amount is out of range.
            ValidationError: If the reason is not a known code.
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0 or amount > order_total:
            raise InvalidRefundAmountError(amount, order_total)
        try:
            reason = RefundReason(reason)
        except ValueError:
            raise ValidationError(
                f"Invalid refund reason: {reason}",
                details={"allowed": [r.value for r in RefundReason]},
            ) from None

        refund = cls(
            id=refund_id or _new_id(),
            order_id=order_id,
            amount=amount,
            reason=reason,
            requester_id=requester_id,
            reason_note=reason_note,
        )
        refund._record_event(
            RefundRequested(
                aggregate_id=refund.id,
                aggregate_type="RefundRequest",
                refund_id=refund.id,
                order_id=order_id,
                amount=amount,
                reason=reason.value,
            )
        )
        return refund

    def _transition(self, target: RefundStatus, now: datetime | None = None) -> None:
        validate_refund_transition(self.id, self.status, target)
        previous = self.status
        self.status = target
        self._touch(now)
        self._record_event(
            RefundStatusChanged(
                aggregate_id=self.id,
                aggregate_type="RefundRequest",
                refund_id=self.id,
                order_id=self.order_id,
                from_status=previous.value,
                to_status=target.value,
            )
        )

    def append_admin_note(self, note: str) -> None:
        """Append a line to the admin notes."""
        self.admin_notes = _append_line(self.admin_notes, note)
        self._touch()

    # -------------------------------------------------------------------------
    # Review
    # -------------------------------------------------------------------------

    def approve(self, reviewer_id: str, note: str | None = None, now: datetime | None = None) -> None:
        """Approve the request.

        Raises:
            InvalidStateTransitionError: If not pending.
        """
        self._transition(RefundStatus.APPROVED, now)
        self._stamp_review(reviewer_id, note, now)

    def reject(self, reviewer_id: str, note: str | None = None, now: datetime | None = None) -> None:
        """Reject the request.

        Raises:
            InvalidStateTransitionError: If not pending.
        """
        self._transition(RefundStatus.REJECTED, now)
        self._stamp_review(reviewer_id, note, now)

    def _stamp_review(self, reviewer_id: str, note: str | None, now: datetime | None) -> None:
        self.reviewed_by = reviewer_id
        self.reviewed_at = now or utcnow()
        if note:
            self.append_admin_note(note)

    # -------------------------------------------------------------------------
    # Gateway Lifecycle
    # -------------------------------------------------------------------------

    def start_processing(self, now: datetime | None = None) -> None:
        """Mark the request as submitted for processing.

        Raises:
            InvalidStateTransitionError: If not approved.
        """
        self._transition(RefundStatus.PROCESSING, now)

    def record_submission(
        self,
        gateway_refund_id: str | None,
        payment_reference: str,
        channel: str | None = None,
    ) -> None:
        """Store what the gateway returned when it accepted the refund."""
        self.record_gateway_refund_id(gateway_refund_id)
        self.payment_reference = payment_reference
        self.refund_method = channel or "XENDIT"
        self._touch()

    def record_gateway_refund_id(self, gateway_refund_id: str | None) -> bool:
        """Store the gateway refund id unless one is already stored."""
        if not gateway_refund_id or self.gateway_refund_id:
            return False
        self.gateway_refund_id = gateway_refund_id
        self._touch()
        return True

    def complete(self, note: str | None = None, now: datetime | None = None) -> None:
        """Mark the refund as completed.

        Raises:
            InvalidStateTransitionError: If not processing.
        """
        now = now or utcnow()
        self._transition(RefundStatus.COMPLETED, now)
        self.completed_at = now
        if note:
            self.append_admin_note(note)

    def fail(self, note: str | None = None, now: datetime | None = None) -> None:
        """Mark the refund as failed.

        Raises:
            InvalidStateTransitionError: If not processing.
        """
        self._transition(RefundStatus.FAILED, now)
        if note:
            self.append_admin_note(note)
