"""SQLAlchemy models for database tables.

Provides ORM models for orders, order items, status history, internal
order notes and refund requests. Orders and refund requests carry a
``version`` column used for compare-and-set updates.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)

from storefront.infrastructure.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Order Models
# ============================================================================


class OrderModel(Base):
    """Order model for database persistence.

    Mirrors the Order aggregate; ``external_id`` holds the payment
    gateway invoice id and ``shipment_id`` the courier aggregator order id.
    """

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    version = Column(Integer, nullable=False, default=1)
    user_id = Column(String(36), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="PENDING", index=True)

    # Amounts (IDR)
    total_amount = Column(Integer, nullable=False)
    shipping_cost = Column(Integer, nullable=False, default=0)

    # Customer info
    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False, index=True)
    customer_phone = Column(String(50), nullable=False)

    # Shipping address
    shipping_address = Column(Text, nullable=False, default="")
    city = Column(String(100), nullable=False, default="")
    postal_code = Column(String(20), nullable=False, default="")

    # Courier selection
    courier_code = Column(String(50), nullable=True)
    courier_name = Column(String(100), nullable=True)
    service_code = Column(String(50), nullable=True)
    service_name = Column(String(100), nullable=True)
    estimated_delivery_days = Column(String(20), nullable=True)
    is_local_delivery = Column(Boolean, nullable=False, default=False)
    total_weight_kg = Column(Float, nullable=False, default=1.0)

    # Provider references
    external_id = Column(String(100), nullable=True, index=True)
    invoice_url = Column(Text, nullable=True)
    shipment_id = Column(String(100), nullable=True, unique=True)
    shipment_status = Column(String(50), nullable=True)
    tracking_number = Column(String(100), nullable=True)
    shipping_notes = Column(Text, nullable=True)

    # Guest tracking
    tracking_token = Column(String(64), nullable=False)
    tracking_access_token = Column(String(64), nullable=True, unique=True)
    tracking_access_expires_at = Column(DateTime(timezone=True), nullable=True)

    cancelled_reason = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)


class OrderItemModel(Base):
    """Order item snapshot, written once at checkout."""

    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(String(100), nullable=False)
    product_name = Column(String(500), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False)
    weight_grams = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class OrderStatusHistoryModel(Base):
    """Order status history model for audit trail.

    One row per real status transition; re-applied webhooks write none.
    """

    __tablename__ = "order_status_history"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    reason = Column(Text, nullable=True)
    actor = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class OrderNoteModel(Base):
    """Internal, operator-facing note attached to an order."""

    __tablename__ = "order_notes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    note = Column(Text, nullable=False)
    author = Column(String(100), nullable=True)
    is_internal = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ============================================================================
# Refund Models
# ============================================================================


class RefundRequestModel(Base):
    """Refund request model for database persistence."""

    __tablename__ = "refund_requests"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    version = Column(Integer, nullable=False, default=1)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    requester_id = Column(String(36), nullable=True)
    reason = Column(String(30), nullable=False)
    reason_note = Column(Text, nullable=True)
    amount = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    reviewed_by = Column(String(36), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    admin_notes = Column(Text, nullable=True)
    gateway_refund_id = Column(String(100), nullable=True)
    payment_reference = Column(String(100), nullable=True)
    refund_method = Column(String(50), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
