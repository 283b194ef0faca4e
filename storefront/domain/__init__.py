"""Domain layer - Aggregates, value objects, state machines, domain events.

This module exports the core building blocks of order reconciliation:

- **Aggregates**: Order and RefundRequest, versioned for compare-and-set writes
- **Value Objects**: Customer, address, courier selection, shipping items
- **State Machines**: OrderStatus and RefundStatus with explicit transition tables
- **Mappings**: Total tables from provider status vocabularies to domain states
- **Exceptions**: The error taxonomy callers react to

Example usage:
    from storefront.domain import CustomerInfo, Order, OrderItem, OrderStatus

    order = Order.create(
        customer=CustomerInfo(name="Ana", email="ana@example.com", phone="0812"),
        items=[OrderItem(product_id="p-1", product_name="Sagu", quantity=2, unit_price=75000)],
        total_amount=150000,
    )
    order.transition_to(OrderStatus.PAID, actor="xendit")
"""

# Base classes
from storefront.domain.base import AggregateRoot, DomainEvent, ValueObject

# Entities
from storefront.domain.entities import Order, OrderItem, RefundReason, RefundRequest

# Domain Events
from storefront.domain.events import (
    OrderCreated,
    OrderNoteAdded,
    OrderStatusChanged,
    RefundRequested,
    RefundStatusChanged,
    TrackingNumberAssigned,
)

# Exceptions
from storefront.domain.exceptions import (
    ConcurrentUpdateError,
    DomainError,
    ExternalProviderError,
    InvalidCallbackTokenError,
    InvalidRefundAmountError,
    InvalidStateTransitionError,
    MissingPaymentReferenceError,
    NotFoundError,
    OrderNotFoundError,
    PreconditionFailed,
    RefundNotFoundError,
    ReplayRejected,
    StaleWebhookError,
    TrackingAccessDenied,
    ValidationError,
)

# Provider status mappings
from storefront.domain.mappings import (
    InvoiceStatus,
    RefundGatewayStatus,
    ShipmentStatus,
    order_status_for_invoice,
    order_status_for_shipment,
    refund_status_for_gateway,
)

# State Machines
from storefront.domain.state_machines import (
    OrderStatus,
    RefundStatus,
    validate_order_transition,
    validate_refund_transition,
)

# Value Objects
from storefront.domain.value_objects import (
    CourierSelection,
    CustomerInfo,
    ShippingAddress,
    ShippingItem,
    ShippingOption,
    TrackingEvent,
)

__all__ = [
    # Base classes
    "AggregateRoot",
    "DomainEvent",
    "ValueObject",
    # Entities
    "Order",
    "OrderItem",
    "RefundReason",
    "RefundRequest",
    # Value Objects
    "CourierSelection",
    "CustomerInfo",
    "ShippingAddress",
    "ShippingItem",
    "ShippingOption",
    "TrackingEvent",
    # State Machines
    "OrderStatus",
    "RefundStatus",
    "validate_order_transition",
    "validate_refund_transition",
    # Mappings
    "InvoiceStatus",
    "RefundGatewayStatus",
    "ShipmentStatus",
    "order_status_for_invoice",
    "order_status_for_shipment",
    "refund_status_for_gateway",
    # Domain Events
    "OrderCreated",
    "OrderNoteAdded",
    "OrderStatusChanged",
    "RefundRequested",
    "RefundStatusChanged",
    "TrackingNumberAssigned",
    # Exceptions
    "ConcurrentUpdateError",
    "DomainError",
    "ExternalProviderError",
    "InvalidCallbackTokenError",
    "InvalidRefundAmountError",
    "InvalidStateTransitionError",
    "MissingPaymentReferenceError",
    "NotFoundError",
    "OrderNotFoundError",
    "PreconditionFailed",
    "RefundNotFoundError",
    "ReplayRejected",
    "StaleWebhookError",
    "TrackingAccessDenied",
    "ValidationError",
]
