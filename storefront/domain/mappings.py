"""Provider status vocabularies and their mapping to domain states.

Each external vocabulary is a closed enum and each mapping table is
total over it: every provider status maps either to a domain status or
to ``None``, which means "acknowledge without mutating". A status the
provider adds later is absent from the enum, parses to ``None`` and is
likewise acknowledged.
"""

from enum import Enum

from storefront.domain.state_machines import OrderStatus, RefundStatus


# ============================================================================
# Payment Invoice Statuses (Xendit)
# ============================================================================


class InvoiceStatus(str, Enum):
    """Invoice statuses reported by the payment gateway."""

    PENDING = "PENDING"
    PAID = "PAID"
    SETTLED = "SETTLED"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"


INVOICE_STATUS_TO_ORDER: dict[InvoiceStatus, OrderStatus | None] = {
    InvoiceStatus.PENDING: None,
    InvoiceStatus.PAID: OrderStatus.PAID,
    InvoiceStatus.SETTLED: OrderStatus.PAID,
    InvoiceStatus.EXPIRED: OrderStatus.EXPIRED,
    InvoiceStatus.FAILED: OrderStatus.FAILED,
}


# ============================================================================
# Shipment Statuses (Biteship)
# ============================================================================


class ShipmentStatus(str, Enum):
    """Shipment statuses reported by the courier aggregator."""

    CONFIRMED = "confirmed"
    SCHEDULED = "scheduled"
    ALLOCATED = "allocated"
    PICKING_UP = "picking_up"
    PICKED = "picked"
    DROPPING_OFF = "dropping_off"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"
    ON_HOLD = "on_hold"
    RETURN_IN_TRANSIT = "return_in_transit"
    REJECTED = "rejected"
    DISPOSED = "disposed"
    COURIER_NOT_FOUND = "courier_not_found"


SHIPMENT_STATUS_TO_ORDER: dict[ShipmentStatus, OrderStatus | None] = {
    ShipmentStatus.CONFIRMED: OrderStatus.PROCESSING,
    ShipmentStatus.SCHEDULED: None,
    ShipmentStatus.ALLOCATED: OrderStatus.PROCESSING,
    ShipmentStatus.PICKING_UP: OrderStatus.PROCESSING,
    ShipmentStatus.PICKED: OrderStatus.SHIPPED,
    ShipmentStatus.DROPPING_OFF: OrderStatus.SHIPPED,
    ShipmentStatus.DELIVERED: OrderStatus.DELIVERED,
    ShipmentStatus.CANCELLED: OrderStatus.CANCELLED,
    ShipmentStatus.RETURNED: OrderStatus.CANCELLED,
    # Recorded on the shipment only; an operator decides what happens to the order.
    ShipmentStatus.ON_HOLD: None,
    ShipmentStatus.RETURN_IN_TRANSIT: None,
    ShipmentStatus.REJECTED: None,
    ShipmentStatus.DISPOSED: None,
    ShipmentStatus.COURIER_NOT_FOUND: None,
}


# ============================================================================
# Refund Statuses (Xendit)
# ============================================================================


class RefundGatewayStatus(str, Enum):
    """Refund outcomes reported by the payment gateway."""

    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


REFUND_GATEWAY_STATUS_TO_REFUND: dict[RefundGatewayStatus, RefundStatus | None] = {
    RefundGatewayStatus.PENDING: None,
    RefundGatewayStatus.SUCCEEDED: RefundStatus.COMPLETED,
    RefundGatewayStatus.FAILED: RefundStatus.FAILED,
}


# ============================================================================
# Lookup Helpers
# ============================================================================


def _parse(enum_cls, raw: str | None, normalize):
    if raw is None:
        return None
    try:
        return enum_cls(normalize(raw.strip()))
    except ValueError:
        return None


def parse_invoice_status(raw: str | None) -> InvoiceStatus | None:
    """Parse a gateway invoice status, returning None when unrecognized."""
    return _parse(InvoiceStatus, raw, str.upper)


def parse_shipment_status(raw: str | None) -> ShipmentStatus | None:
    """Parse a courier status, returning None when unrecognized."""
    return _parse(ShipmentStatus, raw, str.lower)


def parse_refund_gateway_status(raw: str | None) -> RefundGatewayStatus | None:
    """Parse a gateway refund status, returning None when unrecognized."""
    return _parse(RefundGatewayStatus, raw, str.upper)


def order_status_for_invoice(raw: str | None) -> OrderStatus | None:
    """Map a raw invoice status to the order status it implies.

    Args:
        raw: Status string from the payment webhook.

    Returns:
        Target order status, or None if the payload should only be acknowledged.
    """
    status = parse_invoice_status(raw)
    return INVOICE_STATUS_TO_ORDER[status] if status is not None else None


def order_status_for_shipment(raw: str | None) -> OrderStatus | None:
    """Map a raw courier status to the order status it implies.

    Args:
        raw: Status string from the shipment webhook.

    Returns:
        Target order status, or None if the payload should only be acknowledged.
    """
    status = parse_shipment_status(raw)
    return SHIPMENT_STATUS_TO_ORDER[status] if status is not None else None


def refund_status_for_gateway(raw: str | None) -> RefundStatus | None:
    """Map a raw gateway refund outcome to the refund status it implies."""
    status = parse_refund_gateway_status(raw)
    return REFUND_GATEWAY_STATUS_TO_REFUND[status] if status is not None else None
