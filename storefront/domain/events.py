"""Domain events for the storefront.

Events are recorded by aggregates while they mutate and drained by the
application layer, which turns them into status-history rows and
internal notes written alongside the aggregate, then logs them with
``to_dict``.
"""

from dataclasses import dataclass
from typing import Any, ClassVar

from storefront.domain.base import DomainEvent


# ============================================================================
# Order Events
# ============================================================================


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Event raised when an order is placed at checkout."""

    event_type: ClassVar[str] = "order.created"

    order_id: str = ""
    total_amount: int = 0
    item_count: int = 0
    is_local_delivery: bool = False

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "order_id": self.order_id,
            "total_amount": self.total_amount,
            "item_count": self.item_count,
            "is_local_delivery": self.is_local_delivery,
        }


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Event raised when an order moves along its state machine."""

    event_type: ClassVar[str] = "order.status_changed"

    order_id: str = ""
    from_status: str = ""
    to_status: str = ""
    actor: str = "system"
    reason: str | None = None

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "order_id": self.order_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor": self.actor,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class TrackingNumberAssigned(DomainEvent):
    """Event raised when a tracking number is stored on an order."""

    event_type: ClassVar[str] = "order.tracking_number_assigned"

    order_id: str = ""
    tracking_number: str = ""
    previous: str | None = None
    actor: str = "system"

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "order_id": self.order_id,
            "tracking_number": self.tracking_number,
            "previous": self.previous,
            "actor": self.actor,
        }


@dataclass(frozen=True)
class OrderNoteAdded(DomainEvent):
    """Event raised when an internal note is attached to an order."""

    event_type: ClassVar[str] = "order.note_added"

    order_id: str = ""
    note: str = ""
    author: str = "system"

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {"order_id": self.order_id, "note": self.note, "author": self.author}


# ============================================================================
# Refund Events
# ============================================================================


@dataclass(frozen=True)
class RefundRequested(DomainEvent):
    """Event raised when a refund is requested against an order."""

    event_type: ClassVar[str] = "refund.requested"

    refund_id: str = ""
    order_id: str = ""
    amount: int = 0
    reason: str = ""

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "refund_id": self.refund_id,
            "order_id": self.order_id,
            "amount": self.amount,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class RefundStatusChanged(DomainEvent):
    """Event raised when a refund request changes status."""

    event_type: ClassVar[str] = "refund.status_changed"

    refund_id: str = ""
    order_id: str = ""
    from_status: str = ""
    to_status: str = ""

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "refund_id": self.refund_id,
            "order_id": self.order_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
        }
