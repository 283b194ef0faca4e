"""State machines for domain entities.

Deterministic state machines that define valid state transitions
for orders and refund requests. Transition tables are the single
source of truth; webhook handlers consult them before writing.
"""

from enum import Enum

from storefront.domain.exceptions import InvalidStateTransitionError


# ============================================================================
# Order State Machine
# ============================================================================


class OrderStatus(str, Enum):
    """Order lifecycle states.

    State diagram:
        PENDING ──────┬──────────────┬───────────────► EXPIRED / FAILED
          │           │              │
          │ paid      │              │
          ▼           │              │
        PAID ─────────┤              │
          │           │ cancel       │ refund (externally driven)
          ▼           ▼              ▼
        PROCESSING ─► CANCELLED    REFUNDED
          │                          ▲
          ▼                          │
        SHIPPED ─────────────────────┤
          │                          │
          ▼                          │
        DELIVERED ───────────────────┘

    Fulfilment states may be skipped forward (a courier can report
    ``delivered`` without a prior ``picked``), never backward.
    """

    PENDING = "PENDING"
    PAID = "PAID"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"

    def can_transition_to(self, target: "OrderStatus") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _ORDER_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["OrderStatus"]:
        """Get list of valid target states.

        Returns:
            List of states that can be transitioned to.
        """
        return sorted(_ORDER_TRANSITIONS.get(self, set()), key=lambda s: s.value)

    def is_cancellable(self) -> bool:
        """Check if order can be cancelled."""
        return OrderStatus.CANCELLED in _ORDER_TRANSITIONS.get(self, set())

    def is_settled(self) -> bool:
        """Check if the order has been paid and not yet unwound.

        Returns:
            True if a refund may be requested against the order.
        """
        return self in {
            OrderStatus.PAID,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
        }

    def is_terminal(self) -> bool:
        """Check if this is a terminal state for the reconciliation protocol.

        DELIVERED is terminal for fulfilment even though a refund can
        still move it to REFUNDED.
        """
        return self in _TERMINAL_ORDER_STATES


_FULFILMENT_ORDER = [
    OrderStatus.PAID,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
]


def _build_order_transitions() -> dict[OrderStatus, set[OrderStatus]]:
    transitions: dict[OrderStatus, set[OrderStatus]] = {
        OrderStatus.PENDING: {
            OrderStatus.PAID,
            OrderStatus.EXPIRED,
            OrderStatus.FAILED,
            OrderStatus.CANCELLED,
        },
        OrderStatus.EXPIRED: set(),
        OrderStatus.FAILED: set(),
        OrderStatus.CANCELLED: set(),
        OrderStatus.REFUNDED: set(),
    }
    for index, status in enumerate(_FULFILMENT_ORDER):
        forward = set(_FULFILMENT_ORDER[index + 1 :])
        forward.add(OrderStatus.REFUNDED)
        if status != OrderStatus.DELIVERED:
            forward.add(OrderStatus.CANCELLED)
        transitions[status] = forward
    return transitions


# Order state transitions (defined outside enum to avoid Enum restrictions)
_ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = _build_order_transitions()

_TERMINAL_ORDER_STATES = {
    OrderStatus.DELIVERED,
    OrderStatus.EXPIRED,
    OrderStatus.FAILED,
    OrderStatus.CANCELLED,
    OrderStatus.REFUNDED,
}


# ============================================================================
# Refund State Machine
# ============================================================================


class RefundStatus(str, Enum):
    """Refund request lifecycle states.

    State diagram:
        PENDING ──────────────► REJECTED
          │
          │ approve
          ▼
        APPROVED
          │
          │ process (submitted to the payment gateway)
          ▼
        PROCESSING ───────────► FAILED
          │
          │ gateway SUCCEEDED
          ▼
        COMPLETED
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    def can_transition_to(self, target: "RefundStatus") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _REFUND_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["RefundStatus"]:
        """Get list of valid target states."""
        return sorted(_REFUND_TRANSITIONS.get(self, set()), key=lambda s: s.value)

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state.

        Returns:
            True if no further transitions are possible.
        """
        return len(_REFUND_TRANSITIONS.get(self, set())) == 0


_REFUND_TRANSITIONS: dict[RefundStatus, set[RefundStatus]] = {
    RefundStatus.PENDING: {RefundStatus.APPROVED, RefundStatus.REJECTED},
    RefundStatus.APPROVED: {RefundStatus.PROCESSING},
    RefundStatus.PROCESSING: {RefundStatus.COMPLETED, RefundStatus.FAILED},
    RefundStatus.REJECTED: set(),  # Terminal state
    RefundStatus.COMPLETED: set(),  # Terminal state
    RefundStatus.FAILED: set(),  # Terminal state
}


# ============================================================================
# State Machine Helpers
# ============================================================================


def validate_order_transition(
    order_id: str,
    current_status: OrderStatus,
    target_status: OrderStatus,
) -> None:
    """Validate and raise if order state transition is invalid.

    Args:
        order_id: Order identifier for error message.
        current_status: Current order status.
        target_status: Target order status.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="Order",
            entity_id=order_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )


def validate_refund_transition(
    refund_id: str,
    current_status: RefundStatus,
    target_status: RefundStatus,
) -> None:
    """Validate and raise if refund state transition is invalid.

    Args:
        refund_id: Refund request identifier for error message.
        current_status: Current refund status.
        target_status: Target refund status.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="RefundRequest",
            entity_id=refund_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )
