"""Domain exceptions.

All domain-level errors that represent business rule violations.
The hierarchy mirrors how callers react to them:

- ValidationError: malformed or out-of-range input, never retried
- NotFoundError: unknown order or refund reference
- PreconditionFailed: a state-machine guard was violated
- ExternalProviderError: the payment or shipping provider call failed
- ReplayRejected: a forged or stale webhook
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain exceptions.

    All domain errors should inherit from this class to allow
    catching domain-specific errors at the application layer.
    """

    error_code = "DOMAIN_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# Validation Errors
# ============================================================================


class ValidationError(DomainError):
    """Raised when input is malformed or out of range."""

    error_code = "VALIDATION_ERROR"


class InvalidRefundAmountError(ValidationError):
    """Raised when a refund amount is not within (0, refundable balance]."""

    error_code = "INVALID_REFUND_AMOUNT"

    def __init__(self, amount: int, order_total: int, committed: int = 0) -> None:
        refundable = max(order_total - committed, 0)
        super().__init__(
            f"Refund amount {amount} must be greater than 0 and at most {refundable}",
            details={
                "amount": amount,
                "order_total": order_total,
                "already_requested": committed,
                "refundable": refundable,
            },
        )


# ============================================================================
# Lookup Errors
# ============================================================================


class NotFoundError(DomainError):
    """Raised when a referenced entity does not exist."""

    error_code = "NOT_FOUND"


class OrderNotFoundError(NotFoundError):
    """Raised when an order cannot be found."""

    error_code = "ORDER_NOT_FOUND"

    def __init__(self, reference: str, field: str = "id") -> None:
        super().__init__(
            f"Order not found: {reference}",
            details={"reference": reference, "field": field},
        )


class RefundNotFoundError(NotFoundError):
    """Raised when a refund request cannot be found."""

    error_code = "REFUND_NOT_FOUND"

    def __init__(self, refund_id: str) -> None:
        super().__init__(
            f"Refund request not found: {refund_id}",
            details={"refund_id": refund_id},
        )


# ============================================================================
# State Machine Errors
# ============================================================================


class PreconditionFailed(DomainError):
    """Raised when an operation's state guard does not hold.

    No partial mutation is persisted when this is raised.
    """

    error_code = "PRECONDITION_FAILED"


class InvalidStateTransitionError(PreconditionFailed):
    """Raised when an invalid state transition is attempted."""

    error_code = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        """Initialize invalid state transition error.

        Args:
            entity_type: Type of entity (e.g., "Order", "RefundRequest").
            entity_id: ID of the entity.
            current_state: Current state of the entity.
            target_state: Attempted target state.
            allowed_transitions: List of allowed target states from current state.
        """
        allowed = allowed_transitions or []
        message = (
            f"Cannot transition {entity_type}({entity_id}) "
            f"from '{current_state}' to '{target_state}'. "
            f"Allowed transitions: {allowed}"
        )
        super().__init__(
            message,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )


class ConcurrentUpdateError(PreconditionFailed):
    """Raised when an entity kept changing underneath a compare-and-set write."""

    error_code = "CONCURRENT_UPDATE"

    def __init__(self, entity_type: str, entity_id: str, attempts: int) -> None:
        super().__init__(
            f"{entity_type}({entity_id}) was modified concurrently; gave up after {attempts} attempts",
            details={"entity_type": entity_type, "entity_id": entity_id, "attempts": attempts},
        )


class MissingPaymentReferenceError(PreconditionFailed):
    """Raised when a refund cannot be submitted because the order was never invoiced."""

    error_code = "MISSING_PAYMENT_REFERENCE"

    def __init__(self, refund_id: str, order_id: str) -> None:
        super().__init__(
            f"No payment reference found for order {order_id}; refund {refund_id} cannot be processed",
            details={"refund_id": refund_id, "order_id": order_id},
        )


# ============================================================================
# External Provider Errors
# ============================================================================


class ExternalProviderError(DomainError):
    """Raised when a call to the payment or shipping provider fails."""

    error_code = "EXTERNAL_PROVIDER_ERROR"

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(
            f"[{provider}] {message}",
            details={"provider": provider, "status_code": status_code},
        )
        self.provider = provider
        self.provider_message = message
        self.status_code = status_code


# ============================================================================
# Webhook Authenticity Errors
# ============================================================================


class ReplayRejected(DomainError):
    """Raised when a webhook is unsigned, forged, or replayed."""

    error_code = "WEBHOOK_REJECTED"


class InvalidCallbackTokenError(ReplayRejected):
    """Raised when the shared-secret callback header does not match."""

    error_code = "INVALID_CALLBACK_TOKEN"

    def __init__(self) -> None:
        super().__init__("Invalid callback token")


class StaleWebhookError(ReplayRejected):
    """Raised when a webhook's creation timestamp is outside the tolerance window."""

    error_code = "WEBHOOK_EXPIRED"

    def __init__(self, created: str | None, tolerance_seconds: int) -> None:
        super().__init__(
            "Webhook timestamp is missing, too old, or in the future",
            details={"created": created, "tolerance_seconds": tolerance_seconds},
        )


# ============================================================================
# Guest Tracking Errors
# ============================================================================


class TrackingAccessDenied(DomainError):
    """Raised when a guest tracking token is absent, mismatched, or expired."""

    error_code = "TRACKING_ACCESS_DENIED"

    def __init__(self, message: str, missing: bool = False) -> None:
        super().__init__(message, details={"missing": missing})
        self.missing = missing
