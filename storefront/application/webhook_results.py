"""Result types shared by the webhook handlers."""

from dataclasses import dataclass
from enum import Enum


class WebhookOutcome(str, Enum):
    """What a webhook delivery did to our state."""

    PROCESSED = "processed"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass
class WebhookResult:
    """Result of webhook processing.

    Every result is acknowledged with HTTP 200; ``success`` only tells
    the provider (and our logs) whether the payload matched anything.

    Attributes:
        success: Whether the payload was matched and handled.
        outcome: What happened to our state.
        message: Status message.
        entity_id: Order or refund id the delivery resolved to.
        status: Resulting order or refund status, if known.
    """

    success: bool
    outcome: WebhookOutcome
    message: str
    entity_id: str | None = None
    status: str | None = None

    @classmethod
    def processed(cls, message: str, entity_id: str, status: str | None = None) -> "WebhookResult":
        """Delivery changed (or confirmed) our state."""
        return cls(True, WebhookOutcome.PROCESSED, message, entity_id, status)

    @classmethod
    def ignored(
        cls,
        message: str,
        entity_id: str | None = None,
        status: str | None = None,
        success: bool = True,
    ) -> "WebhookResult":
        """Delivery acknowledged without any state change."""
        return cls(success, WebhookOutcome.IGNORED, message, entity_id, status)

    @classmethod
    def failed(cls, message: str, entity_id: str | None = None) -> "WebhookResult":
        """Delivery could not be handled; acknowledged anyway."""
        return cls(False, WebhookOutcome.FAILED, message, entity_id)
