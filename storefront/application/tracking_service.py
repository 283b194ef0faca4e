"""Guest order tracking.

Guests check out without an account. To look at an order later they
prove ownership once (order id plus checkout email) and receive a
short-lived access token; tracking reads present that token instead of
a session.
"""

from dataclasses import dataclass
from datetime import datetime

import structlog

from storefront.application.order_service import OrderService, get_order_service
from storefront.domain.base import utcnow
from storefront.domain.entities import Order
from storefront.domain.exceptions import OrderNotFoundError, TrackingAccessDenied, ValidationError
from storefront.domain.value_objects import is_valid_email
from storefront.infrastructure.config import Settings, get_settings

logger = structlog.get_logger()


@dataclass
class TrackingAccess:
    """Guest tracking capability."""

    order_id: str
    access_token: str
    expires_at: datetime


class TrackingService:
    """Issues and checks guest tracking tokens."""

    def __init__(self, order_service: OrderService | None = None, settings: Settings | None = None) -> None:
        self.order_service = order_service or get_order_service()
        self.settings = settings or get_settings()

    async def verify(self, email: str, order_id: str) -> TrackingAccess:
        """Mint a tracking token for a guest who knows the order id and email.

        A new token replaces any token issued earlier for the same order.

        Raises:
            ValidationError: If either field is missing or the email is malformed.
            OrderNotFoundError: If no order matches both values.
        """
        email = (email or "").strip().lower()
        if not email or not order_id:
            raise ValidationError("Email and Order ID are required")
        if not is_valid_email(email):
            raise ValidationError("Invalid email format", details={"email": email})

        order = await self.order_service.order_repo.get(order_id)
        if order is None or order.customer.email != email:
            logger.info("Tracking verification failed", order_id=order_id)
            raise OrderNotFoundError(order_id)

        ttl = self.settings.tracking_access_ttl_seconds
        mutation = await self.order_service.update(
            order_id, lambda o: o.issue_tracking_access(ttl)
        )
        token, expires_at = mutation.result
        logger.info("Tracking access issued", order_id=order_id, expires_at=expires_at.isoformat())
        return TrackingAccess(order_id=order_id, access_token=token, expires_at=expires_at)

    async def get_order(self, token: str | None, now: datetime | None = None) -> Order:
        """Resolve a tracking token to its order.

        Raises:
            TrackingAccessDenied: If the token is missing, unknown or expired.
        """
        if not token:
            raise TrackingAccessDenied("Tracking token is required", missing=True)
        order = await self.order_service.order_repo.get_by_tracking_access_token(token)
        if order is None or not order.has_valid_tracking_access(token, now or utcnow()):
            raise TrackingAccessDenied("Invalid or expired tracking token")
        return order


# ============================================================================
# Service Factory
# ============================================================================


def get_tracking_service() -> TrackingService:
    """Get tracking service instance."""
    return TrackingService()
