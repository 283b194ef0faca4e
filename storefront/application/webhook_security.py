"""Webhook authenticity checks.

Xendit authenticates callbacks with a shared secret sent in the
``x-callback-token`` header and embeds a ``created`` timestamp in
refund payloads. These two checks are the only reasons a webhook
handler rejects a delivery instead of acknowledging it.
"""

import hmac
from datetime import datetime, timezone

import structlog

from storefront.domain.base import utcnow
from storefront.domain.exceptions import InvalidCallbackTokenError, StaleWebhookError

logger = structlog.get_logger()


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, treating naive values as UTC.

    Returns:
        Parsed datetime, or None if absent or malformed.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class CallbackTokenVerifier:
    """Verifies the shared-secret callback header and payload freshness."""

    def __init__(self, token: str | None, tolerance_seconds: int = 300) -> None:
        """Initialize verifier.

        Args:
            token: Expected callback token; empty disables the header check.
            tolerance_seconds: Maximum allowed distance between a payload's
                ``created`` timestamp and now, in either direction.
        """
        self.token = token or ""
        self.tolerance_seconds = tolerance_seconds

    @property
    def enabled(self) -> bool:
        """Check if a callback token is configured."""
        return bool(self.token)

    def verify_token(self, incoming: str | None, source: str, required: bool = False) -> None:
        """Verify the callback token header.

        Args:
            incoming: Header value sent by the caller.
            source: Webhook name for logging.
            required: Reject even when no token is configured.

        Raises:
            InvalidCallbackTokenError: If the token does not match.
        """
        if not self.enabled:
            if required:
                logger.error("Callback token required but not configured", source=source)
                raise InvalidCallbackTokenError()
            return
        if not incoming or not hmac.compare_digest(incoming.encode(), self.token.encode()):
            logger.warning("Webhook callback token mismatch", source=source)
            raise InvalidCallbackTokenError()

    def verify_freshness(
        self,
        created: str | None,
        source: str,
        required: bool = False,
        now: datetime | None = None,
    ) -> None:
        """Reject payloads whose ``created`` timestamp is outside the window.

        Args:
            created: Timestamp embedded in the payload.
            source: Webhook name for logging.
            required: Reject payloads that carry no timestamp.
            now: Current time.

        Raises:
            StaleWebhookError: If the timestamp is missing (when required),
                malformed, or further than the tolerance from now.
        """
        if created is None and not required:
            return
        parsed = parse_timestamp(created)
        if parsed is None:
            logger.warning("Webhook timestamp missing or malformed", source=source, created=created)
            raise StaleWebhookError(created, self.tolerance_seconds)
        drift = abs(((now or utcnow()) - parsed).total_seconds())
        if drift > self.tolerance_seconds:
            logger.warning(
                "Webhook timestamp outside tolerance",
                source=source,
                created=created,
                drift_seconds=int(drift),
            )
            raise StaleWebhookError(created, self.tolerance_seconds)
