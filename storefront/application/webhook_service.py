"""Webhook processing service.

Entry point for provider callbacks:
- Xendit invoice webhooks (payment status)
- Xendit refund webhooks (refund outcome)
- Biteship webhooks (shipment status and waybill)

Providers retry aggressively on non-2xx responses, so every delivery is
acknowledged, including ones that fail to process. The only rejections
are authenticity failures: a wrong callback token or a stale timestamp.
"""

from typing import Any

import structlog

from storefront.application.payment_service import PaymentService, get_payment_service
from storefront.application.refund_service import RefundService, get_refund_service
from storefront.application.shipping_service import ShippingService, get_shipping_service
from storefront.application.webhook_results import WebhookResult
from storefront.application.webhook_security import CallbackTokenVerifier
from storefront.domain.exceptions import DomainError
from storefront.infrastructure.config import Settings, get_settings

logger = structlog.get_logger()


class WebhookService:
    """Service for processing provider webhooks."""

    def __init__(
        self,
        payment_service: PaymentService | None = None,
        shipping_service: ShippingService | None = None,
        refund_service: RefundService | None = None,
        verifier: CallbackTokenVerifier | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize webhook service.

        Args:
            payment_service: Handles invoice status.
            shipping_service: Handles shipment events.
            refund_service: Handles refund outcomes.
            verifier: Callback token and freshness checks.
            settings: Application settings.
        """
        settings = settings or get_settings()
        self.payment_service = payment_service or get_payment_service()
        self.shipping_service = shipping_service or get_shipping_service()
        self.refund_service = refund_service or get_refund_service()
        self.verifier = verifier or CallbackTokenVerifier(
            settings.xendit_callback_token,
            settings.webhook_replay_tolerance_seconds,
        )

    async def handle_invoice(self, payload: Any, callback_token: str | None) -> WebhookResult:
        """Process a Xendit invoice webhook.

        The callback token is checked when one is configured, and
        ``created`` is checked when the payload carries it.

        Raises:
            ReplayRejected: If the token or timestamp check fails.
        """
        self.verifier.verify_token(callback_token, source="xendit_invoice")
        if not isinstance(payload, dict):
            return self._invalid_payload("xendit_invoice")
        self.verifier.verify_freshness(payload.get("created"), source="xendit_invoice")

        log = logger.bind(webhook="xendit_invoice", order_id=payload.get("external_id"))
        log.info("Invoice webhook received", invoice_status=payload.get("status"))
        try:
            return await self.payment_service.apply_invoice_status(
                external_id=payload.get("external_id"),
                raw_status=payload.get("status"),
                paid_amount=payload.get("paid_amount"),
            )
        except DomainError as e:
            log.error("Invoice webhook processing failed", error=e.message, error_code=e.error_code)
            return WebhookResult.failed(e.message, payload.get("external_id"))
        except Exception as e:
            log.exception("Unexpected error processing invoice webhook")
            return WebhookResult.failed(str(e), payload.get("external_id"))

    async def handle_refund(self, payload: Any, callback_token: str | None) -> WebhookResult:
        """Process a Xendit refund webhook.

        Both the callback token and a fresh ``created`` timestamp are
        mandatory for refunds.

        Raises:
            InvalidCallbackTokenError: If the token is missing or wrong.
            StaleWebhookError: If ``created`` is missing or outside tolerance.
        """
        self.verifier.verify_token(callback_token, source="xendit_refund", required=True)
        if not isinstance(payload, dict):
            return self._invalid_payload("xendit_refund")
        self.verifier.verify_freshness(payload.get("created"), source="xendit_refund", required=True)

        data = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        reference_id = data.get("reference_id")
        log = logger.bind(webhook="xendit_refund", refund_id=reference_id)
        log.info(
            "Refund webhook received",
            refund_event=payload.get("event"),
            gateway_status=data.get("status"),
            gateway_refund_id=data.get("id"),
        )
        try:
            return await self.refund_service.resolve(
                reference_id=reference_id,
                raw_status=data.get("status"),
                gateway_refund_id=data.get("id"),
                channel_code=data.get("channel_code"),
                failure_code=data.get("failure_code"),
            )
        except DomainError as e:
            log.error("Refund webhook processing failed", error=e.message, error_code=e.error_code)
            return WebhookResult.failed(e.message, reference_id)
        except Exception as e:
            log.exception("Unexpected error processing refund webhook")
            return WebhookResult.failed(str(e), reference_id)

    async def handle_shipment(self, payload: Any) -> WebhookResult:
        """Process a Biteship webhook. Never raises."""
        if not isinstance(payload, dict):
            return self._invalid_payload("biteship")

        log = logger.bind(webhook="biteship", shipment_id=payload.get("order_id"))
        log.info(
            "Biteship webhook received",
            biteship_event=payload.get("event"),
            provider_status=payload.get("status"),
        )
        try:
            return await self.shipping_service.apply_shipment_event(payload)
        except DomainError as e:
            log.error("Biteship webhook processing failed", error=e.message, error_code=e.error_code)
            return WebhookResult.failed(e.message)
        except Exception as e:
            log.exception("Unexpected error processing Biteship webhook")
            return WebhookResult.failed(str(e))

    def _invalid_payload(self, source: str) -> WebhookResult:
        logger.warning("Webhook payload is not a JSON object", webhook=source)
        return WebhookResult.failed("Invalid payload")


# ============================================================================
# Service Factory
# ============================================================================


def get_webhook_service() -> WebhookService:
    """Get webhook service instance."""
    return WebhookService()
