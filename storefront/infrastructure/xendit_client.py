"""Xendit HTTP client.

Creates payment invoices at checkout and submits refunds against paid
invoices. Calls are single-shot with a short timeout; retrying is left
to the caller (an admin re-processing a refund, or Xendit re-sending a
webhook).
"""

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from storefront.domain.exceptions import ExternalProviderError
from storefront.infrastructure.config import Settings, get_settings

logger = structlog.get_logger()

PROVIDER = "xendit"


# ============================================================================
# Response Types
# ============================================================================


@dataclass
class XenditInvoice:
    """Invoice created by Xendit."""

    id: str
    external_id: str
    status: str
    invoice_url: str | None
    amount: int

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "XenditInvoice":
        """Create from API response data."""
        return cls(
            id=data["id"],
            external_id=data.get("external_id", ""),
            status=data.get("status", "PENDING"),
            invoice_url=data.get("invoice_url"),
            amount=int(data.get("amount", 0)),
        )


@dataclass
class XenditRefund:
    """Refund accepted by Xendit."""

    id: str
    status: str
    amount: int
    currency: str
    channel_code: str | None
    reference_id: str | None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "XenditRefund":
        """Create from API response data."""
        return cls(
            id=data["id"],
            status=data.get("status", "PENDING"),
            amount=int(data.get("amount", 0)),
            currency=data.get("currency", "IDR"),
            channel_code=data.get("channel_code"),
            reference_id=data.get("reference_id"),
        )


def _error_detail(response: httpx.Response) -> str:
    """Extract the most useful error text from a Xendit error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return body.get("message") or body.get("error_code") or response.text
    return response.text


# ============================================================================
# Xendit Client
# ============================================================================


class XenditClient:
    """HTTP client for the Xendit invoice and refund APIs.

    Authenticates with HTTP basic auth using the secret key as username
    and an empty password.
    """

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.xendit.co",
        timeout: float = 10.0,
        refund_api_version: str = "2022-07-31",
        currency: str = "IDR",
        payment_methods: list[str] | None = None,
    ) -> None:
        """Initialize Xendit client.

        Args:
            secret_key: Xendit secret API key.
            base_url: API base URL.
            timeout: Request timeout in seconds.
            refund_api_version: Value of the ``api-version`` header for refunds.
            currency: Invoice currency.
            payment_methods: Payment methods enabled on invoices.
        """
        self.secret_key = secret_key
        self.base_url = base_url
        self.timeout = timeout
        self.refund_api_version = refund_api_version
        self.currency = currency
        self.payment_methods = payment_methods or []
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if not self.secret_key:
            raise ExternalProviderError(PROVIDER, "XENDIT_SECRET_KEY not configured")
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                auth=(self.secret_key, ""),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def create_invoice(
        self,
        external_id: str,
        amount: int,
        payer_email: str,
        description: str,
        customer: dict[str, Any],
        items: list[dict[str, Any]],
        success_redirect_url: str | None = None,
        failure_redirect_url: str | None = None,
    ) -> XenditInvoice:
        """Create a hosted payment invoice.

        Args:
            external_id: Our order id; echoed back in payment webhooks.
            amount: Amount to charge.
            payer_email: Customer email.
            description: Human-readable invoice description.
            customer: Customer block (given_names, email, mobile_number).
            items: Invoice line items.
            success_redirect_url: Redirect after successful payment.
            failure_redirect_url: Redirect after failed payment.

        Returns:
            The created invoice.

        Raises:
            ExternalProviderError: On API or transport error.
        """
        payload: dict[str, Any] = {
            "external_id": external_id,
            "amount": amount,
            "payer_email": payer_email,
            "description": description,
            "currency": self.currency,
            "customer": customer,
            "items": items,
        }
        if self.payment_methods:
            payload["payment_methods"] = self.payment_methods
        if success_redirect_url:
            payload["success_redirect_url"] = success_redirect_url
        if failure_redirect_url:
            payload["failure_redirect_url"] = failure_redirect_url

        try:
            client = await self._get_client()
            response = await client.post("/v2/invoices", json=payload)
        except httpx.RequestError as e:
            logger.error("Xendit invoice request failed", external_id=external_id, error=str(e))
            raise ExternalProviderError(PROVIDER, f"Invoice request failed: {e}") from e

        if response.status_code not in (200, 201):
            detail = _error_detail(response)
            logger.error(
                "Xendit invoice creation rejected",
                external_id=external_id,
                status_code=response.status_code,
                detail=detail,
            )
            raise ExternalProviderError(PROVIDER, detail, response.status_code)

        invoice = XenditInvoice.from_api_response(response.json())
        logger.info("Xendit invoice created", external_id=external_id, invoice_id=invoice.id)
        return invoice

    async def create_refund(
        self,
        invoice_id: str,
        reference_id: str,
        amount: int,
        reason: str,
        metadata: dict[str, Any] | None = None,
    ) -> XenditRefund:
        """Submit a refund against a paid invoice.

        ``reference_id`` is our refund request id. Xendit de-duplicates on
        it, so resubmitting the same refund can never refund twice.

        Args:
            invoice_id: Invoice the payment was made against.
            reference_id: Our refund request id.
            amount: Amount to refund.
            reason: Refund reason code.
            metadata: Extra context stored with the refund.

        Returns:
            The accepted refund.

        Raises:
            ExternalProviderError: On API or transport error.
        """
        payload = {
            "invoice_id": invoice_id,
            "reference_id": reference_id,
            "reason": reason,
            "amount": amount,
            "currency": self.currency,
            "metadata": metadata or {},
        }
        try:
            client = await self._get_client()
            response = await client.post(
                "/refunds",
                json=payload,
                headers={"api-version": self.refund_api_version},
            )
        except httpx.RequestError as e:
            logger.error("Xendit refund request failed", reference_id=reference_id, error=str(e))
            raise ExternalProviderError(PROVIDER, f"Refund request failed: {e}") from e

        if response.status_code not in (200, 201):
            detail = _error_detail(response)
            logger.error(
                "Xendit refund rejected",
                reference_id=reference_id,
                status_code=response.status_code,
                detail=detail,
            )
            raise ExternalProviderError(PROVIDER, detail, response.status_code)

        refund = XenditRefund.from_api_response(response.json())
        logger.info("Xendit refund submitted", reference_id=reference_id, refund_id=refund.id)
        return refund


def build_xendit_client(settings: Settings | None = None) -> XenditClient:
    """Build a Xendit client from settings."""
    settings = settings or get_settings()
    return XenditClient(
        secret_key=settings.xendit_secret_key,
        base_url=settings.xendit_base_url,
        timeout=settings.http_timeout_seconds,
        refund_api_version=settings.xendit_refund_api_version,
        currency=settings.invoice_currency,
        payment_methods=settings.invoice_payment_methods,
    )


# Global client instance
_xendit_client: XenditClient | None = None


def get_xendit_client() -> XenditClient:
    """Get the Xendit client singleton."""
    global _xendit_client
    if _xendit_client is None:
        _xendit_client = build_xendit_client()
    return _xendit_client
