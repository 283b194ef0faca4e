"""Biteship HTTP client.

Wraps the courier aggregator endpoints used for rate calculation,
shipment booking, cancellation and tracking.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx
import structlog

from storefront.domain.exceptions import ExternalProviderError
from storefront.infrastructure.config import Settings, get_settings

logger = structlog.get_logger()

PROVIDER = "biteship"


# ============================================================================
# Response Types
# ============================================================================


@dataclass
class CourierRate:
    """A courier/service price quote."""

    courier_code: str
    courier_name: str
    service_code: str
    service_name: str
    price: int
    duration: str | None
    description: str | None
    available: bool

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "CourierRate":
        """Create from API response data."""
        return cls(
            courier_code=data.get("courier_code", ""),
            courier_name=data.get("courier_name", ""),
            service_code=data.get("courier_service_code", ""),
            service_name=data.get("courier_service_name", ""),
            price=int(data.get("price", 0)),
            duration=data.get("duration"),
            description=data.get("description"),
            available=data.get("available", True),
        )


@dataclass
class BiteshipOrder:
    """Shipment booked with Biteship."""

    id: str
    status: str | None
    waybill_id: str | None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "BiteshipOrder":
        """Create from API response data."""
        courier = data.get("courier") or {}
        return cls(
            id=data["id"],
            status=data.get("status"),
            waybill_id=courier.get("waybill_id"),
        )


@dataclass
class BiteshipTracking:
    """Tracking state of a shipment."""

    status: str | None
    courier_name: str | None
    service_name: str | None
    link: str | None
    history: list[dict[str, Any]] = field(default_factory=list)
    current_location: dict[str, Any] | str | None = None
    destination: dict[str, Any] | str | None = None
    delivery_time: str | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "BiteshipTracking":
        """Create from API response data."""
        courier = data.get("courier") or {}
        return cls(
            status=data.get("status"),
            courier_name=courier.get("company") or courier.get("name"),
            service_name=courier.get("service_name"),
            link=data.get("link"),
            history=list(data.get("history") or []),
            current_location=data.get("current_location"),
            destination=data.get("destination"),
            delivery_time=data.get("delivery_time"),
        )


class CancelOutcome(str, Enum):
    """Result of a cancellation request."""

    CANCELLED = "cancelled"
    ALREADY_GONE = "already_gone"


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return body.get("error") or body.get("message") or response.text
    return response.text


# ============================================================================
# Biteship Client
# ============================================================================


class BiteshipClient:
    """HTTP client for the Biteship API.

    The API key is sent verbatim in the ``Authorization`` header.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.biteship.com/v1",
        timeout: float = 10.0,
    ) -> None:
        """Initialize Biteship client.

        Args:
            api_key: Biteship API key.
            base_url: API base URL.
            timeout: Request timeout in seconds.
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def is_configured(self) -> bool:
        """Check if an API key is available."""
        return bool(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if not self.api_key:
            raise ExternalProviderError(PROVIDER, "Biteship API key not configured")
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Authorization": self.api_key},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            client = await self._get_client()
            return await client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            logger.error("Biteship request failed", path=path, error=str(e))
            raise ExternalProviderError(PROVIDER, f"Request failed: {e}") from e

    async def find_area_id(self, query: str) -> str | None:
        """Resolve a city name to a Biteship area id.

        Args:
            query: City or area name.

        Returns:
            First matching area id, or None if nothing matched.

        Raises:
            ExternalProviderError: On API or transport error.
        """
        response = await self._request(
            "GET",
            "/maps/areas",
            params={"countries": "ID", "input": query, "type": "single"},
        )
        if response.status_code != 200:
            raise ExternalProviderError(PROVIDER, _error_detail(response), response.status_code)
        areas = response.json().get("areas") or []
        return areas[0].get("id") if areas else None

    async def get_rates(self, payload: dict[str, Any]) -> list[CourierRate]:
        """Request courier rates.

        Args:
            payload: Origin/destination, couriers and items.

        Returns:
            Rates as returned by Biteship, including unavailable ones.

        Raises:
            ExternalProviderError: On API or transport error.
        """
        response = await self._request("POST", "/rates/couriers", json=payload)
        if response.status_code != 200:
            raise ExternalProviderError(PROVIDER, _error_detail(response), response.status_code)
        return [CourierRate.from_api_response(p) for p in response.json().get("pricing") or []]

    async def create_order(self, payload: dict[str, Any]) -> BiteshipOrder:
        """Book a shipment.

        Raises:
            ExternalProviderError: On API or transport error.
        """
        response = await self._request("POST", "/orders", json=payload)
        if response.status_code not in (200, 201):
            detail = _error_detail(response)
            logger.error(
                "Biteship order creation rejected",
                reference_id=payload.get("reference_id"),
                status_code=response.status_code,
                detail=detail,
            )
            raise ExternalProviderError(PROVIDER, detail, response.status_code)
        return BiteshipOrder.from_api_response(response.json())

    async def cancel_order(self, shipment_id: str, reason: str) -> CancelOutcome:
        """Cancel a booked shipment.

        A 400 or 404 means Biteship no longer has an active shipment to
        cancel, which is reported as ``ALREADY_GONE`` rather than an error.

        Raises:
            ExternalProviderError: On any other API error or transport error.
        """
        response = await self._request(
            "POST",
            f"/orders/{shipment_id}/cancel",
            json={"cancellation_reason": reason},
        )
        if response.status_code in (200, 201):
            return CancelOutcome.CANCELLED
        if response.status_code in (400, 404):
            logger.info(
                "Biteship shipment already cancelled or missing",
                shipment_id=shipment_id,
                status_code=response.status_code,
            )
            return CancelOutcome.ALREADY_GONE
        raise ExternalProviderError(PROVIDER, _error_detail(response), response.status_code)

    async def get_tracking(self, tracking_number: str) -> BiteshipTracking:
        """Fetch tracking history for a waybill.

        Raises:
            ExternalProviderError: On API or transport error.
        """
        response = await self._request("GET", f"/trackings/{tracking_number}")
        if response.status_code != 200:
            raise ExternalProviderError(PROVIDER, _error_detail(response), response.status_code)
        return BiteshipTracking.from_api_response(response.json())


def build_biteship_client(settings: Settings | None = None) -> BiteshipClient:
    """Build a Biteship client from settings."""
    settings = settings or get_settings()
    return BiteshipClient(
        api_key=settings.biteship_api_key,
        base_url=settings.biteship_base_url,
        timeout=settings.http_timeout_seconds,
    )


# Global client instance
_biteship_client: BiteshipClient | None = None


def get_biteship_client() -> BiteshipClient:
    """Get the Biteship client singleton."""
    global _biteship_client
    if _biteship_client is None:
        _biteship_client = build_biteship_client()
    return _biteship_client
