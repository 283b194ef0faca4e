"""Health check endpoints.

Provides endpoints for monitoring service health and readiness.
"""

from fastapi import APIRouter
from pydantic import BaseModel

from storefront.api.dependencies import SettingsDep

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    service: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness check response schema."""

    status: str
    storage_backend: str
    payments_configured: bool
    shipping_configured: bool


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: SettingsDep) -> HealthResponse:
    """Check service health.

    Returns:
        Health status with service name and version.
    """
    return HealthResponse(
        status="healthy",
        service="storefront-api",
        version=settings.api_version,
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(settings: SettingsDep) -> ReadinessResponse:
    """Report which provider integrations are configured.

    Missing provider keys do not make the service unready: shipping rates
    fall back to estimates without a Biteship key.
    """
    return ReadinessResponse(
        status="ready",
        storage_backend=settings.storage_backend,
        payments_configured=bool(settings.xendit_secret_key),
        shipping_configured=bool(settings.biteship_api_key),
    )
