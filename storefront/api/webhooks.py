"""Webhook receiver endpoints.

Provides:
- POST /webhooks/xendit/invoice - invoice payment status
- POST /webhooks/xendit/refund - refund outcome
- POST /webhooks/biteship - shipment status and waybill updates

Deliveries are always acknowledged with 200 so providers stop retrying.
Authenticity failures (callback token, stale timestamp) are the only
requests answered with an error status.
"""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Header, Request

from storefront.api.dependencies import WebhookServiceDep
from storefront.api.schemas import ErrorResponse, WebhookAckResponse
from storefront.application.webhook_results import WebhookResult

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


async def read_payload(request: Request) -> Any:
    """Parse the request body as JSON, returning None if it is not JSON."""
    try:
        return await request.json()
    except ValueError:
        logger.warning("Webhook body is not valid JSON", path=request.url.path)
        return None


def to_ack(result: WebhookResult) -> WebhookAckResponse:
    """Convert a processing result to the acknowledgement body."""
    return WebhookAckResponse(
        success=result.success,
        outcome=result.outcome.value,
        message=result.message,
        entity_id=result.entity_id,
        status=result.status,
    )


@router.post(
    "/xendit/invoice",
    response_model=WebhookAckResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
    },
    summary="Receive Xendit invoice webhook",
)
async def receive_invoice_webhook(
    request: Request,
    service: WebhookServiceDep,
    x_callback_token: Annotated[str | None, Header()] = None,
) -> WebhookAckResponse:
    """Apply an invoice status (PAID, SETTLED, EXPIRED, FAILED) to its order."""
    payload = await read_payload(request)
    return to_ack(await service.handle_invoice(payload, x_callback_token))


@router.post(
    "/xendit/refund",
    response_model=WebhookAckResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
    },
    summary="Receive Xendit refund webhook",
)
async def receive_refund_webhook(
    request: Request,
    service: WebhookServiceDep,
    x_callback_token: Annotated[str | None, Header()] = None,
) -> WebhookAckResponse:
    """Resolve a processing refund from the gateway outcome.

    Requires ``X-Callback-Token`` and a ``created`` timestamp within the
    replay tolerance.
    """
    payload = await read_payload(request)
    return to_ack(await service.handle_refund(payload, x_callback_token))


@router.post(
    "/biteship",
    response_model=WebhookAckResponse,
    summary="Receive Biteship webhook",
)
async def receive_biteship_webhook(request: Request, service: WebhookServiceDep) -> WebhookAckResponse:
    """Apply a courier status or waybill update to its order."""
    payload = await read_payload(request)
    return to_ack(await service.handle_shipment(payload))
