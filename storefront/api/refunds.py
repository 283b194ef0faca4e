"""Refund API endpoints.

Storefront:
- POST /refunds - request a refund for a paid order

Admin:
- GET /admin/refunds - list refund requests (paginated)
- GET /admin/refunds/{id} - refund request details
- POST /admin/refunds/{id}/review - approve or reject
- POST /admin/refunds/{id}/process - submit an approved refund to Xendit
- POST /admin/refunds/{id}/simulate-completion - complete without Xendit (testing)
"""

from fastapi import APIRouter, HTTPException, Query, status

from storefront.api.dependencies import RefundServiceDep, SettingsDep
from storefront.api.schemas import (
    ErrorResponse,
    RefundCreateRequest,
    RefundResponse,
    RefundReviewRequest,
    RefundsListResponse,
)
from storefront.domain.entities import RefundRequest
from storefront.domain.state_machines import RefundStatus

router = APIRouter(prefix="/refunds", tags=["Refunds"])
admin_router = APIRouter(prefix="/admin/refunds", tags=["Admin Refunds"])


def refund_to_response(refund: RefundRequest) -> RefundResponse:
    """Convert RefundRequest to RefundResponse."""
    return RefundResponse(
        id=refund.id,
        order_id=refund.order_id,
        amount=refund.amount,
        reason=refund.reason.value,
        reason_note=refund.reason_note,
        requester_id=refund.requester_id,
        status=refund.status.value,
        reviewed_by=refund.reviewed_by,
        reviewed_at=refund.reviewed_at,
        admin_notes=refund.admin_notes,
        gateway_refund_id=refund.gateway_refund_id,
        payment_reference=refund.payment_reference,
        refund_method=refund.refund_method,
        completed_at=refund.completed_at,
        created_at=refund.created_at,
        updated_at=refund.updated_at,
    )


# ============================================================================
# Storefront Endpoints
# ============================================================================


@router.post(
    "",
    response_model=RefundResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Request a refund",
    description="Request a refund of up to the order total. Only paid orders can be refunded.",
)
async def request_refund(request: RefundCreateRequest, service: RefundServiceDep) -> RefundResponse:
    """Create a pending refund request."""
    refund = await service.request_refund(
        order_id=request.order_id,
        amount=request.amount,
        reason=request.reason,
        requester_id=request.requester_id,
        reason_note=request.reason_note,
    )
    return refund_to_response(refund)


# ============================================================================
# Admin Endpoints
# ============================================================================


@admin_router.get(
    "",
    response_model=RefundsListResponse,
    responses={401: {"model": ErrorResponse}},
    summary="List refund requests",
)
async def list_refunds(
    service: RefundServiceDep,
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int = Query(default=20, ge=1, le=100, description="Items per page"),
    status: RefundStatus | None = Query(default=None, description="Filter by status"),
    order_id: str | None = Query(default=None, description="Filter by order"),
) -> RefundsListResponse:
    """List refund requests, newest first."""
    result = await service.list_refunds(status=status, order_id=order_id, page=page, page_size=page_size)
    return RefundsListResponse(
        items=[refund_to_response(refund) for refund in result.refunds],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        has_more=(result.page * result.page_size) < result.total,
    )


@admin_router.get(
    "/{refund_id}",
    response_model=RefundResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Get refund request",
)
async def get_refund(refund_id: str, service: RefundServiceDep) -> RefundResponse:
    """Get a refund request by ID."""
    return refund_to_response(await service.get_refund(refund_id))


@admin_router.post(
    "/{refund_id}/review",
    response_model=RefundResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Review refund request",
    description="Approve or reject a pending refund request.",
)
async def review_refund(
    refund_id: str,
    request: RefundReviewRequest,
    service: RefundServiceDep,
) -> RefundResponse:
    """Approve or reject a pending refund.

    Args:
        refund_id: Refund request identifier.
        request: Decision, reviewer and optional note.
        service: Refund service.

    Returns:
        Updated refund request.
    """
    refund = await service.review(
        refund_id,
        approve=request.action == "approve",
        reviewer_id=request.reviewer_id,
        note=request.note,
    )
    return refund_to_response(refund)


@admin_router.post(
    "/{refund_id}/process",
    response_model=RefundResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Process refund",
    description="Submit an approved refund to Xendit. The outcome arrives later by webhook.",
)
async def process_refund(refund_id: str, service: RefundServiceDep) -> RefundResponse:
    """Submit an approved refund to the payment gateway.

    The refund is left PROCESSING on success. A missing payment reference
    or a gateway error marks it FAILED and is reported as an error.
    """
    return refund_to_response(await service.process(refund_id))


@admin_router.post(
    "/{refund_id}/simulate-completion",
    response_model=RefundResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Simulate refund completion (testing)",
    description="Complete an approved or processing refund without Xendit. "
    "Only available when test endpoints are enabled.",
)
async def simulate_refund_completion(
    refund_id: str,
    service: RefundServiceDep,
    settings: SettingsDep,
) -> RefundResponse:
    """Force a refund to COMPLETED in test environments."""
    if not settings.enable_test_endpoints:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error_code": "NOT_FOUND", "message": "Not Found"},
        )
    return refund_to_response(await service.force_complete(refund_id))
