"""Refund application service.

Implements the refund workflow:
- Customers request a refund against a paid order
- An admin approves or rejects it
- An approved refund is submitted to Xendit and left ``processing``
- Xendit's refund webhook resolves it to ``completed`` or ``failed``
- Once completed refunds add up to the order total, the order moves to REFUNDED

Open and completed requests together never exceed the order total.
"""

from dataclasses import dataclass

import structlog

from storefront.application.order_service import OrderService, get_order_service, log_events
from storefront.application.persistence import compare_and_set
from storefront.application.webhook_results import WebhookResult
from storefront.domain.entities import Order, RefundReason, RefundRequest
from storefront.domain.exceptions import (
    ExternalProviderError,
    InvalidRefundAmountError,
    MissingPaymentReferenceError,
    PreconditionFailed,
    RefundNotFoundError,
)
from storefront.domain.mappings import refund_status_for_gateway
from storefront.domain.state_machines import OrderStatus, RefundStatus, validate_refund_transition
from storefront.infrastructure.repositories import RefundRepository, get_refund_repository
from storefront.infrastructure.xendit_client import XenditClient, get_xendit_client

logger = structlog.get_logger()

# Statuses whose amounts count against an order's refundable balance.
COMMITTED_STATUSES = (
    RefundStatus.PENDING,
    RefundStatus.APPROVED,
    RefundStatus.PROCESSING,
    RefundStatus.COMPLETED,
)


def partial_refund_note(refund: RefundRequest) -> str:
    """Order note recorded when a refund leaves part of the order paid."""
    return f"Partial refund of {refund.amount} IDR processed (refund {refund.id})"


@dataclass
class RefundPage:
    """A page of refund requests."""

    refunds: list[RefundRequest]
    total: int
    page: int
    page_size: int


class RefundService:
    """Application service for the refund workflow."""

    def __init__(
        self,
        refund_repo: RefundRepository | None = None,
        order_service: OrderService | None = None,
        xendit: XenditClient | None = None,
    ) -> None:
        """Initialize service.

        Args:
            refund_repo: Refund request repository.
            order_service: Order loading/writing service.
            xendit: Xendit API client.
        """
        self.refund_repo = refund_repo or get_refund_repository()
        self.order_service = order_service or get_order_service()
        self.xendit = xendit or get_xendit_client()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_refund(self, refund_id: str) -> RefundRequest:
        """Get a refund request by ID.

        Raises:
            RefundNotFoundError: If the refund request does not exist.
        """
        refund = await self.refund_repo.get(refund_id)
        if refund is None:
            raise RefundNotFoundError(refund_id)
        return refund

    async def list_refunds(
        self,
        status: RefundStatus | None = None,
        order_id: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> RefundPage:
        """List refund requests, newest first."""
        refunds, total = await self.refund_repo.list_refunds(
            status=status, order_id=order_id, page=page, page_size=page_size
        )
        return RefundPage(refunds=refunds, total=total, page=page, page_size=page_size)

    async def _update(self, refund_id: str, mutate):
        return await compare_and_set(
            load=lambda: self.get_refund(refund_id),
            mutate=mutate,
            save=self._save,
            entity_type="RefundRequest",
            entity_id=refund_id,
        )

    async def _save(self, refund: RefundRequest, expected_version: int) -> bool:
        events = refund.collect_events()
        saved = await self.refund_repo.save(refund, expected_version)
        if saved:
            log_events(events)
        return saved

    async def _committed_amount(self, order_id: str, exclude_id: str | None = None) -> int:
        return await self.refund_repo.total_amount(order_id, COMMITTED_STATUSES, exclude_id=exclude_id)

    # -------------------------------------------------------------------------
    # Workflow
    # -------------------------------------------------------------------------

    async def request_refund(
        self,
        order_id: str,
        amount: int,
        reason: RefundReason | str,
        requester_id: str | None = None,
        reason_note: str | None = None,
    ) -> RefundRequest:
        """Create a pending refund request.

        Raises:
            OrderNotFoundError: If the order does not exist.
            PreconditionFailed: If the order has not been paid.
            InvalidRefundAmountError: If the amount is not positive or, with
                the order's open and completed refunds, exceeds its total.
            ValidationError: If the reason is invalid.
        """
        order = await self.order_service.get_order(order_id)
        if not order.status.is_settled():
            raise PreconditionFailed(
                "Refunds can only be requested for paid orders",
                details={"order_id": order_id, "status": order.status.value},
            )

        refund = RefundRequest.create(
            order_id=order.id,
            order_total=order.total_amount,
            amount=amount,
            reason=reason,
            requester_id=requester_id,
            reason_note=reason_note,
        )
        committed = await self._committed_amount(order.id)
        if committed + refund.amount > order.total_amount:
            logger.warning(
                "Refund request exceeds refundable balance",
                order_id=order.id,
                amount=refund.amount,
                already_requested=committed,
                total_amount=order.total_amount,
            )
            raise InvalidRefundAmountError(refund.amount, order.total_amount, committed)

        events = refund.collect_events()
        await self.refund_repo.add(refund)
        log_events(events)
        logger.info(
            "Refund requested",
            refund_id=refund.id,
            order_id=order.id,
            amount=amount,
            reason=refund.reason.value,
        )
        return refund

    async def review(
        self,
        refund_id: str,
        approve: bool,
        reviewer_id: str,
        note: str | None = None,
    ) -> RefundRequest:
        """Approve or reject a pending refund request.

        Raises:
            RefundNotFoundError: If the refund request does not exist.
            InvalidStateTransitionError: If the request is not pending.
        """

        def apply(refund: RefundRequest) -> None:
            if approve:
                refund.approve(reviewer_id, note)
            else:
                refund.reject(reviewer_id, note)

        mutation = await self._update(refund_id, apply)
        logger.info(
            "Refund reviewed",
            refund_id=refund_id,
            reviewer_id=reviewer_id,
            to_status=mutation.entity.status.value,
        )
        return mutation.entity

    async def process(self, refund_id: str) -> RefundRequest:
        """Submit an approved refund to Xendit.

        The refund id is sent as Xendit's ``reference_id``, so submitting
        the same refund again can never refund twice.

        Returns:
            The refund, ``processing`` with the gateway refund id stored.

        Raises:
            RefundNotFoundError: If the refund request does not exist.
            OrderNotFoundError: If the order does not exist.
            InvalidStateTransitionError: If the refund is not approved.
            InvalidRefundAmountError: If other refunds on the order have
                since used up its balance. The refund stays approved.
            MissingPaymentReferenceError: If the order was never invoiced.
                The refund is moved to ``failed``.
            ExternalProviderError: If Xendit refuses the refund. The refund
                is moved to ``failed`` with the gateway message in its notes.
        """
        refund = await self.get_refund(refund_id)
        order = await self.order_service.get_order(refund.order_id)
        others = await self._committed_amount(order.id, exclude_id=refund_id)

        def start(r: RefundRequest) -> None:
            validate_refund_transition(r.id, r.status, RefundStatus.PROCESSING)
            if others + r.amount > order.total_amount:
                raise InvalidRefundAmountError(r.amount, order.total_amount, others)
            r.start_processing()

        mutation = await self._update(refund_id, start)
        refund = mutation.entity
        logger.info("Refund processing started", refund_id=refund_id, order_id=order.id)

        if not order.external_id:
            await self._update(refund_id, lambda r: r.fail("[System] No Xendit payment reference found."))
            logger.error("Refund has no payment reference", refund_id=refund_id, order_id=order.id)
            raise MissingPaymentReferenceError(refund_id, order.id)

        try:
            gateway_refund = await self.xendit.create_refund(
                invoice_id=order.external_id,
                reference_id=refund.id,
                amount=refund.amount,
                reason=refund.reason.value,
                metadata={
                    "order_id": order.id,
                    "customer_name": order.customer.name,
                    "customer_email": order.customer.email,
                },
            )
        except ExternalProviderError as e:
            message = e.provider_message
            await self._update(refund_id, lambda r: r.fail(f"[System] Payment gateway error: {message}"))
            raise

        mutation = await self._update(
            refund_id,
            lambda r: r.record_submission(
                gateway_refund.id, order.external_id, channel=gateway_refund.channel_code
            ),
        )
        logger.info(
            "Refund submitted to gateway",
            refund_id=refund_id,
            gateway_refund_id=gateway_refund.id,
            gateway_status=gateway_refund.status,
        )
        return mutation.entity

    async def resolve(
        self,
        reference_id: str | None,
        raw_status: str | None,
        gateway_refund_id: str | None = None,
        channel_code: str | None = None,
        failure_code: str | None = None,
    ) -> WebhookResult:
        """Resolve a processing refund from a Xendit refund webhook.

        ``PENDING`` and unknown statuses are acknowledged without changes.
        Re-delivering an outcome that was already applied is a no-op.

        Raises:
            InvalidStateTransitionError: If the refund is not ``processing``.
            ConcurrentUpdateError: If the refund kept changing underneath.
        """
        if not reference_id:
            logger.warning("Refund webhook without reference_id", gateway_status=raw_status)
            return WebhookResult.ignored("Missing reference_id", success=False)

        refund = await self.refund_repo.get(reference_id)
        if refund is None:
            logger.warning("Refund request not found for webhook", refund_id=reference_id)
            return WebhookResult.ignored("Refund request not found", success=False)

        target = refund_status_for_gateway(raw_status)
        if target is None:
            logger.info("Refund webhook acknowledged without change", refund_id=refund.id, gateway_status=raw_status)
            return WebhookResult.ignored("Acknowledged pending status", refund.id, refund.status.value)

        def apply(r: RefundRequest) -> bool:
            if r.status == target:
                return False
            r.record_gateway_refund_id(gateway_refund_id)
            if target == RefundStatus.COMPLETED:
                r.complete(f"[Xendit] Refund completed successfully. Channel: {channel_code or 'N/A'}")
            else:
                r.fail(f"[Xendit] Refund failed. Reason: {failure_code or 'Unknown'}")
            return True

        mutation = await self._update(refund.id, apply)
        if not mutation.result:
            if mutation.entity.status == RefundStatus.COMPLETED:
                # A redelivery finishes an order closure that failed after the refund was saved.
                await self._close_order(mutation.entity)
            return WebhookResult.ignored("Refund already resolved", refund.id, mutation.entity.status.value)

        logger.info("Refund resolved", refund_id=refund.id, to_status=target.value, gateway_status=raw_status)
        if target == RefundStatus.COMPLETED:
            await self._close_order(mutation.entity)
        return WebhookResult.processed("Refund updated", refund.id, mutation.entity.status.value)

    async def force_complete(self, refund_id: str) -> RefundRequest:
        """Complete a refund without the gateway, for test environments.

        Walks approved -> processing -> completed and applies the same
        order closure as a real completion.

        Raises:
            RefundNotFoundError: If the refund request does not exist.
            InvalidStateTransitionError: If the refund is neither approved
                nor processing.
        """

        def apply(r: RefundRequest) -> None:
            if r.status == RefundStatus.APPROVED:
                r.start_processing()
            r.complete("[Test] Refund marked completed without gateway")

        mutation = await self._update(refund_id, apply)
        logger.warning("Refund force-completed", refund_id=refund_id)
        await self._close_order(mutation.entity)
        return mutation.entity

    async def _close_order(self, refund: RefundRequest) -> None:
        """Apply a completed refund to its order.

        The order becomes REFUNDED once its completed refunds add up to the
        order total; until then each completed refund leaves a note, at most
        once per refund. Safe to repeat.
        """
        refunded = await self.refund_repo.total_amount(refund.order_id, (RefundStatus.COMPLETED,))
        note = partial_refund_note(refund)
        notes = await self.order_service.order_repo.list_notes(refund.order_id)
        already_noted = any(n.note == note for n in notes)
        full_refund = False

        def apply(o: Order) -> None:
            nonlocal full_refund
            full_refund = refunded >= o.total_amount
            if not full_refund:
                if not already_noted:
                    o.add_note(note, author="refund_webhook")
            elif o.status.can_transition_to(OrderStatus.REFUNDED):
                o.transition_to(
                    OrderStatus.REFUNDED,
                    actor="refund_webhook",
                    reason=f"Refund {refund.id} completed, {refunded} IDR refunded in total",
                )
            elif o.status != OrderStatus.REFUNDED:
                logger.warning(
                    "Order cannot be marked refunded from its current state",
                    order_id=o.id,
                    refund_id=refund.id,
                    from_status=o.status.value,
                )

        await self.order_service.update(refund.order_id, apply)
        logger.info("Order refund recorded", order_id=refund.order_id, refund_id=refund.id, full_refund=full_refund)


# ============================================================================
# Service Factory
# ============================================================================


def get_refund_service() -> RefundService:
    """Get refund service instance."""
    return RefundService()
