"""Order application service.

Owns how Order aggregates are loaded and written:
- Every write is a compare-and-set on the order version
- Creation and status-change events become status history rows in the same write
- Note and tracking-number events become internal order notes
- Admin reads return the order with its history and notes
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

import structlog

from storefront.application.persistence import Mutation, compare_and_set
from storefront.domain.base import DomainEvent
from storefront.domain.entities import Order
from storefront.domain.events import OrderCreated, OrderNoteAdded, OrderStatusChanged, TrackingNumberAssigned
from storefront.domain.exceptions import OrderNotFoundError
from storefront.domain.state_machines import OrderStatus
from storefront.infrastructure.repositories import (
    OrderNote,
    OrderRepository,
    StatusHistoryEntry,
    get_order_repository,
)

logger = structlog.get_logger()

R = TypeVar("R")


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class OrderDetails:
    """An order together with its audit trail."""

    order: Order
    history: list[StatusHistoryEntry] = field(default_factory=list)
    notes: list[OrderNote] = field(default_factory=list)


@dataclass
class OrderPage:
    """A page of orders."""

    orders: list[Order]
    total: int
    page: int
    page_size: int


def audit_records(
    order_id: str, events: list[DomainEvent]
) -> tuple[list[StatusHistoryEntry], list[OrderNote]]:
    """Turn recorded order events into audit rows.

    Args:
        order_id: Order the events belong to.
        events: Events drained from the aggregate.

    Returns:
        Tuple of (status history entries, internal notes).
    """
    history: list[StatusHistoryEntry] = []
    notes: list[OrderNote] = []
    for event in events:
        if isinstance(event, OrderCreated):
            history.append(
                StatusHistoryEntry(
                    order_id=order_id,
                    from_status=None,
                    to_status=OrderStatus.PENDING.value,
                    actor="system",
                    reason="Order created at checkout",
                    created_at=event.occurred_at,
                )
            )
        elif isinstance(event, OrderStatusChanged):
            history.append(
                StatusHistoryEntry(
                    order_id=order_id,
                    from_status=event.from_status,
                    to_status=event.to_status,
                    actor=event.actor,
                    reason=event.reason,
                    created_at=event.occurred_at,
                )
            )
        elif isinstance(event, OrderNoteAdded):
            notes.append(
                OrderNote(
                    order_id=order_id,
                    note=event.note,
                    author=event.author,
                    created_at=event.occurred_at,
                )
            )
        elif isinstance(event, TrackingNumberAssigned):
            text = f"Tracking number set to {event.tracking_number}"
            if event.previous:
                text += f" (was {event.previous})"
            notes.append(
                OrderNote(
                    order_id=order_id,
                    note=text,
                    author=event.actor,
                    created_at=event.occurred_at,
                )
            )
    return history, notes


def log_events(events: list[DomainEvent]) -> None:
    """Log persisted domain events."""
    for event in events:
        logger.info("Domain event recorded", **event.to_dict())


# ============================================================================
# Order Service
# ============================================================================


class OrderService:
    """Application service for loading and writing orders."""

    def __init__(self, order_repo: OrderRepository | None = None) -> None:
        """Initialize service.

        Args:
            order_repo: Order repository.
        """
        self.order_repo = order_repo or get_order_repository()

    async def create(self, order: Order) -> Order:
        """Persist a newly created order with its initial history row."""
        events = order.collect_events()
        history, notes = audit_records(order.id, events)
        await self.order_repo.add(order, history=history, notes=notes)
        log_events(events)
        logger.info(
            "Order created",
            order_id=order.id,
            total_amount=order.total_amount,
            item_count=len(order.items),
            is_local_delivery=order.is_local_delivery,
        )
        return order

    async def get_order(self, order_id: str) -> Order:
        """Get an order by ID.

        Raises:
            OrderNotFoundError: If the order does not exist.
        """
        order = await self.order_repo.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def get_order_details(self, order_id: str) -> OrderDetails:
        """Get an order with its status history and internal notes."""
        order = await self.get_order(order_id)
        return OrderDetails(
            order=order,
            history=await self.order_repo.list_history(order_id),
            notes=await self.order_repo.list_notes(order_id),
        )

    async def list_orders(
        self,
        status: OrderStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> OrderPage:
        """List orders, newest first."""
        orders, total = await self.order_repo.list_orders(status=status, page=page, page_size=page_size)
        return OrderPage(orders=orders, total=total, page=page, page_size=page_size)

    async def update(
        self,
        order_id: str,
        mutate: Callable[[Order], R],
        load: Callable[[], object] | None = None,
    ) -> Mutation[Order, R]:
        """Apply a change to an order with compare-and-set semantics.

        Args:
            order_id: Order to change.
            mutate: In-place change; may raise domain errors.
            load: Optional loader (defaults to lookup by id).

        Returns:
            Mutation with the written order.

        Raises:
            OrderNotFoundError: If the order does not exist.
            ConcurrentUpdateError: If the write kept losing races.
        """
        return await compare_and_set(
            load=load or (lambda: self.get_order(order_id)),
            mutate=mutate,
            save=self._save,
            entity_type="Order",
            entity_id=order_id,
        )

    async def _save(self, order: Order, expected_version: int) -> bool:
        events = order.collect_events()
        history, notes = audit_records(order.id, events)
        saved = await self.order_repo.save(order, expected_version, history=history, notes=notes)
        if saved:
            log_events(events)
        return saved

    async def set_tracking_number(self, order_id: str, tracking_number: str, actor: str) -> Order:
        """Manually set a tracking number, replacing any automated value.

        Raises:
            OrderNotFoundError: If the order does not exist.
            ValidationError: If the tracking number is blank.
        """
        mutation = await self.update(
            order_id, lambda order: order.override_tracking_number(tracking_number, actor=actor)
        )
        if mutation.changed:
            logger.info("Tracking number set manually", order_id=order_id, actor=actor)
        return mutation.entity


# ============================================================================
# Service Factory
# ============================================================================


def get_order_service() -> OrderService:
    """Get order service instance."""
    return OrderService()
