"""Repositories for orders and refund requests.

Defines the repository interfaces used by application services and
their in-memory implementations. Every ``save`` is a compare-and-set:
it succeeds only if the stored version still equals ``expected_version``.
"""

import copy
from abc import ABC, abstractmethod
from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4

from storefront.domain.base import utcnow
from storefront.domain.entities import Order, RefundRequest
from storefront.domain.state_machines import OrderStatus, RefundStatus


# ============================================================================
# Audit Records
# ============================================================================


@dataclass
class StatusHistoryEntry:
    """One real order status transition."""

    order_id: str
    from_status: str | None
    to_status: str
    actor: str | None = None
    reason: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: str(uuid4()))


@dataclass
class OrderNote:
    """Internal note attached to an order."""

    order_id: str
    note: str
    author: str | None = None
    is_internal: bool = True
    created_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: str(uuid4()))


def _detached(entity):
    """Copy an aggregate without its pending events."""
    clone = copy.deepcopy(entity)
    clone.collect_events()
    return clone


# ============================================================================
# Repository Interfaces
# ============================================================================


class OrderRepository(ABC):
    """Persistence port for Order aggregates."""

    @abstractmethod
    async def add(
        self,
        order: Order,
        history: list[StatusHistoryEntry] | None = None,
        notes: list[OrderNote] | None = None,
    ) -> None:
        """Insert a new order with its items."""

    @abstractmethod
    async def get(self, order_id: str) -> Order | None:
        """Get order by ID."""

    @abstractmethod
    async def get_by_shipment_id(self, shipment_id: str) -> Order | None:
        """Get order by courier aggregator order id."""

    @abstractmethod
    async def get_by_tracking_access_token(self, token: str) -> Order | None:
        """Get order holding the given guest tracking token."""

    @abstractmethod
    async def list_orders(
        self,
        status: OrderStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Order], int]:
        """List orders, newest first."""

    @abstractmethod
    async def save(
        self,
        order: Order,
        expected_version: int,
        history: list[StatusHistoryEntry] | None = None,
        notes: list[OrderNote] | None = None,
    ) -> bool:
        """Write the order if its stored version equals ``expected_version``.

        Returns:
            False if another writer got there first; nothing is written.
        """

    @abstractmethod
    async def list_history(self, order_id: str) -> list[StatusHistoryEntry]:
        """List status history entries, oldest first."""

    @abstractmethod
    async def list_notes(self, order_id: str) -> list[OrderNote]:
        """List internal notes, oldest first."""


class RefundRepository(ABC):
    """Persistence port for RefundRequest aggregates."""

    @abstractmethod
    async def add(self, refund: RefundRequest) -> None:
        """Insert a new refund request."""

    @abstractmethod
    async def get(self, refund_id: str) -> RefundRequest | None:
        """Get refund request by ID."""

    @abstractmethod
    async def list_refunds(
        self,
        status: RefundStatus | None = None,
        order_id: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[RefundRequest], int]:
        """List refund requests, newest first."""

    @abstractmethod
    async def total_amount(
        self,
        order_id: str,
        statuses: Collection[RefundStatus],
        exclude_id: str | None = None,
    ) -> int:
        """Sum the amounts of an order's refunds in the given statuses."""

    @abstractmethod
    async def save(self, refund: RefundRequest, expected_version: int) -> bool:
        """Write the refund if its stored version equals ``expected_version``."""


# ============================================================================
# In-Memory Implementations
# ============================================================================


class InMemoryOrderRepository(OrderRepository):
    """In-memory order repository.

    Stores detached copies so callers can never mutate stored state
    without going through ``save``.
    """

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._history: dict[str, list[StatusHistoryEntry]] = {}
        self._notes: dict[str, list[OrderNote]] = {}

    async def add(
        self,
        order: Order,
        history: list[StatusHistoryEntry] | None = None,
        notes: list[OrderNote] | None = None,
    ) -> None:
        if order.id in self._orders:
            raise ValueError(f"Order already exists: {order.id}")
        self._orders[order.id] = _detached(order)
        self._history[order.id] = list(history or [])
        self._notes[order.id] = list(notes or [])

    async def get(self, order_id: str) -> Order | None:
        order = self._orders.get(order_id)
        return _detached(order) if order else None

    async def get_by_shipment_id(self, shipment_id: str) -> Order | None:
        for order in self._orders.values():
            if order.shipment_id == shipment_id:
                return _detached(order)
        return None

    async def get_by_tracking_access_token(self, token: str) -> Order | None:
        for order in self._orders.values():
            if order.tracking_access_token and order.tracking_access_token == token:
                return _detached(order)
        return None

    async def list_orders(
        self,
        status: OrderStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Order], int]:
        orders = list(self._orders.values())
        if status:
            orders = [o for o in orders if o.status == status]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        total = len(orders)
        start = (page - 1) * page_size
        return [_detached(o) for o in orders[start : start + page_size]], total

    async def save(
        self,
        order: Order,
        expected_version: int,
        history: list[StatusHistoryEntry] | None = None,
        notes: list[OrderNote] | None = None,
    ) -> bool:
        stored = self._orders.get(order.id)
        if stored is None or stored.version != expected_version:
            return False
        self._orders[order.id] = _detached(order)
        self._history.setdefault(order.id, []).extend(history or [])
        self._notes.setdefault(order.id, []).extend(notes or [])
        return True

    async def list_history(self, order_id: str) -> list[StatusHistoryEntry]:
        return list(self._history.get(order_id, []))

    async def list_notes(self, order_id: str) -> list[OrderNote]:
        return list(self._notes.get(order_id, []))


class InMemoryRefundRepository(RefundRepository):
    """In-memory refund request repository."""

    def __init__(self) -> None:
        self._refunds: dict[str, RefundRequest] = {}

    async def add(self, refund: RefundRequest) -> None:
        if refund.id in self._refunds:
            raise ValueError(f"Refund request already exists: {refund.id}")
        self._refunds[refund.id] = _detached(refund)

    async def get(self, refund_id: str) -> RefundRequest | None:
        refund = self._refunds.get(refund_id)
        return _detached(refund) if refund else None

    async def list_refunds(
        self,
        status: RefundStatus | None = None,
        order_id: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[RefundRequest], int]:
        refunds = list(self._refunds.values())
        if status:
            refunds = [r for r in refunds if r.status == status]
        if order_id:
            refunds = [r for r in refunds if r.order_id == order_id]
        refunds.sort(key=lambda r: r.created_at, reverse=True)
        total = len(refunds)
        start = (page - 1) * page_size
        return [_detached(r) for r in refunds[start : start + page_size]], total

    async def total_amount(
        self,
        order_id: str,
        statuses: Collection[RefundStatus],
        exclude_id: str | None = None,
    ) -> int:
        return sum(
            r.amount
            for r in self._refunds.values()
            if r.order_id == order_id and r.status in statuses and r.id != exclude_id
        )

    async def save(self, refund: RefundRequest, expected_version: int) -> bool:
        stored = self._refunds.get(refund.id)
        if stored is None or stored.version != expected_version:
            return False
        self._refunds[refund.id] = _detached(refund)
        return True


# Global repository instances
_order_repo: OrderRepository | None = None
_refund_repo: RefundRepository | None = None


def get_order_repository() -> OrderRepository:
    """Get order repository singleton for the configured backend."""
    global _order_repo
    if _order_repo is None:
        _order_repo = _build_order_repository()
    return _order_repo


def get_refund_repository() -> RefundRepository:
    """Get refund repository singleton for the configured backend."""
    global _refund_repo
    if _refund_repo is None:
        _refund_repo = _build_refund_repository()
    return _refund_repo


def reset_repositories() -> None:
    """Reset repositories (for testing)."""
    global _order_repo, _refund_repo
    _order_repo = InMemoryOrderRepository()
    _refund_repo = InMemoryRefundRepository()


def _use_database() -> bool:
    from storefront.infrastructure.config import get_settings

    return get_settings().storage_backend == "database"


def _build_order_repository() -> OrderRepository:
    if _use_database():
        from storefront.infrastructure.database import get_session_factory
        from storefront.infrastructure.sql_repositories import SqlOrderRepository

        return SqlOrderRepository(get_session_factory())
    return InMemoryOrderRepository()


def _build_refund_repository() -> RefundRepository:
    if _use_database():
        from storefront.infrastructure.database import get_session_factory
        from storefront.infrastructure.sql_repositories import SqlRefundRepository

        return SqlRefundRepository(get_session_factory())
    return InMemoryRefundRepository()
