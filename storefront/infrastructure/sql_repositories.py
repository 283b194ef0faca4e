"""SQLAlchemy repositories for orders and refund requests.

Writes are conditional updates keyed on the aggregate's version:

    UPDATE orders SET ..., version = :new WHERE id = :id AND version = :expected

An affected-row count of zero means another writer won the race and the
caller must reload and re-apply its change.
"""

from collections.abc import Collection
from typing import Any

import structlog
from sqlalchemy import Select, Update, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.domain.entities import Order, OrderItem, RefundReason, RefundRequest
from storefront.domain.state_machines import OrderStatus, RefundStatus
from storefront.domain.value_objects import CourierSelection, CustomerInfo, ShippingAddress
from storefront.infrastructure.models import (
    OrderItemModel,
    OrderModel,
    OrderNoteModel,
    OrderStatusHistoryModel,
    RefundRequestModel,
)
from storefront.infrastructure.repositories import (
    OrderNote,
    OrderRepository,
    RefundRepository,
    StatusHistoryEntry,
)

logger = structlog.get_logger()


# ============================================================================
# Row Mapping
# ============================================================================


def order_to_row(order: Order) -> dict[str, Any]:
    """Flatten an Order aggregate into ``orders`` column values."""
    return {
        "id": order.id,
        "version": order.version,
        "user_id": order.user_id,
        "status": order.status.value,
        "total_amount": order.total_amount,
        "shipping_cost": order.shipping_cost,
        "customer_name": order.customer.name,
        "customer_email": order.customer.email,
        "customer_phone": order.customer.phone,
        "shipping_address": order.address.address,
        "city": order.address.city,
        "postal_code": order.address.postal_code,
        "courier_code": order.courier.courier_code,
        "courier_name": order.courier.courier_name,
        "service_code": order.courier.service_code,
        "service_name": order.courier.service_name,
        "estimated_delivery_days": order.courier.estimated_days,
        "is_local_delivery": order.is_local_delivery,
        "total_weight_kg": order.total_weight_kg,
        "external_id": order.external_id,
        "invoice_url": order.invoice_url,
        "shipment_id": order.shipment_id,
        "shipment_status": order.shipment_status,
        "tracking_number": order.tracking_number,
        "shipping_notes": order.shipping_notes,
        "tracking_token": order.tracking_token,
        "tracking_access_token": order.tracking_access_token,
        "tracking_access_expires_at": order.tracking_access_expires_at,
        "cancelled_reason": order.cancelled_reason,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "paid_at": order.paid_at,
        "shipped_at": order.shipped_at,
        "delivered_at": order.delivered_at,
    }


def order_from_row(row: OrderModel, items: list[OrderItemModel]) -> Order:
    """Rebuild an Order aggregate from its rows."""
    return Order(
        id=row.id,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
        user_id=row.user_id,
        status=OrderStatus(row.status),
        total_amount=row.total_amount,
        shipping_cost=row.shipping_cost,
        customer=CustomerInfo(
            name=row.customer_name,
            email=row.customer_email,
            phone=row.customer_phone,
        ),
        address=ShippingAddress(
            address=row.shipping_address,
            city=row.city,
            postal_code=row.postal_code,
        ),
        courier=CourierSelection(
            courier_code=row.courier_code,
            courier_name=row.courier_name,
            service_code=row.service_code,
            service_name=row.service_name,
            estimated_days=row.estimated_delivery_days,
        ),
        is_local_delivery=row.is_local_delivery,
        total_weight_kg=row.total_weight_kg,
        external_id=row.external_id,
        invoice_url=row.invoice_url,
        shipment_id=row.shipment_id,
        shipment_status=row.shipment_status,
        tracking_number=row.tracking_number,
        shipping_notes=row.shipping_notes,
        tracking_token=row.tracking_token,
        tracking_access_token=row.tracking_access_token,
        tracking_access_expires_at=row.tracking_access_expires_at,
        cancelled_reason=row.cancelled_reason,
        paid_at=row.paid_at,
        shipped_at=row.shipped_at,
        delivered_at=row.delivered_at,
        items=[
            OrderItem(
                id=item.id,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.price,
                weight_grams=item.weight_grams,
            )
            for item in items
        ],
    )


def refund_to_row(refund: RefundRequest) -> dict[str, Any]:
    """Flatten a RefundRequest aggregate into ``refund_requests`` column values."""
    return {
        "id": refund.id,
        "version": refund.version,
        "order_id": refund.order_id,
        "requester_id": refund.requester_id,
        "reason": refund.reason.value,
        "reason_note": refund.reason_note,
        "amount": refund.amount,
        "status": refund.status.value,
        "reviewed_by": refund.reviewed_by,
        "reviewed_at": refund.reviewed_at,
        "admin_notes": refund.admin_notes,
        "gateway_refund_id": refund.gateway_refund_id,
        "payment_reference": refund.payment_reference,
        "refund_method": refund.refund_method,
        "completed_at": refund.completed_at,
        "created_at": refund.created_at,
        "updated_at": refund.updated_at,
    }


def refund_from_row(row: RefundRequestModel) -> RefundRequest:
    """Rebuild a RefundRequest aggregate from its row."""
    return RefundRequest(
        id=row.id,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
        order_id=row.order_id,
        requester_id=row.requester_id,
        reason=RefundReason(row.reason),
        reason_note=row.reason_note,
        amount=row.amount,
        status=RefundStatus(row.status),
        reviewed_by=row.reviewed_by,
        reviewed_at=row.reviewed_at,
        admin_notes=row.admin_notes,
        gateway_refund_id=row.gateway_refund_id,
        payment_reference=row.payment_reference,
        refund_method=row.refund_method,
        completed_at=row.completed_at,
    )


def build_versioned_update(
    model: type[OrderModel] | type[RefundRequestModel],
    entity_id: str,
    expected_version: int,
    values: dict[str, Any],
) -> Update:
    """Build the compare-and-set UPDATE for a versioned row.

    Args:
        model: ORM model with ``id`` and ``version`` columns.
        entity_id: Primary key of the row.
        expected_version: Version the writer read before mutating.
        values: Column values to write, including the new ``version``.

    Returns:
        UPDATE statement matching only the row still at ``expected_version``.
    """
    values = {k: v for k, v in values.items() if k not in ("id", "created_at")}
    return (
        update(model)
        .where(model.id == entity_id, model.version == expected_version)
        .values(**values)
    )


def build_refund_total(
    order_id: str,
    statuses: Collection[RefundStatus],
    exclude_id: str | None = None,
) -> Select:
    """Build the SELECT summing an order's refund amounts in ``statuses``."""
    criteria = [
        RefundRequestModel.order_id == order_id,
        RefundRequestModel.status.in_([s.value for s in statuses]),
    ]
    if exclude_id:
        criteria.append(RefundRequestModel.id != exclude_id)
    return select(func.coalesce(func.sum(RefundRequestModel.amount), 0)).where(*criteria)


# ============================================================================
# Order Repository
# ============================================================================


class SqlOrderRepository(OrderRepository):
    """Order repository backed by PostgreSQL."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _load(self, session: AsyncSession, row: OrderModel | None) -> Order | None:
        if row is None:
            return None
        items = (
            await session.execute(
                select(OrderItemModel)
                .where(OrderItemModel.order_id == row.id)
                .order_by(OrderItemModel.created_at)
            )
        ).scalars().all()
        return order_from_row(row, list(items))

    async def _find_one(self, *criteria) -> Order | None:
        async with self._session_factory() as session:
            row = (await session.execute(select(OrderModel).where(*criteria))).scalar_one_or_none()
            return await self._load(session, row)

    @staticmethod
    def _audit_rows(
        history: list[StatusHistoryEntry] | None,
        notes: list[OrderNote] | None,
    ) -> list[Any]:
        rows: list[Any] = [
            OrderStatusHistoryModel(
                id=entry.id,
                order_id=entry.order_id,
                from_status=entry.from_status,
                to_status=entry.to_status,
                actor=entry.actor,
                reason=entry.reason,
                created_at=entry.created_at,
            )
            for entry in history or []
        ]
        rows.extend(
            OrderNoteModel(
                id=note.id,
                order_id=note.order_id,
                note=note.note,
                author=note.author,
                is_internal=note.is_internal,
                created_at=note.created_at,
            )
            for note in notes or []
        )
        return rows

    async def add(
        self,
        order: Order,
        history: list[StatusHistoryEntry] | None = None,
        notes: list[OrderNote] | None = None,
    ) -> None:
        async with self._session_factory() as session:
            session.add(OrderModel(**order_to_row(order)))
            session.add_all(
                OrderItemModel(
                    id=item.id,
                    order_id=order.id,
                    product_id=item.product_id,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    price=item.unit_price,
                    weight_grams=item.weight_grams,
                )
                for item in order.items
            )
            session.add_all(self._audit_rows(history, notes))
            await session.commit()

    async def get(self, order_id: str) -> Order | None:
        return await self._find_one(OrderModel.id == order_id)

    async def get_by_shipment_id(self, shipment_id: str) -> Order | None:
        return await self._find_one(OrderModel.shipment_id == shipment_id)

    async def get_by_tracking_access_token(self, token: str) -> Order | None:
        return await self._find_one(OrderModel.tracking_access_token == token)

    async def list_orders(
        self,
        status: OrderStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Order], int]:
        async with self._session_factory() as session:
            query = select(OrderModel)
            count_query = select(func.count()).select_from(OrderModel)
            if status:
                query = query.where(OrderModel.status == status.value)
                count_query = count_query.where(OrderModel.status == status.value)
            total = (await session.execute(count_query)).scalar_one()
            rows = (
                await session.execute(
                    query.order_by(OrderModel.created_at.desc())
                    .offset((page - 1) * page_size)
                    .limit(page_size)
                )
            ).scalars().all()
            orders = [await self._load(session, row) for row in rows]
            return orders, total

    async def save(
        self,
        order: Order,
        expected_version: int,
        history: list[StatusHistoryEntry] | None = None,
        notes: list[OrderNote] | None = None,
    ) -> bool:
        statement = build_versioned_update(OrderModel, order.id, expected_version, order_to_row(order))
        async with self._session_factory() as session:
            result = await session.execute(statement)
            if result.rowcount != 1:
                await session.rollback()
                logger.info(
                    "Order version conflict",
                    order_id=order.id,
                    expected_version=expected_version,
                )
                return False
            session.add_all(self._audit_rows(history, notes))
            await session.commit()
            return True

    async def list_history(self, order_id: str) -> list[StatusHistoryEntry]:
        async with self._session_factory() as session:
            rows = (
                await session.execute(
                    select(OrderStatusHistoryModel)
                    .where(OrderStatusHistoryModel.order_id == order_id)
                    .order_by(OrderStatusHistoryModel.created_at)
                )
            ).scalars().all()
            return [
                StatusHistoryEntry(
                    id=row.id,
                    order_id=row.order_id,
                    from_status=row.from_status,
                    to_status=row.to_status,
                    actor=row.actor,
                    reason=row.reason,
                    created_at=row.created_at,
                )
                for row in rows
            ]

    async def list_notes(self, order_id: str) -> list[OrderNote]:
        async with self._session_factory() as session:
            rows = (
                await session.execute(
                    select(OrderNoteModel)
                    .where(OrderNoteModel.order_id == order_id)
                    .order_by(OrderNoteModel.created_at)
                )
            ).scalars().all()
            return [
                OrderNote(
                    id=row.id,
                    order_id=row.order_id,
                    note=row.note,
                    author=row.author,
                    is_internal=row.is_internal,
                    created_at=row.created_at,
                )
                for row in rows
            ]


# ============================================================================
# Refund Repository
# ============================================================================


class SqlRefundRepository(RefundRepository):
    """Refund request repository backed by PostgreSQL."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add(self, refund: RefundRequest) -> None:
        async with self._session_factory() as session:
            session.add(RefundRequestModel(**refund_to_row(refund)))
            await session.commit()

    async def get(self, refund_id: str) -> RefundRequest | None:
        async with self._session_factory() as session:
            row = await session.get(RefundRequestModel, refund_id)
            return refund_from_row(row) if row else None

    async def list_refunds(
        self,
        status: RefundStatus | None = None,
        order_id: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[RefundRequest], int]:
        criteria = []
        if status:
            criteria.append(RefundRequestModel.status == status.value)
        if order_id:
            criteria.append(RefundRequestModel.order_id == order_id)
        async with self._session_factory() as session:
            total = (
                await session.execute(
                    select(func.count()).select_from(RefundRequestModel).where(*criteria)
                )
            ).scalar_one()
            rows = (
                await session.execute(
                    select(RefundRequestModel)
                    .where(*criteria)
                    .order_by(RefundRequestModel.created_at.desc())
                    .offset((page - 1) * page_size)
                    .limit(page_size)
                )
            ).scalars().all()
            return [refund_from_row(row) for row in rows], total

    async def total_amount(
        self,
        order_id: str,
        statuses: Collection[RefundStatus],
        exclude_id: str | None = None,
    ) -> int:
        async with self._session_factory() as session:
            result = await session.execute(build_refund_total(order_id, statuses, exclude_id))
            return int(result.scalar_one())

    async def save(self, refund: RefundRequest, expected_version: int) -> bool:
        statement = build_versioned_update(
            RefundRequestModel, refund.id, expected_version, refund_to_row(refund)
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            if result.rowcount != 1:
                await session.rollback()
                logger.info(
                    "Refund version conflict",
                    refund_id=refund.id,
                    expected_version=expected_version,
                )
                return False
            await session.commit()
            return True
