"""Tests for the in-memory repositories."""

from collections.abc import Callable

import pytest

from storefront.domain.entities import Order, RefundRequest
from storefront.domain.state_machines import OrderStatus, RefundStatus
from storefront.infrastructure.repositories import (
    InMemoryOrderRepository,
    InMemoryRefundRepository,
    OrderNote,
)


class TestInMemoryOrderRepository:
    """Tests for InMemoryOrderRepository."""

    @pytest.mark.asyncio
    async def test_reads_are_detached(self, new_order: Callable[..., Order]) -> None:
        """Mutating a loaded order does not touch stored state."""
        repo = InMemoryOrderRepository()
        order = new_order()
        await repo.add(order)

        loaded = await repo.get(order.id)
        loaded.transition_to(OrderStatus.PAID)

        assert (await repo.get(order.id)).status == OrderStatus.PENDING

    @pytest.mark.asyncio
    async def test_duplicate_add(self, new_order: Callable[..., Order]) -> None:
        repo = InMemoryOrderRepository()
        order = new_order()
        await repo.add(order)
        with pytest.raises(ValueError):
            await repo.add(order)

    @pytest.mark.asyncio
    async def test_stale_save_rejected(self, new_order: Callable[..., Order]) -> None:
        repo = InMemoryOrderRepository()
        order = new_order()
        await repo.add(order)
        note = OrderNote(order_id=order.id, note="lost write")

        order.transition_to(OrderStatus.PAID)
        assert not await repo.save(order, expected_version=order.version, notes=[note])

        assert (await repo.get(order.id)).status == OrderStatus.PENDING
        assert await repo.list_notes(order.id) == []

    @pytest.mark.asyncio
    async def test_lookups(self, new_order: Callable[..., Order]) -> None:
        repo = InMemoryOrderRepository()
        order = new_order()
        order.attach_shipment("bs-1")
        token, _ = order.issue_tracking_access(3600)
        await repo.add(order)

        assert (await repo.get_by_shipment_id("bs-1")).id == order.id
        assert (await repo.get_by_tracking_access_token(token)).id == order.id
        assert await repo.get_by_shipment_id("bs-2") is None
        assert await repo.get_by_tracking_access_token("other") is None

    @pytest.mark.asyncio
    async def test_list_newest_first(self, new_order: Callable[..., Order]) -> None:
        repo = InMemoryOrderRepository()
        orders = [new_order() for _ in range(3)]
        for order in orders:
            await repo.add(order)

        page, total = await repo.list_orders(page=1, page_size=2)

        assert total == 3
        expected = sorted(orders, key=lambda o: o.created_at, reverse=True)
        assert [o.id for o in page] == [o.id for o in expected[:2]]


class TestInMemoryRefundRepository:
    """Tests for InMemoryRefundRepository."""

    @pytest.mark.asyncio
    async def test_filters(self) -> None:
        repo = InMemoryRefundRepository()
        first = RefundRequest.create(order_id="o-1", order_total=1000, amount=500, reason="OTHERS")
        second = RefundRequest.create(order_id="o-2", order_total=1000, amount=500, reason="OTHERS")
        second.approve("admin-1")
        await repo.add(first)
        await repo.add(second)

        by_order, total = await repo.list_refunds(order_id="o-1")
        assert total == 1
        assert by_order[0].id == first.id

        approved, _ = await repo.list_refunds(status=RefundStatus.APPROVED)
        assert [r.id for r in approved] == [second.id]

    @pytest.mark.asyncio
    async def test_versioned_save(self) -> None:
        repo = InMemoryRefundRepository()
        refund = RefundRequest.create(order_id="o-1", order_total=1000, amount=500, reason="OTHERS")
        await repo.add(refund)

        expected = refund.version
        refund.approve("admin-1")

        assert await repo.save(refund, expected)
        assert not await repo.save(refund, expected)

    @pytest.mark.asyncio
    async def test_total_amount(self) -> None:
        """Amounts are summed per order over the requested statuses."""
        repo = InMemoryRefundRepository()
        pending = RefundRequest.create(order_id="o-1", order_total=1000, amount=300, reason="OTHERS")
        rejected = RefundRequest.create(order_id="o-1", order_total=1000, amount=400, reason="OTHERS")
        rejected.reject("admin-1")
        approved = RefundRequest.create(order_id="o-1", order_total=1000, amount=200, reason="OTHERS")
        approved.approve("admin-1")
        elsewhere = RefundRequest.create(order_id="o-2", order_total=1000, amount=900, reason="OTHERS")
        for refund in (pending, rejected, approved, elsewhere):
            await repo.add(refund)

        open_statuses = (RefundStatus.PENDING, RefundStatus.APPROVED)
        assert await repo.total_amount("o-1", open_statuses) == 500
        assert await repo.total_amount("o-1", open_statuses, exclude_id=approved.id) == 300
        assert await repo.total_amount("o-1", (RefundStatus.COMPLETED,)) == 0
