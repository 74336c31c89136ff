"""Tests for order request status transitions."""

from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy import select

from membership_api.core.errors import InvalidTransitionError, NotFoundError
from membership_api.features.orders.service import OrderRequestsService, sources_for
from membership_api.models import OrderRequest, OrderRequestStatus, UserClassification


def test_sources_for_each_target() -> None:
    assert sources_for(OrderRequestStatus.APPROVED) == {OrderRequestStatus.PENDING}
    assert sources_for(OrderRequestStatus.CANCELLED) == {
        OrderRequestStatus.PENDING,
        OrderRequestStatus.APPROVED,
    }
    assert sources_for(OrderRequestStatus.PENDING) == frozenset()


@pytest.mark.asyncio
async def test_full_purchase_lifecycle(session, make_user, make_product) -> None:
    buyer = await make_user()
    approver = await make_user(UserClassification.SPECIALIST)
    product = await make_product("Course", price=4900)
    orders = OrderRequestsService(session=session)

    order = await orders.create(buyer, product, comment="Evening group please")
    await session.commit()
    assert order.status == OrderRequestStatus.PENDING
    assert order.total_price == 4900

    await orders.approve(order.id, approved_by=approver)
    paid = await orders.mark_paid(order.id)
    assert paid.status == OrderRequestStatus.PAID
    completed = await orders.complete(order.id)

    assert completed.status == OrderRequestStatus.COMPLETED
    assert completed.completed_at is not None
    assert completed.approved_at is not None


@pytest.mark.asyncio
async def test_rejected_request_cannot_be_approved(session, make_user, make_product) -> None:
    buyer = await make_user()
    approver = await make_user(UserClassification.ADMIN)
    product = await make_product("Course")
    orders = OrderRequestsService(session=session)
    order = await orders.create(buyer, product)
    await orders.reject(order.id)

    with pytest.raises(InvalidTransitionError) as excinfo:
        await orders.approve(order.id, approved_by=approver)

    assert excinfo.value.current == "rejected"
    assert excinfo.value.target == "approved"


@pytest.mark.asyncio
async def test_completing_requires_payment(session, make_user, make_product) -> None:
    buyer = await make_user()
    approver = await make_user(UserClassification.ADMIN)
    product = await make_product("Course")
    orders = OrderRequestsService(session=session)
    order = await orders.create(buyer, product)
    await session.commit()
    await orders.approve(order.id, approved_by=approver)

    with pytest.raises(InvalidTransitionError):
        await orders.complete(order.id)


@pytest.mark.asyncio
async def test_unknown_request_raises_not_found(session) -> None:
    orders = OrderRequestsService(session=session)

    with pytest.raises(NotFoundError):
        await orders.get(uuid4())
    with pytest.raises(NotFoundError):
        await orders.cancel(uuid4())


@pytest.mark.asyncio
async def test_list_requests_applies_filter(session, make_user, make_product) -> None:
    first = await make_user()
    second = await make_user()
    product = await make_product("Course")
    orders = OrderRequestsService(session=session)
    await orders.create(first, product)
    await orders.create(second, product)

    mine = await orders.list_requests(select(OrderRequest).where(OrderRequest.user_id == first.id))
    everything = await orders.list_requests()

    assert [order.user_id for order in mine] == [first.id]
    assert len(everything) == 2
