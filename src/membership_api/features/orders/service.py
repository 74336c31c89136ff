"""Order request lifecycle.

Status changes are conditional updates on the current status, so each edge
fires at most once even when two approvers race. Only ``pending -> approved``
schedules the purchase auto-grant.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any
from uuid import UUID

from sqlalchemy import Select, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from membership_api.common.logging import log_context
from membership_api.common.task_queue import TaskQueue
from membership_api.core.errors import InvalidTransitionError, NotFoundError
from membership_api.db import utc_now
from membership_api.features.auto_grant.tasks import PURCHASE_TASK, schedule_auto_grant
from membership_api.models import (
    ORDER_REQUEST_TRANSITIONS,
    OrderRequest,
    OrderRequestStatus,
    Product,
    User,
)

logger = logging.getLogger(__name__)


def sources_for(target: OrderRequestStatus) -> frozenset[OrderRequestStatus]:
    return frozenset(
        source for source, targets in ORDER_REQUEST_TRANSITIONS.items() if target in targets
    )


class OrderRequestsService:
    """Order request transitions.

    Without a ``task_queue`` the purchase auto-grant runs inline on the same
    session; ``auto_grant=False`` turns it off.
    """

    def __init__(
        self,
        *,
        session: AsyncSession,
        task_queue: TaskQueue | None = None,
        auto_grant: bool = True,
    ) -> None:
        self._session = session
        self._task_queue = task_queue
        self._auto_grant = auto_grant

    async def get(self, order_request_id: UUID) -> OrderRequest:
        order = await self._session.get(OrderRequest, order_request_id)
        if order is None:
            raise NotFoundError("order_request", order_request_id)
        return order

    async def list_requests(self, stmt: Select | None = None) -> Sequence[OrderRequest]:
        stmt = stmt if stmt is not None else select(OrderRequest)
        result = await self._session.execute(stmt.order_by(OrderRequest.created_at.desc()))
        return result.scalars().unique().all()

    async def create(
        self, user: User, product: Product, *, comment: str | None = None
    ) -> OrderRequest:
        order = OrderRequest(
            user_id=user.id,
            product_id=product.id,
            status=OrderRequestStatus.PENDING,
            total_price=product.price,
            comment=comment,
        )
        self._session.add(order)
        await self._session.flush([order])
        return order

    async def approve(self, order_request_id: UUID, *, approved_by: User) -> OrderRequest:
        """Move a pending request to ``approved`` and schedule its auto-grant."""

        order = await self._transition(
            order_request_id,
            OrderRequestStatus.APPROVED,
            approved_at=utc_now(),
            approved_by_id=approved_by.id,
        )
        await self._session.commit()
        logger.info(
            "orders.approve",
            extra=log_context(
                user_id=order.user_id,
                actor_id=approved_by.id,
                order_request_id=order.id,
                product_id=order.product_id,
            ),
        )
        await schedule_auto_grant(
            self._session,
            PURCHASE_TASK,
            {"order_request_id": str(order.id)},
            task_queue=self._task_queue,
            enabled=self._auto_grant,
        )
        return order

    async def reject(self, order_request_id: UUID) -> OrderRequest:
        return await self._transition(order_request_id, OrderRequestStatus.REJECTED)

    async def cancel(self, order_request_id: UUID) -> OrderRequest:
        return await self._transition(order_request_id, OrderRequestStatus.CANCELLED)

    async def mark_paid(self, order_request_id: UUID) -> OrderRequest:
        return await self._transition(order_request_id, OrderRequestStatus.PAID)

    async def complete(self, order_request_id: UUID) -> OrderRequest:
        return await self._transition(
            order_request_id, OrderRequestStatus.COMPLETED, completed_at=utc_now()
        )

    async def _transition(
        self, order_request_id: UUID, target: OrderRequestStatus, **values: Any
    ) -> OrderRequest:
        stmt = (
            update(OrderRequest)
            .where(
                OrderRequest.id == order_request_id,
                OrderRequest.status.in_(sources_for(target)),
            )
            .values(status=target, updated_at=utc_now(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            current = await self._session.get(
                OrderRequest, order_request_id, populate_existing=True
            )
            if current is None:
                raise NotFoundError("order_request", order_request_id)
            raise InvalidTransitionError("order_request", current.status.value, target.value)

        refreshed = await self._session.execute(
            select(OrderRequest)
            .where(OrderRequest.id == order_request_id)
            .execution_options(populate_existing=True)
        )
        return refreshed.scalars().unique().one()


__all__ = ["OrderRequestsService", "sources_for"]
