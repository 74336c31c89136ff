"""Task queue subscribers that run auto-grants after a lifecycle change."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from membership_api.common.logging import bind_request_context, current_correlation_id, log_context
from membership_api.common.task_queue import TaskMessage, TaskQueue
from membership_api.core.errors import PartialGrantFailure
from membership_api.models import APPROVED_STATES, Initiation, OrderRequest

from .service import AutoGrantResult, AutoGrantService

logger = logging.getLogger(__name__)

PURCHASE_TASK = "auto_grant.purchase"
INITIATION_TASK = "auto_grant.initiation"
AUTO_GRANT_TASKS = frozenset({PURCHASE_TASK, INITIATION_TASK})


def _payload_id(message: TaskMessage, key: str) -> UUID | None:
    raw = message.payload.get(key)
    if raw is None:
        return None
    try:
        return raw if isinstance(raw, UUID) else UUID(str(raw))
    except ValueError:
        return None


async def process_auto_grant(
    session: AsyncSession, message: TaskMessage
) -> AutoGrantResult | None:
    """Run one ``auto_grant.*`` task on ``session`` and commit.

    The triggering record is re-read, and nothing is granted once it has left
    its triggering state. Partial failures are logged, not raised.
    """

    if message.name == PURCHASE_TASK:
        result = await _handle_purchase(session, message)
    else:
        result = await _handle_initiation(session, message)
    await session.commit()
    if result is None:
        return None
    try:
        result.raise_for_failures()
    except PartialGrantFailure as exc:
        logger.warning(
            "auto_grant.partial_failure",
            extra=log_context(
                user_id=exc.user_id,
                task=message.name,
                granted=len(exc.granted),
                failed=[failure.sub_role_id for failure in exc.failures],
            ),
        )
    return result


async def schedule_auto_grant(
    session: AsyncSession,
    name: str,
    payload: Mapping[str, Any],
    *,
    task_queue: TaskQueue | None,
    enabled: bool = True,
) -> None:
    """Hand a trigger to ``task_queue``, or run it inline on ``session``.

    Callers must have committed the triggering state change first.
    """

    if not enabled:
        logger.info("auto_grant.disabled", extra=log_context(task=name, **dict(payload)))
        return
    if task_queue is not None:
        await task_queue.enqueue(name, payload)
        return
    message = TaskMessage(
        name=name, payload=dict(payload), correlation_id=current_correlation_id()
    )
    await process_auto_grant(session, message)


class AutoGrantProcessor:
    """Handle ``auto_grant.*`` tasks emitted by the queue.

    Each task runs in a fresh session. Grant batches are replay-safe through
    ledger idempotency.
    """

    def __init__(self, *, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def __call__(self, message: TaskMessage) -> None:
        if message.name not in AUTO_GRANT_TASKS:
            return
        if message.correlation_id:
            bind_request_context(message.correlation_id)

        session = self._session_factory()
        try:
            await process_auto_grant(session, message)
        except Exception:
            await session.rollback()
            logger.exception("auto_grant.failed", extra=log_context(task=message.name))
        finally:
            await session.close()


async def _handle_purchase(
    session: AsyncSession, message: TaskMessage
) -> AutoGrantResult | None:
    order_id = _payload_id(message, "order_request_id")
    order = (
        await session.get(OrderRequest, order_id, populate_existing=True) if order_id else None
    )
    if order is None:
        _skip(message, reason="order request not found")
        return None
    if order.status not in APPROVED_STATES:
        _skip(message, reason=f"order request is {order.status.value}")
        return None

    product = order.product
    if not product.auto_grant_sub_roles:
        return None
    return await AutoGrantService(session=session).grant_for_purchase(order.user, product)


async def _handle_initiation(
    session: AsyncSession, message: TaskMessage
) -> AutoGrantResult | None:
    initiation_id = _payload_id(message, "initiation_id")
    initiation = (
        await session.get(Initiation, initiation_id, populate_existing=True)
        if initiation_id
        else None
    )
    if initiation is None:
        _skip(message, reason="initiation not found")
        return None
    if not initiation.is_successful:
        _skip(message, reason=f"initiation is {initiation.status.value}")
        return None
    if not initiation.auto_grant_sub_roles:
        return None
    return await AutoGrantService(session=session).grant_for_initiation(initiation)


def _skip(message: TaskMessage, *, reason: str) -> None:
    logger.info(
        "auto_grant.skipped",
        extra=log_context(task=message.name, reason=reason, **dict(message.payload)),
    )


def register_auto_grant_handlers(
    queue: TaskQueue, *, session_factory: async_sessionmaker[AsyncSession]
) -> AutoGrantProcessor:
    processor = AutoGrantProcessor(session_factory=session_factory)
    queue.subscribe(processor)
    return processor


__all__ = [
    "AUTO_GRANT_TASKS",
    "INITIATION_TASK",
    "PURCHASE_TASK",
    "AutoGrantProcessor",
    "process_auto_grant",
    "register_auto_grant_handlers",
    "schedule_auto_grant",
]
