"""Initiation records and their status transitions."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any
from uuid import UUID

from sqlalchemy import func, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from membership_api.common.logging import log_context
from membership_api.common.task_queue import TaskQueue
from membership_api.core.errors import InvalidTransitionError, NotFoundError
from membership_api.db import UUIDType, utc_now
from membership_api.features.auto_grant.tasks import INITIATION_TASK, schedule_auto_grant
from membership_api.models import SUCCESS_STATUSES, Initiation, InitiationStatus, User

logger = logging.getLogger(__name__)

# Success statuses are terminal; a failed attempt may be retaken.
INITIATION_TRANSITIONS: dict[InitiationStatus, frozenset[InitiationStatus]] = {
    InitiationStatus.PENDING: frozenset(
        {InitiationStatus.COMPLETED, InitiationStatus.PASSED, InitiationStatus.FAILED}
    ),
    InitiationStatus.FAILED: frozenset(
        {InitiationStatus.PENDING, InitiationStatus.COMPLETED, InitiationStatus.PASSED}
    ),
    InitiationStatus.COMPLETED: frozenset(),
    InitiationStatus.PASSED: frozenset(),
}


class InitiationsService:
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

    async def get(self, initiation_id: UUID) -> Initiation:
        initiation = await self._session.get(Initiation, initiation_id)
        if initiation is None:
            raise NotFoundError("initiation", initiation_id)
        return initiation

    async def list_for(self, user: User) -> Sequence[Initiation]:
        stmt = (
            select(Initiation)
            .where(Initiation.user_id == user.id)
            .order_by(Initiation.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return result.scalars().unique().all()

    async def create(
        self,
        user: User,
        *,
        initiation_type: str,
        conducted_by: User | None = None,
        level: int = 1,
        auto_grant_sub_roles: Sequence[UUID | str] = (),
        notes: str | None = None,
    ) -> Initiation:
        initiation = Initiation(
            user_id=user.id,
            conducted_by_id=conducted_by.id if conducted_by is not None else None,
            initiation_type=initiation_type,
            level=level,
            status=InitiationStatus.PENDING,
            notes=notes,
            auto_grant_sub_roles=[str(item) for item in auto_grant_sub_roles],
        )
        self._session.add(initiation)
        await self._session.flush([initiation])
        return initiation

    async def update_status(
        self,
        initiation_id: UUID,
        status: InitiationStatus | str,
        *,
        actor: User,
        notes: str | None = None,
    ) -> Initiation:
        """Apply a status change and schedule the auto-grant on success.

        Entering the success set stamps ``conducted_at`` and records ``actor``
        as conductor when none was set.
        """

        try:
            target = InitiationStatus(status)
        except ValueError:
            current = await self.get(initiation_id)
            raise InvalidTransitionError(
                "initiation", current.status.value, str(status)
            ) from None
        sources = [
            source for source, targets in INITIATION_TRANSITIONS.items() if target in targets
        ]
        values: dict[str, Any] = {"status": target, "updated_at": utc_now()}
        if notes is not None:
            values["notes"] = notes
        succeeded = target in SUCCESS_STATUSES
        if succeeded:
            values["conducted_at"] = utc_now()
            values["conducted_by_id"] = func.coalesce(
                Initiation.conducted_by_id, literal(actor.id, UUIDType())
            )

        stmt = (
            update(Initiation)
            .where(Initiation.id == initiation_id, Initiation.status.in_(sources))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            current = await self._session.get(Initiation, initiation_id, populate_existing=True)
            if current is None:
                raise NotFoundError("initiation", initiation_id)
            raise InvalidTransitionError("initiation", current.status.value, target.value)

        initiation = await self._session.get(Initiation, initiation_id, populate_existing=True)
        assert initiation is not None
        # Commit before enqueueing: the processor reads in its own session.
        await self._session.commit()
        logger.info(
            "initiations.status.transition",
            extra=log_context(
                user_id=initiation.user_id,
                actor_id=actor.id,
                initiation_id=initiation.id,
                status=target,
            ),
        )
        if succeeded:
            await schedule_auto_grant(
                self._session,
                INITIATION_TASK,
                {"initiation_id": str(initiation.id)},
                task_queue=self._task_queue,
                enabled=self._auto_grant,
            )
        return initiation


__all__ = ["INITIATION_TRANSITIONS", "InitiationsService"]
