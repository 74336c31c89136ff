"""Grant ledger: the single write path for ``user_sub_roles``."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from membership_api.common.logging import log_context
from membership_api.core.actor import Actor
from membership_api.core.errors import NotFoundError
from membership_api.db import utc_now
from membership_api.models import GrantedVia, SourceRef, SubRole, User, UserSubRole

from .provenance import validate_provenance

logger = logging.getLogger(__name__)


class GrantLedger:
    """Records who holds which sub-role, and why.

    ``grant`` is insert-or-fetch against the partial unique index on active
    (user, sub_role) rows, so concurrent writers converge on one row. Callers
    own the surrounding transaction.
    """

    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session

    async def grant(
        self,
        user: User,
        sub_role: SubRole,
        *,
        granted_via: GrantedVia | str,
        source: SourceRef | None = None,
        granted_by: User | None = None,
    ) -> UserSubRole:
        """Return the active grant for (user, sub_role), creating it if absent."""

        mechanism = validate_provenance(granted_via, source)
        if await self._session.get(SubRole, sub_role.id) is None:
            raise NotFoundError("sub_role", sub_role.id)

        await self._session.flush()
        existing = await self._find_active(user.id, sub_role.id)
        if existing is not None:
            logger.debug(
                "grants.grant.exists",
                extra=log_context(
                    user_id=user.id, sub_role_id=sub_role.id, grant_id=existing.id
                ),
            )
            return existing

        values = {
            "user_id": user.id,
            "sub_role_id": sub_role.id,
            "granted_via": mechanism,
            "source_type": source.kind if source is not None else None,
            "source_id": source.id if source is not None else None,
            "granted_by_id": granted_by.id if granted_by is not None else None,
            "granted_at": utc_now(),
        }
        if self._dialect_name() == "sqlite":
            created = await self._insert_sqlite(values)
        else:
            created = await self._insert_with_savepoint(values)

        record = await self._find_active(user.id, sub_role.id)
        if record is None:  # pragma: no cover - would mean the index is missing
            raise RuntimeError("Active grant vanished after insert-or-fetch")

        if created:
            logger.info(
                "grants.grant.created",
                extra=log_context(
                    user_id=user.id,
                    sub_role_id=sub_role.id,
                    actor_id=granted_by.id if granted_by is not None else None,
                    sub_role_name=sub_role.name,
                    granted_via=mechanism,
                    source=str(source) if source is not None else None,
                ),
            )
        return record

    # ------------- queries -----------------------

    async def has_role(self, user: User, name: str) -> bool:
        stmt = (
            select(UserSubRole.id)
            .join(SubRole, SubRole.id == UserSubRole.sub_role_id)
            .where(
                UserSubRole.user_id == user.id,
                UserSubRole.revoked_at.is_(None),
                SubRole.name == name,
            )
            .limit(1)
        )
        return (await self._session.scalar(stmt)) is not None

    async def roles_for(self, user: User) -> frozenset[str]:
        stmt = (
            select(SubRole.name)
            .join(UserSubRole, UserSubRole.sub_role_id == SubRole.id)
            .where(UserSubRole.user_id == user.id, UserSubRole.revoked_at.is_(None))
        )
        result = await self._session.scalars(stmt)
        return frozenset(result.all())

    async def role_ids_for(self, user: User) -> frozenset[UUID]:
        stmt = select(UserSubRole.sub_role_id).where(
            UserSubRole.user_id == user.id, UserSubRole.revoked_at.is_(None)
        )
        result = await self._session.scalars(stmt)
        return frozenset(result.all())

    async def grants_for(self, user: User) -> Sequence[UserSubRole]:
        """Active grants for ``user``, most senior role first."""

        stmt = (
            select(UserSubRole)
            .join(SubRole, SubRole.id == UserSubRole.sub_role_id)
            .where(UserSubRole.user_id == user.id, UserSubRole.revoked_at.is_(None))
            .order_by(SubRole.level.desc(), SubRole.name)
        )
        result = await self._session.execute(stmt)
        return result.scalars().unique().all()

    async def grants_from(self, source: SourceRef) -> Sequence[UserSubRole]:
        stmt = (
            select(UserSubRole)
            .where(
                UserSubRole.source_type == source.kind,
                UserSubRole.source_id == source.id,
                UserSubRole.revoked_at.is_(None),
            )
            .order_by(UserSubRole.granted_at)
        )
        result = await self._session.execute(stmt)
        return result.scalars().unique().all()

    async def actor_for(self, user: User) -> Actor:
        """Snapshot ``user`` with their currently held sub-roles."""

        stmt = (
            select(SubRole.id, SubRole.name)
            .join(UserSubRole, UserSubRole.sub_role_id == SubRole.id)
            .where(UserSubRole.user_id == user.id, UserSubRole.revoked_at.is_(None))
        )
        rows = (await self._session.execute(stmt)).all()
        return Actor(
            user=user,
            sub_role_ids=frozenset(row.id for row in rows),
            sub_role_names=frozenset(row.name for row in rows),
        )

    # ------------- internals ---------------------

    async def _find_active(self, user_id: UUID, sub_role_id: UUID) -> UserSubRole | None:
        stmt = (
            select(UserSubRole)
            .where(
                UserSubRole.user_id == user_id,
                UserSubRole.sub_role_id == sub_role_id,
                UserSubRole.revoked_at.is_(None),
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    def _dialect_name(self) -> str:
        return self._session.get_bind().dialect.name

    async def _insert_sqlite(self, values: dict[str, object]) -> bool:
        stmt = (
            sqlite_insert(UserSubRole)
            .values(**values)
            .on_conflict_do_nothing(
                index_elements=[UserSubRole.user_id, UserSubRole.sub_role_id],
                index_where=UserSubRole.revoked_at.is_(None),
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 1:
            return True
        logger.debug(
            "grants.grant.conflict",
            extra=log_context(user_id=values["user_id"], sub_role_id=values["sub_role_id"]),
        )
        return False

    async def _insert_with_savepoint(self, values: dict[str, object]) -> bool:
        row = UserSubRole(**values)
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush([row])
        except IntegrityError:
            logger.debug(
                "grants.grant.conflict",
                extra=log_context(
                    user_id=values["user_id"], sub_role_id=values["sub_role_id"]
                ),
            )
            return False
        return True


__all__ = ["GrantLedger"]
