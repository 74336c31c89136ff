"""Sub-role registry: lookup, idempotent bootstrap and guarded mutation."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from membership_api.common.logging import log_context
from membership_api.core.errors import (
    NotFoundError,
    ProtectedRoleError,
    RoleConflictError,
    RoleInUseError,
)
from membership_api.models import ContentSubRole, SubRole, UserSubRole

from .catalog import SYSTEM_SUB_ROLES

logger = logging.getLogger(__name__)

_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")


@dataclass(frozen=True, slots=True)
class SubRoleUsage:
    """How many active grants and content restrictions reference a sub-role."""

    sub_role: SubRole
    holder_count: int
    content_link_count: int

    @property
    def in_use(self) -> bool:
        return bool(self.holder_count or self.content_link_count)


def normalize_sub_role_name(value: str) -> str:
    candidate = value.strip().lower()
    if not _NAME_PATTERN.match(candidate):
        raise ValueError(
            "Sub-role name must start with a letter and contain only a-z, 0-9 and '_'"
        )
    return candidate


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


class SubRoleRegistry:
    """Holds sub-role definitions. Callers own the transaction."""

    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session

    # ------------- lookups -----------------------

    async def get(self, sub_role_id: UUID) -> SubRole:
        role = await self._session.get(SubRole, sub_role_id)
        if role is None:
            raise NotFoundError("sub_role", sub_role_id)
        return role

    async def get_by_name(self, name: str) -> SubRole | None:
        stmt = select(SubRole).where(SubRole.name == name).limit(1)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def require_by_name(self, name: str) -> SubRole:
        role = await self.get_by_name(name)
        if role is None:
            raise NotFoundError("sub_role", name)
        return role

    async def get_many(self, sub_role_ids: Iterable[UUID]) -> dict[UUID, SubRole]:
        """Resolve ids in one query; unknown ids are absent from the result."""

        ids = set(sub_role_ids)
        if not ids:
            return {}
        result = await self._session.execute(select(SubRole).where(SubRole.id.in_(ids)))
        return {role.id: role for role in result.scalars()}

    async def get_many_by_name(self, names: Iterable[str]) -> dict[str, SubRole]:
        wanted = set(names)
        if not wanted:
            return {}
        result = await self._session.execute(select(SubRole).where(SubRole.name.in_(wanted)))
        return {role.name: role for role in result.scalars()}

    async def list_ordered(self) -> Sequence[SubRole]:
        stmt = select(SubRole).order_by(SubRole.level, SubRole.name)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def usage(self, sub_role: SubRole) -> SubRoleUsage:
        holders = await self._session.scalar(
            select(func.count())
            .select_from(UserSubRole)
            .where(UserSubRole.sub_role_id == sub_role.id, UserSubRole.revoked_at.is_(None))
        )
        links = await self._session.scalar(
            select(func.count())
            .select_from(ContentSubRole)
            .where(ContentSubRole.sub_role_id == sub_role.id)
        )
        return SubRoleUsage(
            sub_role=sub_role,
            holder_count=int(holders or 0),
            content_link_count=int(links or 0),
        )

    # ------------- bootstrap ---------------------

    async def find_or_create(
        self,
        name: str,
        *,
        display_name: str,
        level: int = 0,
        system_role: bool = False,
        description: str | None = None,
    ) -> SubRole:
        """Return the role called ``name``, creating it when missing.

        Safe for concurrent bootstrap: losing the unique-name race rolls back
        the savepoint and returns the winner's row.
        """

        normalized = normalize_sub_role_name(name)
        existing = await self.get_by_name(normalized)
        if existing is not None:
            return existing

        role = SubRole(
            name=normalized,
            display_name=display_name.strip() or normalized,
            description=_clean_text(description),
            level=level,
            system_role=system_role,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(role)
                await self._session.flush([role])
        except IntegrityError:
            logger.debug(
                "sub_roles.find_or_create.conflict",
                extra=log_context(sub_role_name=normalized),
            )
            existing = await self.get_by_name(normalized)
            if existing is None:
                raise
            return existing

        logger.info(
            "sub_roles.create",
            extra=log_context(
                sub_role_id=role.id, sub_role_name=role.name, system_role=system_role
            ),
        )
        return role

    async def sync_system_roles(self) -> list[SubRole]:
        """Ensure the built-in sub-roles exist with canonical labels and levels."""

        synced: list[SubRole] = []
        for definition in SYSTEM_SUB_ROLES:
            role = await self.find_or_create(
                definition.name,
                display_name=definition.display_name,
                level=definition.level,
                system_role=True,
                description=definition.description,
            )
            role.display_name = definition.display_name
            role.level = definition.level
            role.system_role = True
            synced.append(role)
        await self._session.flush()
        logger.info("sub_roles.sync.complete", extra=log_context(count=len(synced)))
        return synced

    # ------------- administration ----------------

    async def create(
        self,
        *,
        name: str,
        display_name: str,
        level: int = 0,
        description: str | None = None,
    ) -> SubRole:
        """Administrative create: duplicates are an error, never a silent fetch."""

        normalized = normalize_sub_role_name(name)
        if await self.get_by_name(normalized) is not None:
            raise RoleConflictError(normalized)
        role = SubRole(
            name=normalized,
            display_name=display_name.strip() or normalized,
            description=_clean_text(description),
            level=level,
            system_role=False,
        )
        self._session.add(role)
        try:
            await self._session.flush([role])
        except IntegrityError as exc:
            raise RoleConflictError(normalized) from exc
        logger.info(
            "sub_roles.create",
            extra=log_context(sub_role_id=role.id, sub_role_name=role.name),
        )
        return role

    async def update(
        self,
        sub_role: SubRole,
        *,
        display_name: str | None = None,
        level: int | None = None,
        description: str | None = None,
    ) -> SubRole:
        if sub_role.system_role:
            raise ProtectedRoleError(sub_role.name, operation="edited")
        if display_name is not None:
            sub_role.display_name = display_name.strip() or sub_role.name
        if level is not None:
            sub_role.level = level
        if description is not None:
            sub_role.description = _clean_text(description)
        await self._session.flush([sub_role])
        return sub_role

    async def delete(self, sub_role: SubRole) -> None:
        """Delete a custom sub-role nothing references any more."""

        if sub_role.system_role:
            raise ProtectedRoleError(sub_role.name, operation="deleted")

        usage = await self.usage(sub_role)
        if usage.in_use:
            raise RoleInUseError(
                sub_role.name,
                holders=usage.holder_count,
                content_links=usage.content_link_count,
            )

        # Only revoked rows can remain here; they go with the role.
        revoked = await self._session.execute(
            select(UserSubRole).where(UserSubRole.sub_role_id == sub_role.id)
        )
        for row in revoked.scalars():
            await self._session.delete(row)

        await self._session.delete(sub_role)
        await self._session.flush()
        logger.info(
            "sub_roles.delete",
            extra=log_context(sub_role_id=sub_role.id, sub_role_name=sub_role.name),
        )


__all__ = ["SubRoleRegistry", "SubRoleUsage", "normalize_sub_role_name"]
