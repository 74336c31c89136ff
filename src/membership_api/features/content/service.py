"""Visibility resolution and sub-role restrictions for content."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from membership_api.common.logging import log_context
from membership_api.core.errors import NotFoundError
from membership_api.features.grants.service import GrantLedger
from membership_api.features.sub_roles.registry import SubRoleRegistry
from membership_api.models import (
    ContentKind,
    ContentSubRole,
    RestrictableMixin,
    SubRole,
    User,
    model_for_kind,
)

from .specification import Public, Published, Specification, UnlockedByHolder

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RestrictedContent:
    """A content item together with the sub-role ids it requires."""

    content: RestrictableMixin
    required_role_ids: frozenset[UUID]

    @property
    def is_public(self) -> bool:
        return not self.required_role_ids


def visibility_spec(user: User | None) -> Specification:
    """Listing predicate: published, and public or unlocked by a held role."""

    if user is None:
        return Published() & Public()
    return Published() & (Public() | UnlockedByHolder(user.id))


class VisibilityResolver:
    """Answers "may this user see this content" for one item or a listing."""

    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session
        self._registry = SubRoleRegistry(session=session)
        self._ledger = GrantLedger(session=session)

    async def get_content(self, kind: ContentKind | str, content_id: UUID) -> RestrictableMixin:
        model = model_for_kind(ContentKind(kind))
        content = await self._session.get(model, content_id)
        if content is None:
            raise NotFoundError(ContentKind(kind).value, content_id)
        return content

    # ------------- restriction set ---------------

    async def required_role_ids(self, content: RestrictableMixin) -> frozenset[UUID]:
        ref = content.content_ref
        stmt = select(ContentSubRole.sub_role_id).where(
            ContentSubRole.content_type == ref.kind,
            ContentSubRole.content_id == ref.id,
        )
        result = await self._session.scalars(stmt)
        return frozenset(result.all())

    async def required_role_names(self, content: RestrictableMixin) -> frozenset[str]:
        ref = content.content_ref
        stmt = (
            select(SubRole.name)
            .join(ContentSubRole, ContentSubRole.sub_role_id == SubRole.id)
            .where(ContentSubRole.content_type == ref.kind, ContentSubRole.content_id == ref.id)
        )
        result = await self._session.scalars(stmt)
        return frozenset(result.all())

    async def restricted(self, content: RestrictableMixin) -> RestrictedContent:
        return RestrictedContent(content, await self.required_role_ids(content))

    async def is_public(self, content: RestrictableMixin) -> bool:
        return not await self.required_role_ids(content)

    async def is_private(self, content: RestrictableMixin) -> bool:
        return not await self.is_public(content)

    async def add_required_roles_by_id(
        self, content: RestrictableMixin, sub_role_ids: Iterable[UUID]
    ) -> list[ContentSubRole]:
        """Restrict ``content`` to the given roles; existing links are kept as-is."""

        wanted = list(dict.fromkeys(sub_role_ids))
        found = await self._registry.get_many(wanted)
        for sub_role_id in wanted:
            if sub_role_id not in found:
                raise NotFoundError("sub_role", sub_role_id)
        return await self._link(content, [found[sub_role_id] for sub_role_id in wanted])

    async def add_required_roles_by_name(
        self, content: RestrictableMixin, names: Iterable[str]
    ) -> list[ContentSubRole]:
        wanted = list(dict.fromkeys(names))
        found = await self._registry.get_many_by_name(wanted)
        for name in wanted:
            if name not in found:
                raise NotFoundError("sub_role", name)
        return await self._link(content, [found[name] for name in wanted])

    # ------------- access checks -----------------

    async def accessible(self, content: RestrictableMixin, user: User | None) -> bool:
        """Role check for a single item.

        Public content is accessible to everyone; private content only to a
        user holding at least one required role. Publication is checked by
        the listing predicate and by ``ContentPolicy``.
        """

        required = await self.required_role_ids(content)
        if not required:
            return True
        if user is None:
            return False
        held = await self._ledger.role_ids_for(user)
        return not required.isdisjoint(held)

    async def accessible_by(
        self,
        model: type[RestrictableMixin],
        user: User | None,
        *,
        base: Select | None = None,
    ) -> set[UUID]:
        """Ids of visible items in ``base`` (default: every row of ``model``).

        Two queries regardless of collection size: the published public ids,
        then the published ids unlocked by a role the user holds.
        """

        public_ids = await self._ids(model, Published() & Public(), base)
        if user is None:
            return public_ids
        unlocked_ids = await self._ids(model, Published() & UnlockedByHolder(user.id), base)
        return public_ids | unlocked_ids

    def accessible_query(
        self,
        model: type[RestrictableMixin],
        user: User | None,
        *,
        base: Select | None = None,
    ) -> Select:
        """Single listing query equivalent to :meth:`accessible_by`."""

        stmt = base if base is not None else select(model)
        return stmt.where(visibility_spec(user).to_clause(model))

    # ------------- internals ---------------------

    async def _ids(
        self, model: type[RestrictableMixin], spec: Specification, base: Select | None
    ) -> set[UUID]:
        stmt = base if base is not None else select(model)
        stmt = stmt.with_only_columns(model.id).where(spec.to_clause(model))  # type: ignore[attr-defined]
        result = await self._session.scalars(stmt)
        return set(result.all())

    async def _link(
        self, content: RestrictableMixin, roles: list[SubRole]
    ) -> list[ContentSubRole]:
        await self._session.flush()
        ref = content.content_ref
        existing = await self.required_role_ids(content)
        added: list[ContentSubRole] = []
        for role in roles:
            if role.id in existing:
                continue
            link = ContentSubRole(content_type=ref.kind, content_id=ref.id, sub_role_id=role.id)
            try:
                async with self._session.begin_nested():
                    self._session.add(link)
                    await self._session.flush([link])
            except IntegrityError:
                # Another writer linked the same role first.
                continue
            added.append(link)

        if added:
            logger.info(
                "visibility.required_roles.added",
                extra=log_context(
                    content=str(ref),
                    sub_role_ids=[str(link.sub_role_id) for link in added],
                ),
            )
        return added


__all__ = ["RestrictedContent", "VisibilityResolver", "visibility_spec"]
