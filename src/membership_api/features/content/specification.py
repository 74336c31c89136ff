"""Composable visibility predicates for restrictable content.

Each specification renders to one SQL boolean clause against a restrictable
model, so listing filters run as a single query instead of a per-row loop.
Combine with ``&`` and ``|``::

    spec = Published() & (Public() | UnlockedByHolder(user.id))
    stmt = select(Event).where(spec.to_clause(Event))
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import ColumnElement, and_, false, or_, select, true

from membership_api.models import ContentSubRole, RestrictableMixin, UserSubRole


class Specification:
    """Base class for visibility predicates."""

    def to_clause(self, model: type[RestrictableMixin]) -> ColumnElement[bool]:
        raise NotImplementedError

    def __and__(self, other: Specification) -> Specification:
        return AllOf((self, other))

    def __or__(self, other: Specification) -> Specification:
        return AnyOf((self, other))


@dataclass(frozen=True)
class AllOf(Specification):
    parts: tuple[Specification, ...]

    def to_clause(self, model: type[RestrictableMixin]) -> ColumnElement[bool]:
        return and_(*(part.to_clause(model) for part in self.parts))


@dataclass(frozen=True)
class AnyOf(Specification):
    parts: tuple[Specification, ...]

    def to_clause(self, model: type[RestrictableMixin]) -> ColumnElement[bool]:
        return or_(*(part.to_clause(model) for part in self.parts))


@dataclass(frozen=True)
class Everything(Specification):
    def to_clause(self, model: type[RestrictableMixin]) -> ColumnElement[bool]:
        return true()


@dataclass(frozen=True)
class Published(Specification):
    """Status is ``published`` and ``published_at`` is not in the future."""

    now: datetime | None = None

    def to_clause(self, model: type[RestrictableMixin]) -> ColumnElement[bool]:
        return model.published_clause(now=self.now)


def _links_for(model: type[RestrictableMixin]) -> ColumnElement[bool]:
    return and_(
        ContentSubRole.content_type == model.__content_kind__,
        ContentSubRole.content_id == model.id,  # type: ignore[attr-defined]
    )


@dataclass(frozen=True)
class Public(Specification):
    """No sub-role restriction rows exist for the item."""

    def to_clause(self, model: type[RestrictableMixin]) -> ColumnElement[bool]:
        return ~select(ContentSubRole.id).where(_links_for(model)).exists()


@dataclass(frozen=True)
class UnlockedBy(Specification):
    """The item requires at least one of ``sub_role_ids``."""

    sub_role_ids: frozenset[UUID]

    @classmethod
    def of(cls, sub_role_ids: Iterable[UUID]) -> UnlockedBy:
        return cls(frozenset(sub_role_ids))

    def to_clause(self, model: type[RestrictableMixin]) -> ColumnElement[bool]:
        if not self.sub_role_ids:
            return false()
        return (
            select(ContentSubRole.id)
            .where(_links_for(model), ContentSubRole.sub_role_id.in_(self.sub_role_ids))
            .exists()
        )


@dataclass(frozen=True)
class UnlockedByHolder(Specification):
    """The item requires a sub-role that ``user_id`` actively holds."""

    user_id: UUID

    def to_clause(self, model: type[RestrictableMixin]) -> ColumnElement[bool]:
        held = (
            select(ContentSubRole.id)
            .join(UserSubRole, UserSubRole.sub_role_id == ContentSubRole.sub_role_id)
            .where(
                _links_for(model),
                UserSubRole.user_id == self.user_id,
                UserSubRole.revoked_at.is_(None),
            )
        )
        return held.exists()


__all__ = [
    "AllOf",
    "AnyOf",
    "Everything",
    "Public",
    "Published",
    "Specification",
    "UnlockedBy",
    "UnlockedByHolder",
]
