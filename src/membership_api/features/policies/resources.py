"""Per-resource policies.

Each policy exposes one method per action taking ``(actor, record)`` and a
``scope`` that narrows a ``select()`` with a SQL predicate.
"""

from __future__ import annotations

from typing import Any, ClassVar

from sqlalchemy import Select, false, or_

from membership_api.core.actor import Actor
from membership_api.features.content.service import RestrictedContent
from membership_api.features.content.specification import Public, Published, UnlockedBy
from membership_api.features.sub_roles.registry import SubRoleUsage
from membership_api.models import (
    Event,
    Initiation,
    OrderRequest,
    Product,
    RestrictableMixin,
    SubRole,
    User,
    UserSubRole,
    WikiPage,
)

from .primitives import can_approve, holds_any_role, is_admin_classified, is_self


class Policy:
    """Base policy: unknown actions are denied and listings are empty."""

    record_types: ClassVar[tuple[type, ...]] = ()
    actions: ClassVar[frozenset[str]] = frozenset()
    # Listing actions that have a query scope; any other action scopes to nothing.
    scoped_actions: ClassVar[frozenset[str]] = frozenset({"index"})

    def can(self, action: str, actor: Actor | None, record: Any) -> bool:
        if action not in self.actions:
            return False
        return bool(getattr(self, action)(actor, record))

    def scope_for(self, action: str, actor: Actor | None, stmt: Select) -> Select:
        if action not in self.scoped_actions:
            return stmt.where(false())
        return self.scope(actor, stmt)

    def scope(self, actor: Actor | None, stmt: Select) -> Select:
        return stmt.where(false())


class UserPolicy(Policy):
    record_types = (User,)
    actions = frozenset({"show", "update", "destroy", "impersonate"})

    def show(self, actor: Actor | None, record: User) -> bool:
        return is_self(actor, record.id) or is_admin_classified(actor)

    def update(self, actor: Actor | None, record: User) -> bool:
        return is_self(actor, record.id) or is_admin_classified(actor)

    def destroy(self, actor: Actor | None, record: User) -> bool:
        return is_admin_classified(actor)

    def impersonate(self, actor: Actor | None, record: User) -> bool:
        # Admins may never impersonate themselves or another admin.
        return (
            is_admin_classified(actor)
            and not is_self(actor, record.id)
            and not record.is_admin_classified
        )

    def scope(self, actor: Actor | None, stmt: Select) -> Select:
        if actor is None:
            return stmt.where(false())
        if is_admin_classified(actor):
            return stmt
        return stmt.where(User.id == actor.id)


class SubRolePolicy(Policy):
    """Sub-role administration.

    ``destroy`` needs the holder count, so it only accepts ``SubRoleUsage``.
    """

    record_types = (SubRole, SubRoleUsage)
    actions = frozenset({"index", "show", "create", "update", "destroy", "assign"})

    @staticmethod
    def _role(record: SubRole | SubRoleUsage | None) -> SubRole | None:
        if isinstance(record, SubRoleUsage):
            return record.sub_role
        return record

    def index(self, actor: Actor | None, record: object = None) -> bool:
        return is_admin_classified(actor)

    def show(self, actor: Actor | None, record: object = None) -> bool:
        return is_admin_classified(actor)

    def create(self, actor: Actor | None, record: object = None) -> bool:
        return is_admin_classified(actor)

    def update(self, actor: Actor | None, record: SubRole | SubRoleUsage) -> bool:
        role = self._role(record)
        return is_admin_classified(actor) and role is not None and not role.system_role

    def destroy(self, actor: Actor | None, record: SubRole | SubRoleUsage) -> bool:
        if not isinstance(record, SubRoleUsage):
            return False
        return (
            is_admin_classified(actor)
            and not record.sub_role.system_role
            and record.holder_count == 0
        )

    def assign(self, actor: Actor | None, record: object = None) -> bool:
        return can_approve(actor)

    def scope(self, actor: Actor | None, stmt: Select) -> Select:
        if is_admin_classified(actor):
            return stmt
        return stmt.where(false())


class GrantPolicy(Policy):
    record_types = (UserSubRole,)
    actions = frozenset({"show"})

    def show(self, actor: Actor | None, record: UserSubRole) -> bool:
        return is_self(actor, record.user_id) or is_admin_classified(actor)

    def scope(self, actor: Actor | None, stmt: Select) -> Select:
        if actor is None:
            return stmt.where(false())
        if is_admin_classified(actor):
            return stmt
        return stmt.where(UserSubRole.user_id == actor.id)


class OrderRequestPolicy(Policy):
    record_types = (OrderRequest,)
    actions = frozenset({"show", "approve", "reject", "cancel"})

    def show(self, actor: Actor | None, record: OrderRequest) -> bool:
        return is_self(actor, record.user_id) or can_approve(actor)

    def approve(self, actor: Actor | None, record: OrderRequest) -> bool:
        return can_approve(actor)

    def reject(self, actor: Actor | None, record: OrderRequest) -> bool:
        return can_approve(actor)

    def cancel(self, actor: Actor | None, record: OrderRequest) -> bool:
        return is_self(actor, record.user_id) or can_approve(actor)

    def scope(self, actor: Actor | None, stmt: Select) -> Select:
        if actor is None:
            return stmt.where(false())
        if can_approve(actor):
            return stmt
        return stmt.where(OrderRequest.user_id == actor.id)


class InitiationPolicy(Policy):
    record_types = (Initiation,)
    actions = frozenset({"show", "update_status"})

    def show(self, actor: Actor | None, record: Initiation) -> bool:
        return (
            is_self(actor, record.user_id)
            or is_self(actor, record.conducted_by_id)
            or can_approve(actor)
        )

    def update_status(self, actor: Actor | None, record: Initiation) -> bool:
        return can_approve(actor) or is_self(actor, record.conducted_by_id)

    def scope(self, actor: Actor | None, stmt: Select) -> Select:
        if actor is None:
            return stmt.where(false())
        if can_approve(actor):
            return stmt
        return stmt.where(
            or_(Initiation.user_id == actor.id, Initiation.conducted_by_id == actor.id)
        )


class ContentPolicy(Policy):
    """Restrictable content.

    Non-admins see published items that are public or unlocked by a held
    role. Publication is never bypassed by a role.
    """

    record_types = (RestrictedContent,)
    actions = frozenset({"show", "restrict"})

    def show(self, actor: Actor | None, record: RestrictedContent) -> bool:
        if is_admin_classified(actor):
            return True
        if not record.content.is_published:
            return False
        return record.is_public or holds_any_role(actor, record.required_role_ids)

    def restrict(self, actor: Actor | None, record: RestrictedContent) -> bool:
        return is_admin_classified(actor)

    def scope(self, actor: Actor | None, stmt: Select) -> Select:
        if is_admin_classified(actor):
            return stmt
        model = entity_of(stmt)
        spec = Published() & Public()
        if actor is not None:
            spec = Published() & (Public() | UnlockedBy(actor.sub_role_ids))
        return stmt.where(spec.to_clause(model))


CONTENT_MODELS: tuple[type[RestrictableMixin], ...] = (Event, WikiPage, Product)


def entity_of(stmt: Select) -> Any:
    descriptions = stmt.column_descriptions
    if not descriptions or descriptions[0].get("entity") is None:
        raise ValueError("scope() needs a select() of a mapped entity")
    return descriptions[0]["entity"]


__all__ = [
    "CONTENT_MODELS",
    "ContentPolicy",
    "entity_of",
    "GrantPolicy",
    "InitiationPolicy",
    "OrderRequestPolicy",
    "Policy",
    "SubRolePolicy",
    "UserPolicy",
]
