"""Boolean building blocks shared by every resource policy.

Anonymous callers are represented by ``None`` and fail every check.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from membership_api.core.actor import Actor


def is_admin_classified(actor: Actor | None) -> bool:
    return actor is not None and actor.is_admin_classified


def can_approve(actor: Actor | None) -> bool:
    return actor is not None and actor.can_approve_requests


def is_self(actor: Actor | None, user_id: UUID | None) -> bool:
    return actor is not None and user_id is not None and actor.id == user_id


def holds_any_role(actor: Actor | None, role_ids: Iterable[UUID]) -> bool:
    if actor is None:
        return False
    return not actor.sub_role_ids.isdisjoint(role_ids)


__all__ = ["can_approve", "holds_any_role", "is_admin_classified", "is_self"]
