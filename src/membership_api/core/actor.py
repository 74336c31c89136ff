"""The acting user, passed explicitly into every policy and ledger call."""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from membership_api.models import User, UserClassification


@dataclass(frozen=True, slots=True)
class Actor:
    """A user plus the sub-roles they held when the actor was built."""

    user: User
    sub_role_ids: frozenset[UUID] = field(default_factory=frozenset)
    sub_role_names: frozenset[str] = field(default_factory=frozenset)

    @property
    def id(self) -> UUID:
        return self.user.id

    @property
    def classification(self) -> UserClassification:
        return self.user.classification

    @property
    def is_admin_classified(self) -> bool:
        return self.user.is_admin_classified

    @property
    def can_approve_requests(self) -> bool:
        return self.user.can_approve_requests


__all__ = ["Actor"]
