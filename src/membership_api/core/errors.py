"""Domain errors raised by the sub-role, grant and policy services."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from membership_api.models import UserSubRole


class MembershipError(Exception):
    """Base class for domain errors surfaced to the immediate caller."""


class AuthenticationError(MembershipError):
    """Raised when no trusted identity accompanies a request."""


class NotFoundError(MembershipError, LookupError):
    """Unknown role, content, user or lifecycle record reference."""

    def __init__(self, kind: str, identifier: object) -> None:
        super().__init__(f"{kind} '{identifier}' not found")
        self.kind = kind
        self.identifier = identifier


class ProtectedRoleError(MembershipError):
    """Mutation attempted on a system sub-role."""

    def __init__(self, name: str, *, operation: str) -> None:
        super().__init__(f"Sub-role '{name}' is a system role and cannot be {operation}")
        self.name = name
        self.operation = operation


class RoleInUseError(MembershipError):
    """Deletion blocked because grants or content still reference the sub-role."""

    def __init__(self, name: str, *, holders: int, content_links: int) -> None:
        super().__init__(
            f"Sub-role '{name}' is still referenced "
            f"({holders} holder(s), {content_links} content restriction(s))"
        )
        self.name = name
        self.holders = holders
        self.content_links = content_links


class RoleConflictError(MembershipError):
    """A sub-role with the requested name already exists."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Sub-role '{name}' already exists")
        self.name = name


class InvalidProvenanceError(MembershipError, ValueError):
    """Mechanism tag and source kind disagree, or the tag is unknown."""


class InvalidTransitionError(MembershipError):
    """A lifecycle record cannot move from its current state to the requested one."""

    def __init__(self, kind: str, current: str, target: str) -> None:
        super().__init__(f"Cannot move {kind} from '{current}' to '{target}'")
        self.kind = kind
        self.current = current
        self.target = target


class UnauthorizedError(MembershipError):
    """Policy check failed. The message never names the missing role."""

    def __init__(self) -> None:
        super().__init__("forbidden")


@dataclass(frozen=True, slots=True)
class GrantFailure:
    """One configured role id that could not be granted.

    ``event`` is the log event name the failure is reported under.
    """

    sub_role_id: str
    reason: str
    event: str = "auto_grant.grant_failed"


class PartialGrantFailure(MembershipError):
    """Some configured role ids in an auto-grant batch were skipped."""

    def __init__(
        self,
        failures: Sequence[GrantFailure],
        *,
        granted: Sequence[UserSubRole] = (),
        user_id: UUID | None = None,
    ) -> None:
        ids = ", ".join(failure.sub_role_id for failure in failures)
        super().__init__(f"{len(failures)} sub-role grant(s) skipped: {ids}")
        self.failures = tuple(failures)
        self.granted = tuple(granted)
        self.user_id = user_id


__all__ = [
    "AuthenticationError",
    "GrantFailure",
    "InvalidProvenanceError",
    "InvalidTransitionError",
    "MembershipError",
    "NotFoundError",
    "PartialGrantFailure",
    "ProtectedRoleError",
    "RoleConflictError",
    "RoleInUseError",
    "UnauthorizedError",
]
