"""Built-in system sub-roles, ordered by seniority."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SubRoleDefinition:
    name: str
    display_name: str
    level: int
    description: str | None = None


SYSTEM_SUB_ROLES: tuple[SubRoleDefinition, ...] = (
    SubRoleDefinition("guest", "Guest", 0, "Registered visitor without a membership."),
    SubRoleDefinition("client", "Client", 1, "Purchased at least one product."),
    SubRoleDefinition("club_member", "Club member", 2),
    SubRoleDefinition("representative", "Representative", 3),
    SubRoleDefinition("trainee", "Trainee", 4),
    SubRoleDefinition("instructor_1", "Instructor, level 1", 5),
    SubRoleDefinition("instructor_2", "Instructor, level 2", 6),
    SubRoleDefinition("instructor_3", "Instructor, level 3", 7),
    SubRoleDefinition("specialist", "Specialist", 8),
    SubRoleDefinition("expert", "Expert", 9),
    SubRoleDefinition("center_director", "Center director", 10),
    SubRoleDefinition("curator", "Curator", 11),
    SubRoleDefinition("manager", "Manager", 12),
    SubRoleDefinition("admin", "Administrator", 13),
)

SYSTEM_SUB_ROLE_NAMES: frozenset[str] = frozenset(item.name for item in SYSTEM_SUB_ROLES)


__all__ = ["SYSTEM_SUB_ROLES", "SYSTEM_SUB_ROLE_NAMES", "SubRoleDefinition"]
