"""Sub-role definitions: catalog, registry and admin routes."""

from .catalog import SYSTEM_SUB_ROLE_NAMES, SYSTEM_SUB_ROLES, SubRoleDefinition
from .registry import SubRoleRegistry, SubRoleUsage, normalize_sub_role_name

__all__ = [
    "SYSTEM_SUB_ROLES",
    "SYSTEM_SUB_ROLE_NAMES",
    "SubRoleDefinition",
    "SubRoleRegistry",
    "SubRoleUsage",
    "normalize_sub_role_name",
]
