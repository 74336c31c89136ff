"""Per-resource authorization policies over an explicit acting user."""

from .evaluator import authorize, can, policy_for, scope
from .primitives import can_approve, holds_any_role, is_admin_classified, is_self

__all__ = [
    "authorize",
    "can",
    "can_approve",
    "holds_any_role",
    "is_admin_classified",
    "is_self",
    "policy_for",
    "scope",
]
