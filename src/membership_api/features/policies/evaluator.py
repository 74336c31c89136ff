"""Policy dispatch: ``can``, ``authorize`` and ``scope``.

The acting user is always an explicit argument; nothing is read from
request context.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Select

from membership_api.common.logging import log_context
from membership_api.core.actor import Actor
from membership_api.core.errors import UnauthorizedError

from .resources import (
    CONTENT_MODELS,
    ContentPolicy,
    GrantPolicy,
    InitiationPolicy,
    OrderRequestPolicy,
    Policy,
    SubRolePolicy,
    UserPolicy,
    entity_of,
)

logger = logging.getLogger(__name__)

_CONTENT_POLICY = ContentPolicy()
_POLICIES: tuple[Policy, ...] = (
    UserPolicy(),
    SubRolePolicy(),
    GrantPolicy(),
    OrderRequestPolicy(),
    InitiationPolicy(),
    _CONTENT_POLICY,
)

# Records map to their policy; content models map to the content policy for scope().
_BY_TYPE: dict[type, Policy] = {
    **{record_type: policy for policy in _POLICIES for record_type in policy.record_types},
    **{model: _CONTENT_POLICY for model in CONTENT_MODELS},
}


def policy_for(record_or_type: Any) -> Policy:
    """Return the policy governing ``record_or_type`` (an instance or a class)."""

    target = record_or_type if isinstance(record_or_type, type) else type(record_or_type)
    for candidate in target.__mro__:
        policy = _BY_TYPE.get(candidate)
        if policy is not None:
            return policy
    raise LookupError(f"No policy registered for {target.__name__}")


def can(action: str, actor: Actor | None, record: Any) -> bool:
    return policy_for(record).can(action, actor, record)


def authorize(action: str, actor: Actor | None, record: Any) -> None:
    """Raise ``UnauthorizedError`` unless ``actor`` may perform ``action``."""

    if can(action, actor, record):
        return
    logger.info(
        "policy.denied",
        extra=log_context(
            actor_id=actor.id if actor is not None else None,
            action=action,
            resource=(record if isinstance(record, type) else type(record)).__name__,
        ),
    )
    raise UnauthorizedError()


def scope(action: str, actor: Actor | None, stmt: Select) -> Select:
    """Narrow ``stmt`` to the rows ``actor`` may ``action``; returns a new query.

    Actions without a listing scope match no rows.
    """

    return policy_for(entity_of(stmt)).scope_for(action, actor, stmt)


__all__ = ["authorize", "can", "policy_for", "scope"]
