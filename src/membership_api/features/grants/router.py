"""Routes for reading and manually granting a user's sub-roles."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import select

from membership_api.api.deps import (
    CurrentActorDep,
    SessionDep,
    get_grant_ledger,
    get_sub_role_registry,
)
from membership_api.core.errors import NotFoundError
from membership_api.features.policies import authorize, scope
from membership_api.features.sub_roles.registry import SubRoleRegistry
from membership_api.models import GrantedVia, SubRole, User, UserSubRole

from .schemas import GrantRead, ManualGrantCreate
from .service import GrantLedger

router = APIRouter(prefix="/users/{user_id}/sub-roles", tags=["grants"])

LedgerDep = Annotated[GrantLedger, Depends(get_grant_ledger)]


async def _load_user(session: SessionDep, user_id: UUID) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError("user", user_id)
    return user


@router.get(
    "",
    response_model=list[GrantRead],
    summary="List a user's active sub-role grants",
)
async def list_user_sub_roles(
    user_id: UUID, actor: CurrentActorDep, session: SessionDep
) -> list[UserSubRole]:
    user = await _load_user(session, user_id)
    authorize("show", actor, user)
    stmt = (
        select(UserSubRole)
        .join(SubRole, SubRole.id == UserSubRole.sub_role_id)
        .where(UserSubRole.user_id == user.id, UserSubRole.revoked_at.is_(None))
        .order_by(SubRole.level.desc(), SubRole.name)
    )
    result = await session.execute(scope("index", actor, stmt))
    return list(result.scalars().unique().all())


@router.post(
    "",
    response_model=GrantRead,
    summary="Grant a sub-role manually (idempotent)",
)
async def grant_user_sub_role(
    user_id: UUID,
    payload: ManualGrantCreate,
    actor: CurrentActorDep,
    session: SessionDep,
    ledger: LedgerDep,
    registry: Annotated[SubRoleRegistry, Depends(get_sub_role_registry)],
) -> UserSubRole:
    authorize("assign", actor, SubRole)
    user = await _load_user(session, user_id)
    role = await registry.get(payload.sub_role_id)
    return await ledger.grant(
        user, role, granted_via=GrantedVia.MANUAL, source=None, granted_by=actor.user
    )


__all__ = ["router"]
