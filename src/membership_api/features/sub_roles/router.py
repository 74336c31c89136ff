"""Routes for sub-role administration."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import select

from membership_api.api.deps import CurrentActorDep, SessionDep, get_sub_role_registry
from membership_api.features.policies import authorize, can, scope
from membership_api.models import SubRole

from .registry import SubRoleRegistry
from .schemas import SubRoleCreate, SubRoleRead, SubRoleUpdate

router = APIRouter(prefix="/sub-roles", tags=["sub-roles"])

RegistryDep = Annotated[SubRoleRegistry, Depends(get_sub_role_registry)]


@router.get(
    "",
    response_model=list[SubRoleRead],
    summary="List sub-roles ordered by level",
)
async def list_sub_roles(actor: CurrentActorDep, session: SessionDep) -> list[SubRole]:
    authorize("index", actor, SubRole)
    stmt = scope("index", actor, select(SubRole)).order_by(SubRole.level, SubRole.name)
    result = await session.execute(stmt)
    return list(result.scalars().all())


@router.post(
    "",
    response_model=SubRoleRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a custom sub-role",
)
async def create_sub_role(
    payload: SubRoleCreate, actor: CurrentActorDep, registry: RegistryDep
) -> SubRole:
    authorize("create", actor, SubRole)
    return await registry.create(
        name=payload.name,
        display_name=payload.display_name,
        level=payload.level,
        description=payload.description,
    )


@router.patch(
    "/{sub_role_id}",
    response_model=SubRoleRead,
    summary="Update a custom sub-role",
)
async def update_sub_role(
    sub_role_id: UUID,
    payload: SubRoleUpdate,
    actor: CurrentActorDep,
    registry: RegistryDep,
) -> SubRole:
    role = await registry.get(sub_role_id)
    if not can("update", actor, role):
        authorize("show", actor, role)
    return await registry.update(
        role,
        display_name=payload.display_name,
        level=payload.level,
        description=payload.description,
    )


@router.delete(
    "/{sub_role_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an unused custom sub-role",
)
async def delete_sub_role(
    sub_role_id: UUID, actor: CurrentActorDep, registry: RegistryDep
) -> Response:
    role = await registry.get(sub_role_id)
    if not can("destroy", actor, await registry.usage(role)):
        # Admins fall through to the registry's 409; everyone else gets 403.
        authorize("show", actor, role)
    await registry.delete(role)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
