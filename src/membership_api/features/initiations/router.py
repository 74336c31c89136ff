"""Routes for initiation records."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends

from membership_api.api.deps import CurrentActorDep, get_initiations_service
from membership_api.features.policies import authorize
from membership_api.models import Initiation

from .schemas import InitiationRead, InitiationStatusUpdate
from .service import InitiationsService

router = APIRouter(prefix="/initiations", tags=["initiations"])

ServiceDep = Annotated[InitiationsService, Depends(get_initiations_service)]


@router.get("/{initiation_id}", response_model=InitiationRead)
async def read_initiation(
    initiation_id: UUID, actor: CurrentActorDep, service: ServiceDep
) -> Initiation:
    initiation = await service.get(initiation_id)
    authorize("show", actor, initiation)
    return initiation


@router.patch(
    "/{initiation_id}/status",
    response_model=InitiationRead,
    summary="Change an initiation's status",
)
async def update_initiation_status(
    initiation_id: UUID,
    payload: InitiationStatusUpdate,
    actor: CurrentActorDep,
    service: ServiceDep,
) -> Initiation:
    initiation = await service.get(initiation_id)
    authorize("update_status", actor, initiation)
    return await service.update_status(
        initiation.id, payload.status, actor=actor.user, notes=payload.notes
    )


__all__ = ["router"]
