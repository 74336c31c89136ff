"""Routes for order request review."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import select

from membership_api.api.deps import CurrentActorDep, get_order_requests_service
from membership_api.features.policies import authorize, scope
from membership_api.models import OrderRequest

from .schemas import OrderRequestRead
from .service import OrderRequestsService

router = APIRouter(prefix="/order-requests", tags=["order-requests"])

ServiceDep = Annotated[OrderRequestsService, Depends(get_order_requests_service)]


@router.get("", response_model=list[OrderRequestRead], summary="List visible order requests")
async def list_order_requests(actor: CurrentActorDep, service: ServiceDep) -> list[OrderRequest]:
    return list(await service.list_requests(scope("index", actor, select(OrderRequest))))


@router.get("/{order_request_id}", response_model=OrderRequestRead)
async def read_order_request(
    order_request_id: UUID, actor: CurrentActorDep, service: ServiceDep
) -> OrderRequest:
    order = await service.get(order_request_id)
    authorize("show", actor, order)
    return order


@router.post(
    "/{order_request_id}/approve",
    response_model=OrderRequestRead,
    summary="Approve a pending order request",
)
async def approve_order_request(
    order_request_id: UUID, actor: CurrentActorDep, service: ServiceDep
) -> OrderRequest:
    order = await service.get(order_request_id)
    authorize("approve", actor, order)
    return await service.approve(order.id, approved_by=actor.user)


@router.post("/{order_request_id}/reject", response_model=OrderRequestRead)
async def reject_order_request(
    order_request_id: UUID, actor: CurrentActorDep, service: ServiceDep
) -> OrderRequest:
    order = await service.get(order_request_id)
    authorize("reject", actor, order)
    return await service.reject(order.id)


@router.post("/{order_request_id}/cancel", response_model=OrderRequestRead)
async def cancel_order_request(
    order_request_id: UUID, actor: CurrentActorDep, service: ServiceDep
) -> OrderRequest:
    order = await service.get(order_request_id)
    authorize("cancel", actor, order)
    return await service.cancel(order.id)


__all__ = ["router"]
