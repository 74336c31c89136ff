"""Version 1 API router composition."""

from __future__ import annotations

from fastapi import APIRouter

from membership_api.features.content.router import router as content_router
from membership_api.features.grants.router import router as grants_router
from membership_api.features.health.router import router as health_router
from membership_api.features.initiations.router import router as initiations_router
from membership_api.features.orders.router import router as orders_router
from membership_api.features.sub_roles.router import router as sub_roles_router

API_V1_PREFIX = "/api/v1"


def create_api_router() -> APIRouter:
    router = APIRouter(prefix=API_V1_PREFIX)
    router.include_router(health_router)
    router.include_router(sub_roles_router)
    router.include_router(grants_router)
    router.include_router(orders_router)
    router.include_router(initiations_router)
    router.include_router(content_router)
    return router


__all__ = ["API_V1_PREFIX", "create_api_router"]
