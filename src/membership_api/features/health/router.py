"""Liveness endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Request
from sqlalchemy import text

from membership_api.api.deps import SessionDep
from membership_api.db import utc_now

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request, session: SessionDep) -> dict[str, str]:
    await session.execute(text("SELECT 1"))
    settings = request.app.state.settings
    return {
        "status": "healthy",
        "version": settings.app_version,
        "timestamp": utc_now().isoformat(),
    }


__all__ = ["router"]
