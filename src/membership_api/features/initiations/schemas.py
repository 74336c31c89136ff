"""Pydantic schemas for initiation payloads."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from membership_api.common.schema import BaseSchema
from membership_api.models import InitiationStatus


class InitiationRead(BaseSchema):
    id: UUID
    user_id: UUID
    conducted_by_id: UUID | None = None
    initiation_type: str
    level: int
    status: InitiationStatus
    notes: str | None = None
    conducted_at: datetime | None = None
    auto_grant_sub_roles: list[str]


class InitiationStatusUpdate(BaseSchema):
    status: InitiationStatus
    notes: str | None = None


__all__ = ["InitiationRead", "InitiationStatusUpdate"]
