"""Pydantic schemas for grant ledger payloads."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field

from membership_api.common.schema import BaseSchema
from membership_api.models import GrantedVia, SourceKind


class GrantedSubRole(BaseSchema):
    id: UUID
    name: str
    display_name: str
    level: int


class GrantRead(BaseSchema):
    """One active ledger row with its provenance."""

    id: UUID
    user_id: UUID
    sub_role: GrantedSubRole
    granted_via: GrantedVia
    source_type: SourceKind | None = None
    source_id: UUID | None = None
    granted_by_id: UUID | None = None
    granted_at: datetime


class ManualGrantCreate(BaseSchema):
    sub_role_id: UUID = Field(description="Sub-role to grant to the user.")


__all__ = ["GrantRead", "GrantedSubRole", "ManualGrantCreate"]
