"""Pydantic schemas for sub-role payloads."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field, field_validator

from membership_api.common.schema import BaseSchema

from .registry import normalize_sub_role_name


class SubRoleRead(BaseSchema):
    id: UUID
    name: str
    display_name: str
    description: str | None = None
    level: int
    system_role: bool
    created_at: datetime
    updated_at: datetime


class SubRoleCreate(BaseSchema):
    """Payload for an administrator-defined sub-role."""

    name: str = Field(min_length=1, max_length=100)
    display_name: str = Field(min_length=1, max_length=255)
    level: int = Field(default=0, ge=0)
    description: str | None = None

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        return normalize_sub_role_name(value)


class SubRoleUpdate(BaseSchema):
    display_name: str | None = Field(default=None, min_length=1, max_length=255)
    level: int | None = Field(default=None, ge=0)
    description: str | None = None


__all__ = ["SubRoleCreate", "SubRoleRead", "SubRoleUpdate"]
