"""Pydantic schemas for restrictable content payloads."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field, model_validator

from membership_api.common.schema import BaseSchema
from membership_api.models import ContentKind, PublicationStatus


class ContentSummary(BaseSchema):
    id: UUID
    kind: ContentKind
    title: str
    status: PublicationStatus
    published_at: datetime | None = None


class ContentDetail(ContentSummary):
    """Single item plus the sub-roles that unlock it (empty when public)."""

    required_role_ids: list[UUID] = Field(default_factory=list)
    is_public: bool


class RequiredRolesUpdate(BaseSchema):
    """Roles to add, by id and/or by name. Existing restrictions are kept."""

    sub_role_ids: list[UUID] = Field(default_factory=list)
    sub_role_names: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _require_some(self) -> RequiredRolesUpdate:
        if not self.sub_role_ids and not self.sub_role_names:
            raise ValueError("Provide sub_role_ids or sub_role_names")
        return self


__all__ = ["ContentDetail", "ContentSummary", "RequiredRolesUpdate"]
