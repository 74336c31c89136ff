"""Pydantic schemas for order request payloads."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from membership_api.common.schema import BaseSchema
from membership_api.models import OrderRequestStatus


class OrderRequestRead(BaseSchema):
    id: UUID
    user_id: UUID
    product_id: UUID
    status: OrderRequestStatus
    total_price: int
    comment: str | None = None
    approved_at: datetime | None = None
    approved_by_id: UUID | None = None
    completed_at: datetime | None = None
    created_at: datetime


__all__ = ["OrderRequestRead"]
