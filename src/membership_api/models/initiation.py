"""Initiations: qualification sessions conducted by an instructor."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from membership_api.db import Base, TimestampMixin, UTCDateTime, UUIDPrimaryKeyMixin, UUIDType, string_enum

from .user import User


class InitiationStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    PASSED = "passed"
    FAILED = "failed"


SUCCESS_STATUSES: frozenset[InitiationStatus] = frozenset(
    {InitiationStatus.COMPLETED, InitiationStatus.PASSED}
)


class Initiation(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "initiations"

    user_id: Mapped[UUID] = mapped_column(
        UUIDType(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    conducted_by_id: Mapped[UUID | None] = mapped_column(
        UUIDType(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    initiation_type: Mapped[str] = mapped_column(String(100), nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[InitiationStatus] = mapped_column(
        string_enum(InitiationStatus, name="initiation_status", length=20),
        nullable=False,
        default=InitiationStatus.PENDING,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    conducted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    auto_grant_sub_roles: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    user: Mapped[User] = relationship(User, foreign_keys=[user_id], lazy="joined")
    conducted_by: Mapped[User | None] = relationship(
        User, foreign_keys=[conducted_by_id], lazy="joined"
    )

    __table_args__ = (
        CheckConstraint("level >= 1", name="level_positive"),
        Index("initiations_user_id_idx", "user_id"),
    )

    @property
    def is_successful(self) -> bool:
        return self.status in SUCCESS_STATUSES


__all__ = ["Initiation", "InitiationStatus", "SUCCESS_STATUSES"]
