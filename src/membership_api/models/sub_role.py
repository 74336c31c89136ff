"""Sub-role definitions: fine-grained capability tags ordered by level."""

from __future__ import annotations

from sqlalchemy import Boolean, CheckConstraint, Integer, String, Text, false
from sqlalchemy.orm import Mapped, mapped_column

from membership_api.db import Base, TimestampMixin, UUIDPrimaryKeyMixin


class SubRole(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Named sub-role. ``name`` is the stable machine key."""

    __tablename__ = "sub_roles"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(150), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    system_role: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    __table_args__ = (CheckConstraint("level >= 0", name="level_non_negative"),)


__all__ = ["SubRole"]
