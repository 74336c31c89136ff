"""Sub-role grant ledger rows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from membership_api.db import Base, UTCDateTime, UUIDPrimaryKeyMixin, UUIDType, string_enum, utc_now

from .sub_role import SubRole


class GrantedVia(str, Enum):
    """Mechanism that produced a grant."""

    PRODUCT_PURCHASE = "product_purchase"
    INITIATION_COMPLETED = "initiation_completed"
    MANUAL = "manual"


class SourceKind(str, Enum):
    """Discriminant for the entity that caused a grant."""

    PRODUCT = "product"
    INITIATION = "initiation"


@dataclass(frozen=True, slots=True)
class SourceRef:
    """Typed pointer to a grant source."""

    kind: SourceKind
    id: UUID

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


ACTIVE_GRANT_PREDICATE = "revoked_at IS NULL"


class UserSubRole(UUIDPrimaryKeyMixin, Base):
    """One ledger row: ``user`` holds ``sub_role`` because of ``source`` via ``granted_via``.

    Rows are written only through ``GrantLedger.grant``. At most one row per
    (user, sub_role) has ``revoked_at`` unset; the partial unique index below is
    the enforcement point that concurrent writers converge on.
    """

    __tablename__ = "user_sub_roles"

    user_id: Mapped[UUID] = mapped_column(
        UUIDType(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    sub_role_id: Mapped[UUID] = mapped_column(
        UUIDType(), ForeignKey("sub_roles.id", ondelete="NO ACTION"), nullable=False
    )
    granted_via: Mapped[GrantedVia] = mapped_column(
        string_enum(GrantedVia, name="granted_via", length=40), nullable=False
    )
    source_type: Mapped[SourceKind | None] = mapped_column(
        string_enum(SourceKind, name="grant_source_kind", length=20), nullable=True
    )
    source_id: Mapped[UUID | None] = mapped_column(UUIDType(), nullable=True)
    granted_by_id: Mapped[UUID | None] = mapped_column(
        UUIDType(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    granted_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    revoked_by_id: Mapped[UUID | None] = mapped_column(
        UUIDType(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    sub_role: Mapped[SubRole] = relationship(SubRole, lazy="joined")

    __table_args__ = (
        CheckConstraint(
            "(source_type IS NULL AND source_id IS NULL) "
            "OR (source_type IS NOT NULL AND source_id IS NOT NULL)",
            name="source_pair",
        ),
        CheckConstraint(
            "(granted_via = 'manual' AND source_type IS NULL) "
            "OR (granted_via = 'product_purchase' AND source_type = 'product') "
            "OR (granted_via = 'initiation_completed' AND source_type = 'initiation')",
            name="provenance",
        ),
        Index(
            "user_sub_roles_active_key",
            "user_id",
            "sub_role_id",
            unique=True,
            sqlite_where=text(ACTIVE_GRANT_PREDICATE),
            mssql_where=text(ACTIVE_GRANT_PREDICATE),
        ),
        Index("user_sub_roles_sub_role_id_idx", "sub_role_id"),
        Index("user_sub_roles_source_idx", "source_type", "source_id"),
    )

    @property
    def source(self) -> SourceRef | None:
        if self.source_type is None or self.source_id is None:
            return None
        return SourceRef(self.source_type, self.source_id)

    @property
    def is_active(self) -> bool:
        return self.revoked_at is None


__all__ = [
    "ACTIVE_GRANT_PREDICATE",
    "GrantedVia",
    "SourceKind",
    "SourceRef",
    "UserSubRole",
]
