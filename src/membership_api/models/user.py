"""Platform member identity with its coarse role classification."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, validates

from membership_api.db import Base, TimestampMixin, UUIDPrimaryKeyMixin, string_enum


class UserClassification(str, Enum):
    """Coarse classification, independent of the sub-role ledger."""

    GUEST = "guest"
    CLIENT = "client"
    CLUB_MEMBER = "club_member"
    REPRESENTATIVE = "representative"
    TRAINEE = "trainee"
    INSTRUCTOR_1 = "instructor_1"
    INSTRUCTOR_2 = "instructor_2"
    INSTRUCTOR_3 = "instructor_3"
    SPECIALIST = "specialist"
    EXPERT = "expert"
    CENTER_DIRECTOR = "center_director"
    CURATOR = "curator"
    MANAGER = "manager"
    ADMIN = "admin"


ADMIN_CLASSIFICATIONS: frozenset[UserClassification] = frozenset(
    {UserClassification.ADMIN, UserClassification.MANAGER, UserClassification.CURATOR}
)
APPROVER_CLASSIFICATIONS: frozenset[UserClassification] = ADMIN_CLASSIFICATIONS | {
    UserClassification.CENTER_DIRECTOR,
    UserClassification.SPECIALIST,
}


def _clean_email(value: str) -> str:
    cleaned = value.strip().lower()
    if not cleaned:
        msg = "Email must not be empty"
        raise ValueError(msg)
    return cleaned


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    classification: Mapped[UserClassification] = mapped_column(
        string_enum(UserClassification, name="user_classification"),
        nullable=False,
        default=UserClassification.CLIENT,
    )

    @validates("email")
    def _normalise_email(self, _key: str, value: str) -> str:
        return _clean_email(value)

    @property
    def label(self) -> str:
        return self.display_name or self.email

    @property
    def is_admin_classified(self) -> bool:
        return self.classification in ADMIN_CLASSIFICATIONS

    @property
    def can_approve_requests(self) -> bool:
        return self.classification in APPROVER_CLASSIFICATIONS


__all__ = [
    "ADMIN_CLASSIFICATIONS",
    "APPROVER_CLASSIFICATIONS",
    "User",
    "UserClassification",
]
