"""Restrictable content and the content-to-sub-role association table.

Events, wiki pages and products can be gated behind one or more sub-roles.
A piece of content with no ``content_sub_roles`` rows is public.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar
from uuid import UUID

from sqlalchemy import (
    JSON,
    ColumnElement,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    and_,
    delete,
    event,
    or_,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from membership_api.db import (
    Base,
    TimestampMixin,
    UTCDateTime,
    UUIDPrimaryKeyMixin,
    UUIDType,
    string_enum,
    utc_now,
)

from .sub_role import SubRole


class ContentKind(str, Enum):
    """Discriminant for polymorphic content references."""

    EVENT = "event"
    WIKI_PAGE = "wiki_page"
    PRODUCT = "product"


class PublicationStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


@dataclass(frozen=True, slots=True)
class ContentRef:
    """Typed pointer to a restrictable entity."""

    kind: ContentKind
    id: UUID

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


class ContentSubRole(UUIDPrimaryKeyMixin, Base):
    """Link row: the content requires one of the linked sub-roles."""

    __tablename__ = "content_sub_roles"

    content_type: Mapped[ContentKind] = mapped_column(
        string_enum(ContentKind, name="content_kind", length=20), nullable=False
    )
    content_id: Mapped[UUID] = mapped_column(UUIDType(), nullable=False)
    sub_role_id: Mapped[UUID] = mapped_column(
        UUIDType(), ForeignKey("sub_roles.id", ondelete="NO ACTION"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)

    sub_role: Mapped[SubRole] = relationship(SubRole, lazy="joined")

    __table_args__ = (
        UniqueConstraint("content_type", "content_id", "sub_role_id"),
        Index("content_sub_roles_content_idx", "content_type", "content_id"),
        Index("content_sub_roles_sub_role_id_idx", "sub_role_id"),
    )

    @property
    def content_ref(self) -> ContentRef:
        return ContentRef(self.content_type, self.content_id)


class RestrictableMixin:
    """Columns and helpers shared by every restrictable entity.

    Subclasses set ``__content_kind__``; association rows are keyed on it.
    """

    __content_kind__: ClassVar[ContentKind]

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[PublicationStatus] = mapped_column(
        string_enum(PublicationStatus, name="publication_status", length=20),
        nullable=False,
        default=PublicationStatus.DRAFT,
    )
    published_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    @property
    def content_ref(self) -> ContentRef:
        return ContentRef(self.__content_kind__, self.id)  # type: ignore[attr-defined]

    @property
    def is_published(self) -> bool:
        if self.status != PublicationStatus.PUBLISHED:
            return False
        return self.published_at is None or self.published_at <= utc_now()

    def publish(self, *, at: datetime | None = None) -> None:
        self.status = PublicationStatus.PUBLISHED
        self.published_at = at or utc_now()

    @classmethod
    def published_clause(cls, *, now: datetime | None = None) -> ColumnElement[bool]:
        """SQL form of :attr:`is_published`."""

        moment = now or utc_now()
        return and_(
            cls.status == PublicationStatus.PUBLISHED,
            or_(cls.published_at.is_(None), cls.published_at <= moment),
        )


@event.listens_for(RestrictableMixin, "after_delete", propagate=True)
def _drop_role_links(_mapper: Any, connection: Any, target: RestrictableMixin) -> None:
    connection.execute(
        delete(ContentSubRole).where(
            ContentSubRole.content_type == target.__content_kind__,
            ContentSubRole.content_id == target.id,  # type: ignore[attr-defined]
        )
    )


class Event(UUIDPrimaryKeyMixin, TimestampMixin, RestrictableMixin, Base):
    __tablename__ = "events"
    __content_kind__ = ContentKind.EVENT

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    starts_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    ends_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)


class WikiPage(UUIDPrimaryKeyMixin, TimestampMixin, RestrictableMixin, Base):
    __tablename__ = "wiki_pages"
    __content_kind__ = ContentKind.WIKI_PAGE

    slug: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")


class Product(UUIDPrimaryKeyMixin, TimestampMixin, RestrictableMixin, Base):
    """Purchasable item; approval of an order grants ``auto_grant_sub_roles``."""

    __tablename__ = "products"
    __content_kind__ = ContentKind.PRODUCT

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # minor units
    auto_grant_sub_roles: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list
    )


RESTRICTABLE_MODELS: dict[ContentKind, type[RestrictableMixin]] = {
    ContentKind.EVENT: Event,
    ContentKind.WIKI_PAGE: WikiPage,
    ContentKind.PRODUCT: Product,
}


def model_for_kind(kind: ContentKind) -> type[RestrictableMixin]:
    return RESTRICTABLE_MODELS[ContentKind(kind)]


__all__ = [
    "ContentKind",
    "ContentRef",
    "ContentSubRole",
    "Event",
    "Product",
    "PublicationStatus",
    "RESTRICTABLE_MODELS",
    "RestrictableMixin",
    "WikiPage",
    "model_for_kind",
]
