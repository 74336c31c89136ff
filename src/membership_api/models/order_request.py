"""Purchase requests for products."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from membership_api.db import Base, TimestampMixin, UTCDateTime, UUIDPrimaryKeyMixin, UUIDType, string_enum

from .content import Product
from .user import User


class OrderRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Allowed one-way edges. Anything not listed is rejected.
ORDER_REQUEST_TRANSITIONS: dict[OrderRequestStatus, frozenset[OrderRequestStatus]] = {
    OrderRequestStatus.PENDING: frozenset(
        {OrderRequestStatus.APPROVED, OrderRequestStatus.REJECTED, OrderRequestStatus.CANCELLED}
    ),
    OrderRequestStatus.APPROVED: frozenset(
        {OrderRequestStatus.PAID, OrderRequestStatus.CANCELLED}
    ),
    OrderRequestStatus.PAID: frozenset({OrderRequestStatus.COMPLETED}),
    OrderRequestStatus.REJECTED: frozenset(),
    OrderRequestStatus.COMPLETED: frozenset(),
    OrderRequestStatus.CANCELLED: frozenset(),
}

# States in which an approval has happened and not been withdrawn.
APPROVED_STATES: frozenset[OrderRequestStatus] = frozenset(
    {OrderRequestStatus.APPROVED, OrderRequestStatus.PAID, OrderRequestStatus.COMPLETED}
)


class OrderRequest(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "order_requests"

    user_id: Mapped[UUID] = mapped_column(
        UUIDType(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[UUID] = mapped_column(
        UUIDType(), ForeignKey("products.id", ondelete="NO ACTION"), nullable=False
    )
    status: Mapped[OrderRequestStatus] = mapped_column(
        string_enum(OrderRequestStatus, name="order_request_status", length=20),
        nullable=False,
        default=OrderRequestStatus.PENDING,
    )
    total_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    approved_by_id: Mapped[UUID | None] = mapped_column(
        UUIDType(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    product: Mapped[Product] = relationship(Product, lazy="joined")
    user: Mapped[User] = relationship(User, foreign_keys=[user_id], lazy="joined")

    __table_args__ = (
        Index("order_requests_user_id_idx", "user_id"),
        Index("order_requests_status_idx", "status"),
    )


__all__ = [
    "APPROVED_STATES",
    "ORDER_REQUEST_TRANSITIONS",
    "OrderRequest",
    "OrderRequestStatus",
]
