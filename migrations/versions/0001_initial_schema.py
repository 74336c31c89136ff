"""Initial membership schema with the sub-role ledger."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

from membership_api.db.types import UTCDateTime, UUIDType

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

USER_CLASSIFICATION = sa.Enum(
    "guest",
    "client",
    "club_member",
    "representative",
    "trainee",
    "instructor_1",
    "instructor_2",
    "instructor_3",
    "specialist",
    "expert",
    "center_director",
    "curator",
    "manager",
    "admin",
    name="user_classification",
    native_enum=False,
    length=40,
)

PUBLICATION_STATUS = sa.Enum(
    "draft",
    "published",
    "archived",
    name="publication_status",
    native_enum=False,
    length=20,
)

CONTENT_KIND = sa.Enum(
    "event",
    "wiki_page",
    "product",
    name="content_kind",
    native_enum=False,
    length=20,
)

GRANTED_VIA = sa.Enum(
    "product_purchase",
    "initiation_completed",
    "manual",
    name="granted_via",
    native_enum=False,
    length=40,
)

GRANT_SOURCE_KIND = sa.Enum(
    "product",
    "initiation",
    name="grant_source_kind",
    native_enum=False,
    length=20,
)

ORDER_REQUEST_STATUS = sa.Enum(
    "pending",
    "approved",
    "rejected",
    "paid",
    "completed",
    "cancelled",
    name="order_request_status",
    native_enum=False,
    length=20,
)

INITIATION_STATUS = sa.Enum(
    "pending",
    "completed",
    "passed",
    "failed",
    name="initiation_status",
    native_enum=False,
    length=20,
)

ACTIVE_GRANT_PREDICATE = "revoked_at IS NULL"


def upgrade() -> None:
    _create_users()
    _create_sub_roles()
    _create_events()
    _create_wiki_pages()
    _create_products()
    _create_content_sub_roles()
    _create_user_sub_roles()
    _create_order_requests()
    _create_initiations()


def downgrade() -> None:  # pragma: no cover - intentionally not implemented
    raise NotImplementedError("Downgrade is not supported for the initial schema.")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=False),
    ]


def _restrictable_columns() -> list[sa.Column]:
    return [
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("status", PUBLICATION_STATUS, nullable=False),
        sa.Column("published_at", UTCDateTime(), nullable=True),
    ]


def _create_users() -> None:
    op.create_table(
        "users",
        sa.Column("id", UUIDType(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("classification", USER_CLASSIFICATION, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("users_pkey")),
        sa.UniqueConstraint("email", name=op.f("users_email_key")),
    )


def _create_sub_roles() -> None:
    op.create_table(
        "sub_roles",
        sa.Column("id", UUIDType(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("display_name", sa.String(length=150), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("system_role", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint("level >= 0", name=op.f("sub_roles_level_non_negative_check")),
        sa.PrimaryKeyConstraint("id", name=op.f("sub_roles_pkey")),
        sa.UniqueConstraint("name", name=op.f("sub_roles_name_key")),
    )


def _create_events() -> None:
    op.create_table(
        "events",
        sa.Column("id", UUIDType(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("starts_at", UTCDateTime(), nullable=True),
        sa.Column("ends_at", UTCDateTime(), nullable=True),
        *_restrictable_columns(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("events_pkey")),
    )


def _create_wiki_pages() -> None:
    op.create_table(
        "wiki_pages",
        sa.Column("id", UUIDType(), nullable=False),
        sa.Column("slug", sa.String(length=200), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        *_restrictable_columns(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("wiki_pages_pkey")),
        sa.UniqueConstraint("slug", name=op.f("wiki_pages_slug_key")),
    )


def _create_products() -> None:
    op.create_table(
        "products",
        sa.Column("id", UUIDType(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("auto_grant_sub_roles", sa.JSON(), nullable=False),
        *_restrictable_columns(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("products_pkey")),
    )


def _create_content_sub_roles() -> None:
    op.create_table(
        "content_sub_roles",
        sa.Column("id", UUIDType(), nullable=False),
        sa.Column("content_type", CONTENT_KIND, nullable=False),
        sa.Column("content_id", UUIDType(), nullable=False),
        sa.Column("sub_role_id", UUIDType(), nullable=False),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["sub_role_id"],
            ["sub_roles.id"],
            name=op.f("content_sub_roles_sub_role_id_fkey"),
            ondelete="NO ACTION",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("content_sub_roles_pkey")),
        sa.UniqueConstraint(
            "content_type",
            "content_id",
            "sub_role_id",
            name=op.f("content_sub_roles_content_type_key"),
        ),
    )
    op.create_index(
        "content_sub_roles_content_idx",
        "content_sub_roles",
        ["content_type", "content_id"],
        unique=False,
    )
    op.create_index(
        "content_sub_roles_sub_role_id_idx",
        "content_sub_roles",
        ["sub_role_id"],
        unique=False,
    )


def _create_user_sub_roles() -> None:
    op.create_table(
        "user_sub_roles",
        sa.Column("id", UUIDType(), nullable=False),
        sa.Column("user_id", UUIDType(), nullable=False),
        sa.Column("sub_role_id", UUIDType(), nullable=False),
        sa.Column("granted_via", GRANTED_VIA, nullable=False),
        sa.Column("source_type", GRANT_SOURCE_KIND, nullable=True),
        sa.Column("source_id", UUIDType(), nullable=True),
        sa.Column("granted_by_id", UUIDType(), nullable=True),
        sa.Column("granted_at", UTCDateTime(), nullable=False),
        sa.Column("revoked_at", UTCDateTime(), nullable=True),
        sa.Column("revoked_by_id", UUIDType(), nullable=True),
        sa.CheckConstraint(
            "(source_type IS NULL AND source_id IS NULL) "
            "OR (source_type IS NOT NULL AND source_id IS NOT NULL)",
            name=op.f("user_sub_roles_source_pair_check"),
        ),
        sa.CheckConstraint(
            "(granted_via = 'manual' AND source_type IS NULL) "
            "OR (granted_via = 'product_purchase' AND source_type = 'product') "
            "OR (granted_via = 'initiation_completed' AND source_type = 'initiation')",
            name=op.f("user_sub_roles_provenance_check"),
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name=op.f("user_sub_roles_user_id_fkey"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["sub_role_id"],
            ["sub_roles.id"],
            name=op.f("user_sub_roles_sub_role_id_fkey"),
            ondelete="NO ACTION",
        ),
        sa.ForeignKeyConstraint(
            ["granted_by_id"],
            ["users.id"],
            name=op.f("user_sub_roles_granted_by_id_fkey"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["revoked_by_id"],
            ["users.id"],
            name=op.f("user_sub_roles_revoked_by_id_fkey"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("user_sub_roles_pkey")),
    )
    op.create_index(
        "user_sub_roles_active_key",
        "user_sub_roles",
        ["user_id", "sub_role_id"],
        unique=True,
        sqlite_where=sa.text(ACTIVE_GRANT_PREDICATE),
        mssql_where=sa.text(ACTIVE_GRANT_PREDICATE),
    )
    op.create_index(
        "user_sub_roles_sub_role_id_idx",
        "user_sub_roles",
        ["sub_role_id"],
        unique=False,
    )
    op.create_index(
        "user_sub_roles_source_idx",
        "user_sub_roles",
        ["source_type", "source_id"],
        unique=False,
    )


def _create_order_requests() -> None:
    op.create_table(
        "order_requests",
        sa.Column("id", UUIDType(), nullable=False),
        sa.Column("user_id", UUIDType(), nullable=False),
        sa.Column("product_id", UUIDType(), nullable=False),
        sa.Column("status", ORDER_REQUEST_STATUS, nullable=False),
        sa.Column("total_price", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("approved_at", UTCDateTime(), nullable=True),
        sa.Column("approved_by_id", UUIDType(), nullable=True),
        sa.Column("completed_at", UTCDateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name=op.f("order_requests_user_id_fkey"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["product_id"],
            ["products.id"],
            name=op.f("order_requests_product_id_fkey"),
            ondelete="NO ACTION",
        ),
        sa.ForeignKeyConstraint(
            ["approved_by_id"],
            ["users.id"],
            name=op.f("order_requests_approved_by_id_fkey"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("order_requests_pkey")),
    )
    op.create_index("order_requests_user_id_idx", "order_requests", ["user_id"], unique=False)
    op.create_index("order_requests_status_idx", "order_requests", ["status"], unique=False)


def _create_initiations() -> None:
    op.create_table(
        "initiations",
        sa.Column("id", UUIDType(), nullable=False),
        sa.Column("user_id", UUIDType(), nullable=False),
        sa.Column("conducted_by_id", UUIDType(), nullable=True),
        sa.Column("initiation_type", sa.String(length=100), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("status", INITIATION_STATUS, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("conducted_at", UTCDateTime(), nullable=True),
        sa.Column("auto_grant_sub_roles", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("level >= 1", name=op.f("initiations_level_positive_check")),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name=op.f("initiations_user_id_fkey"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["conducted_by_id"],
            ["users.id"],
            name=op.f("initiations_conducted_by_id_fkey"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("initiations_pkey")),
    )
    op.create_index("initiations_user_id_idx", "initiations", ["user_id"], unique=False)
