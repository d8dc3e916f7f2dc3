"""Create job board and API key tables.

Revision ID: 002_jobs_api_keys
Revises: 001_payment_tables
Create Date: 2026-10-20
"""

import uuid
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

from alembic import op

revision: str = "002_jobs_api_keys"
down_revision: str | None = "001_payment_tables"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

DEFAULT_CATEGORIES = [
    ("Web Development", "Code", "#3B82F6"),
    ("Mobile Apps", "Smartphone", "#8B5CF6"),
    ("Design", "Palette", "#EC4899"),
    ("Marketing", "TrendingUp", "#10B981"),
    ("Video Editing", "Video", "#F59E0B"),
    ("AI & Automation", "Bot", "#6366F1"),
    ("E-commerce", "ShoppingCart", "#EF4444"),
    ("Content Writing", "FileText", "#14B8A6"),
]


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    categories = op.create_table(
        "job_categories",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False, unique=True),
        sa.Column("icon", sa.Text(), nullable=False),
        sa.Column("color", sa.Text(), nullable=False),
        _timestamp("created_at"),
    )
    op.bulk_insert(
        categories,
        [
            {"id": uuid.uuid4(), "name": name, "icon": icon, "color": color}
            for name, icon, color in DEFAULT_CATEGORIES
        ],
    )

    op.create_table(
        "jobs",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column(
            "category_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("job_categories.id"),
            nullable=False,
        ),
        sa.Column("budget_min", sa.Integer()),
        sa.Column("budget_max", sa.Integer()),
        sa.Column("currency", sa.Text(), nullable=False, server_default="GBP"),
        sa.Column("location", sa.Text()),
        sa.Column("remote", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("requirements", sa.Text()),
        sa.Column("company_name", sa.Text()),
        sa.Column("company_description", sa.Text()),
        sa.Column("contact_email", sa.Text()),
        sa.Column("contact_phone", sa.Text()),
        sa.Column("website_url", sa.Text()),
        sa.Column("featured", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("urgent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.Text(), nullable=False, server_default="active"),
        sa.Column("views_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("applications_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("posted_by", sa.Text()),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("type IN ('wanted','available')", name="ck_job_type"),
        sa.CheckConstraint("status IN ('active','filled','closed')", name="ck_job_status"),
    )
    op.create_index("idx_jobs_status_created", "jobs", ["status", "created_at"])
    op.create_index("idx_jobs_category", "jobs", ["category_id"])

    op.create_table(
        "api_keys",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("key_hash", sa.Text(), nullable=False, unique=True),
        sa.Column("key_prefix", sa.Text(), nullable=False),
        sa.Column(
            "scopes",
            sa.JSON().with_variant(JSONB(), "postgresql"),
            nullable=False,
            server_default=sa.text("'[]'"),
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_used_at", sa.DateTime(timezone=True)),
        _timestamp("created_at"),
    )
    op.create_index("idx_api_keys_user", "api_keys", ["user_id", "created_at"])


def downgrade() -> None:
    op.drop_index("idx_api_keys_user", table_name="api_keys")
    op.drop_table("api_keys")
    op.drop_index("idx_jobs_category", table_name="jobs")
    op.drop_index("idx_jobs_status_created", table_name="jobs")
    op.drop_table("jobs")
    op.drop_table("job_categories")
