"""Create checkout, order, payment, customer and webhook ledger tables.

Revision ID: 001_payment_tables
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

from alembic import op

revision: str = "001_payment_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _id_column() -> sa.Column:
    return sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True)


def _metadata_column() -> sa.Column:
    return sa.Column(
        "metadata",
        sa.JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        server_default=sa.text("'{}'"),
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    op.create_table(
        "checkout_sessions",
        _id_column(),
        sa.Column("session_id", sa.Text(), nullable=False, unique=True),
        sa.Column("price_id", sa.Text()),
        sa.Column("customer_email", sa.Text()),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("payment_status", sa.Text()),
        sa.Column("amount_total", sa.Integer()),
        sa.Column("currency", sa.Text()),
        sa.Column("stripe_customer_id", sa.Text()),
        sa.Column("stripe_payment_intent_id", sa.Text()),
        _metadata_column(),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "status IN ('pending','completed')",
            name="ck_checkout_session_status",
        ),
    )
    op.create_index(
        "idx_checkout_sessions_status_created",
        "checkout_sessions",
        ["status", "created_at"],
    )

    op.create_table(
        "orders",
        _id_column(),
        sa.Column("stripe_session_id", sa.Text(), nullable=False, unique=True),
        sa.Column("stripe_customer_id", sa.Text()),
        sa.Column("stripe_payment_intent_id", sa.Text()),
        sa.Column("customer_email", sa.Text()),
        sa.Column("amount_total", sa.Integer()),
        sa.Column("currency", sa.Text()),
        sa.Column("status", sa.Text(), nullable=False),
        _metadata_column(),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "status IN ('pending','processing','completed','cancelled')",
            name="ck_order_status",
        ),
    )
    op.create_index("idx_orders_customer_email", "orders", ["customer_email", "created_at"])
    op.create_index("idx_orders_payment_intent", "orders", ["stripe_payment_intent_id"])

    op.create_table(
        "payments",
        _id_column(),
        sa.Column("stripe_payment_intent_id", sa.Text(), nullable=False, unique=True),
        sa.Column("stripe_customer_id", sa.Text()),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("receipt_email", sa.Text()),
        sa.Column("failure_reason", sa.Text()),
        _metadata_column(),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("status IN ('succeeded','failed')", name="ck_payment_status"),
    )
    op.create_index("idx_payments_receipt_email", "payments", ["receipt_email", "created_at"])

    op.create_table(
        "customers",
        _id_column(),
        sa.Column("stripe_customer_id", sa.Text(), nullable=False, unique=True),
        sa.Column("email", sa.Text()),
        sa.Column("name", sa.Text()),
        _metadata_column(),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("idx_customers_email", "customers", ["email"])

    op.create_table(
        "stripe_webhook_events",
        _id_column(),
        sa.Column("stripe_event_id", sa.Text(), nullable=False, unique=True),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("outcome", sa.Text(), nullable=False),
        sa.Column("error", sa.Text()),
        _timestamp("received_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "outcome IN ('processed','ignored','failed')",
            name="ck_stripe_webhook_event_outcome",
        ),
    )

    op.create_table(
        "analytics_events",
        _id_column(),
        sa.Column("event_type", sa.Text(), nullable=False),
        _metadata_column(),
        _timestamp("created_at"),
    )
    op.create_index("idx_analytics_time", "analytics_events", ["created_at"])
    op.create_index("idx_analytics_type", "analytics_events", ["event_type", "created_at"])


def downgrade() -> None:
    op.drop_table("analytics_events")
    op.drop_table("stripe_webhook_events")
    op.drop_index("idx_customers_email", table_name="customers")
    op.drop_table("customers")
    op.drop_index("idx_payments_receipt_email", table_name="payments")
    op.drop_table("payments")
    op.drop_index("idx_orders_payment_intent", table_name="orders")
    op.drop_index("idx_orders_customer_email", table_name="orders")
    op.drop_table("orders")
    op.drop_index("idx_checkout_sessions_status_created", table_name="checkout_sessions")
    op.drop_table("checkout_sessions")
