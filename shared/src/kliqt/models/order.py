"""Fulfillable orders created from completed checkout sessions."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from kliqt.models.base import JSON_TYPE, UUID_TYPE, Base

ORDER_STATUSES = ("pending", "processing", "completed", "cancelled")


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    # One order per checkout session; the unique key is what makes redelivery safe.
    stripe_session_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    stripe_customer_id: Mapped[str | None] = mapped_column(Text)
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(Text)
    customer_email: Mapped[str | None] = mapped_column(Text)
    amount_total: Mapped[int | None] = mapped_column(Integer)
    currency: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    metadata_json: Mapped[dict] = mapped_column("metadata", JSON_TYPE, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','processing','completed','cancelled')",
            name="ck_order_status",
        ),
        Index("idx_orders_customer_email", "customer_email", "created_at"),
        Index("idx_orders_payment_intent", "stripe_payment_intent_id"),
    )

    @property
    def order_number(self) -> str:
        return f"ORD-{str(self.id)[:8].upper()}"
