"""Job board listings and their categories."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from kliqt.models.base import UUID_TYPE, Base

JOB_TYPES = ("wanted", "available")
JOB_STATUSES = ("active", "filled", "closed")


class JobCategory(Base):
    __tablename__ = "job_categories"

    id: Mapped[uuid.UUID] = mapped_column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    icon: Mapped[str] = mapped_column(Text, nullable=False, default="Briefcase")
    color: Mapped[str] = mapped_column(Text, nullable=False, default="#666666")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[uuid.UUID] = mapped_column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    category_id: Mapped[uuid.UUID] = mapped_column(
        UUID_TYPE, ForeignKey("job_categories.id"), nullable=False
    )
    budget_min: Mapped[int | None] = mapped_column(Integer)
    budget_max: Mapped[int | None] = mapped_column(Integer)
    currency: Mapped[str] = mapped_column(Text, nullable=False, default="GBP")
    location: Mapped[str | None] = mapped_column(Text)
    remote: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    requirements: Mapped[str | None] = mapped_column(Text)
    company_name: Mapped[str | None] = mapped_column(Text)
    company_description: Mapped[str | None] = mapped_column(Text)
    contact_email: Mapped[str | None] = mapped_column(Text)
    contact_phone: Mapped[str | None] = mapped_column(Text)
    website_url: Mapped[str | None] = mapped_column(Text)
    featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    urgent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="active")
    views_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    applications_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Owner of the API key that posted the listing.
    posted_by: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("type IN ('wanted','available')", name="ck_job_type"),
        CheckConstraint("status IN ('active','filled','closed')", name="ck_job_status"),
        Index("idx_jobs_status_created", "status", "created_at"),
        Index("idx_jobs_category", "category_id"),
    )
