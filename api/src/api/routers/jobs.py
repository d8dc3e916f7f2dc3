"""Public jobs API: browse listings and post them with an API key."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from kliqt.models import AnalyticsEvent, Job, JobCategory
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import ApiKeyPrincipal, get_db, require_api_key_scope

logger = logging.getLogger(__name__)
router = APIRouter()


class JobPostRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=10000)
    type: Literal["wanted", "available"]
    category: str = Field(min_length=1)
    budget_min: int | None = Field(default=None, ge=0)
    budget_max: int | None = Field(default=None, ge=0)
    currency: str = Field(default="GBP", min_length=3, max_length=3)
    location: str | None = None
    remote: bool = True
    requirements: str | None = None
    company_name: str | None = None
    company_description: str | None = None
    contact_email: str | None = Field(default=None, max_length=320)
    contact_phone: str | None = None
    website_url: str | None = None
    urgent: bool = False

    @model_validator(mode="after")
    def _budget_range(self) -> JobPostRequest:
        if (
            self.budget_min is not None
            and self.budget_max is not None
            and self.budget_min > self.budget_max
        ):
            raise ValueError("budget_min must not exceed budget_max")
        return self


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@router.get("")
async def list_jobs(
    db: AsyncSession = Depends(get_db),
    type: Literal["wanted", "available"] | None = Query(default=None),
    category: str | None = Query(default=None),
    featured: bool | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    filters = [Job.status == "active"]
    if type is not None:
        filters.append(Job.type == type)
    if category:
        filters.append(JobCategory.name == category)
    if featured is not None:
        filters.append(Job.featured == featured)

    total = (
        await db.execute(
            select(func.count(Job.id))
            .join(JobCategory, JobCategory.id == Job.category_id)
            .where(*filters)
        )
    ).scalar_one()
    result = await db.execute(
        select(Job, JobCategory)
        .join(JobCategory, JobCategory.id == Job.category_id)
        .where(*filters)
        .order_by(Job.created_at.desc(), Job.id)
        .limit(limit)
        .offset(offset)
    )
    return {
        "success": True,
        "data": [
            {
                "id": str(job.id),
                "title": job.title,
                "description": job.description,
                "type": job.type,
                "category": {
                    "name": category_row.name,
                    "icon": category_row.icon,
                    "color": category_row.color,
                },
                "budget": {
                    "min": job.budget_min,
                    "max": job.budget_max,
                    "currency": job.currency,
                },
                "location": job.location,
                "remote": job.remote,
                "featured": job.featured,
                "urgent": job.urgent,
                "stats": {
                    "views": job.views_count,
                    "applications": job.applications_count,
                },
                "created_at": _iso(job.created_at),
            }
            for job, category_row in result.all()
        ],
        "meta": {"total": total, "limit": limit, "offset": offset},
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def post_job(
    req: JobPostRequest,
    principal: ApiKeyPrincipal = Depends(require_api_key_scope("post_jobs")),
    db: AsyncSession = Depends(get_db),
):
    category_id = (
        await db.execute(select(JobCategory.id).where(JobCategory.name == req.category))
    ).scalars().first()
    if category_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid category")

    job = Job(
        title=req.title,
        description=req.description,
        type=req.type,
        category_id=category_id,
        budget_min=req.budget_min,
        budget_max=req.budget_max,
        currency=req.currency.upper(),
        location=req.location,
        remote=req.remote,
        requirements=req.requirements,
        company_name=req.company_name,
        company_description=req.company_description,
        contact_email=req.contact_email,
        contact_phone=req.contact_phone,
        website_url=req.website_url,
        urgent=req.urgent,
        status="active",
        posted_by=principal.user_id,
    )
    db.add(job)
    await db.flush()
    db.add(
        AnalyticsEvent(
            event_type="jobs.posted",
            metadata_json={"job_id": str(job.id), "api_key_id": principal.key_id},
        )
    )
    await db.commit()
    await db.refresh(job)
    logger.info("Job %s posted with API key %s", job.id, principal.key_id)
    return {
        "success": True,
        "message": "Job posted successfully",
        "data": {
            "id": str(job.id),
            "title": job.title,
            "type": job.type,
            "status": job.status,
            "created_at": _iso(job.created_at),
        },
    }
