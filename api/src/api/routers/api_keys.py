"""API key management for signed-in users."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, status
from kliqt.models import AnalyticsEvent, ApiKey
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import Identity, get_current_identity, get_db
from api.services.api_key_service import (
    DEFAULT_SCOPES,
    generate_api_key,
    hash_api_key,
    invalid_scopes,
)

logger = logging.getLogger(__name__)
router = APIRouter()

KEY_PREFIX_LENGTH = 12


class ApiKeyRequest(BaseModel):
    name: str = Field(default="", max_length=100)
    scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))
    expires_at: datetime | None = None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@router.post("", status_code=status.HTTP_201_CREATED)
async def issue_api_key(
    req: ApiKeyRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Issue a key for the caller. The raw key is returned only here."""
    name = req.name.strip()
    if not name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="API key name is required"
        )
    unknown = invalid_scopes(req.scopes)
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid scopes: {', '.join(unknown)}",
        )
    expires_at = req.expires_at
    if expires_at is not None:
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        if expires_at <= datetime.now(UTC):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="expires_at must be in the future",
            )

    raw_key = generate_api_key()
    api_key = ApiKey(
        user_id=identity.user_id,
        name=name,
        key_hash=hash_api_key(raw_key),
        key_prefix=raw_key[:KEY_PREFIX_LENGTH],
        scopes=list(dict.fromkeys(req.scopes)),
        expires_at=expires_at,
        is_active=True,
    )
    db.add(api_key)
    await db.flush()
    db.add(
        AnalyticsEvent(
            event_type="api_keys.issued",
            metadata_json={"api_key_id": str(api_key.id), "scopes": api_key.scopes},
        )
    )
    await db.commit()
    await db.refresh(api_key)
    logger.info("API key %s issued to user %s", api_key.id, identity.user_id)
    return {
        "success": True,
        "message": "API key generated successfully",
        "data": {
            "id": str(api_key.id),
            "key": raw_key,
            "name": api_key.name,
            "scopes": api_key.scopes,
            "expires_at": _iso(api_key.expires_at),
            "created_at": _iso(api_key.created_at),
        },
    }


@router.get("")
async def list_api_keys(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(ApiKey)
        .where(ApiKey.user_id == identity.user_id)
        .order_by(ApiKey.created_at.desc())
    )
    return {
        "success": True,
        "data": [
            {
                "id": str(api_key.id),
                "name": api_key.name,
                "key_prefix": api_key.key_prefix,
                "scopes": api_key.scopes,
                "expires_at": _iso(api_key.expires_at),
                "is_active": api_key.is_active,
                "last_used_at": _iso(api_key.last_used_at),
                "created_at": _iso(api_key.created_at),
            }
            for api_key in result.scalars().all()
        ],
    }
