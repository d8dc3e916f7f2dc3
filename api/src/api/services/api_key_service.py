"""Issue and check API keys for the public jobs API."""

from __future__ import annotations

import hashlib
import secrets
from datetime import UTC, datetime

from kliqt.models import ApiKey
from kliqt.models.api_key import API_KEY_SCOPES
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

API_KEY_PREFIX = "kliqt_"
DEFAULT_SCOPES = ("read_jobs",)


class ApiKeyRejected(Exception):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


def generate_api_key() -> str:
    return f"{API_KEY_PREFIX}{secrets.token_hex(24)}"


def hash_api_key(raw: str) -> str:
    return hashlib.sha256(raw.encode()).hexdigest()


def invalid_scopes(scopes: list[str]) -> list[str]:
    return [scope for scope in scopes if scope not in API_KEY_SCOPES]


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored value is UTC.
    return value if value.tzinfo else value.replace(tzinfo=UTC)


async def authenticate_api_key(db: AsyncSession, raw_key: str, scope: str) -> ApiKey:
    """Return the active, unexpired key holding ``scope`` and stamp its use.

    Raises ``ApiKeyRejected`` with the reason otherwise.
    """
    if not raw_key.startswith(API_KEY_PREFIX):
        raise ApiKeyRejected("Invalid API key format")

    api_key = (
        await db.execute(
            select(ApiKey).where(
                ApiKey.key_hash == hash_api_key(raw_key),
                ApiKey.is_active.is_(True),
            )
        )
    ).scalars().first()
    if api_key is None:
        raise ApiKeyRejected("Invalid API key")

    now = datetime.now(UTC)
    if api_key.expires_at is not None and _as_utc(api_key.expires_at) < now:
        raise ApiKeyRejected("API key expired")
    if scope not in (api_key.scopes or []):
        raise ApiKeyRejected("Insufficient permissions")

    api_key.last_used_at = now
    await db.commit()
    return api_key
