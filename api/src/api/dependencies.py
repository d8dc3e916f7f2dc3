"""FastAPI dependency injection."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from kliqt.config import Settings, get_settings
from kliqt.database import get_session_factory
from sqlalchemy.ext.asyncio import AsyncSession

from api.services.api_key_service import ApiKeyRejected, authenticate_api_key
from api.services.checkout_service import CheckoutInitiator
from api.services.stripe_service import PaymentGateway
from api.services.webhook_receiver import WebhookReceiver


@dataclass(frozen=True)
class Identity:
    """A signed-in portal user as asserted by the hosted auth provider."""

    user_id: str
    email: str


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_payment_gateway(request: Request) -> PaymentGateway:
    return request.app.state.payment_gateway


def get_checkout_initiator(request: Request) -> CheckoutInitiator:
    return request.app.state.checkout_initiator


def get_webhook_receiver(request: Request) -> WebhookReceiver:
    return request.app.state.webhook_receiver


def _extract_bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        token = auth[7:].strip()
        return token or None
    return None


def get_current_identity(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> Identity:
    if not settings.auth_jwt_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Portal sign-in is not configured",
        )
    raw_token = _extract_bearer_token(request)
    if not raw_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")
    try:
        payload = jwt.decode(
            raw_token,
            settings.auth_jwt_secret,
            algorithms=[settings.auth_jwt_algorithm],
            audience=settings.auth_jwt_audience or None,
            options={} if settings.auth_jwt_audience else {"verify_aud": False},
        )
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user_id = str(payload.get("sub") or "").strip()
    email = str(payload.get("email") or "").strip().lower()
    if not user_id or not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return Identity(user_id=user_id, email=email)


@dataclass(frozen=True)
class ApiKeyPrincipal:
    """The holder of an API key presented in ``x-api-key``."""

    key_id: str
    user_id: str
    scopes: tuple[str, ...]


def require_api_key_scope(scope: str):
    async def _dependency(
        request: Request,
        db: AsyncSession = Depends(get_db),
    ) -> ApiKeyPrincipal:
        raw_key = request.headers.get("x-api-key", "").strip()
        if not raw_key:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="API key required in x-api-key header",
            )
        try:
            api_key = await authenticate_api_key(db, raw_key, scope)
        except ApiKeyRejected as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.message)
        return ApiKeyPrincipal(
            key_id=str(api_key.id),
            user_id=api_key.user_id,
            scopes=tuple(api_key.scopes or ()),
        )

    return _dependency
