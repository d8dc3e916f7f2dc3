"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from alembic.config import Config as AlembicConfig
from alembic.script import ScriptDirectory
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from kliqt.config import Settings, get_settings
from kliqt.database import close_engine, get_engine
from sqlalchemy import text

from api.routers import api_keys, checkout, health, jobs, portal, stripe_webhook
from api.services.checkout_service import CheckoutInitiator
from api.services.stripe_service import PaymentGateway
from api.services.webhook_receiver import WebhookPolicy, WebhookReceiver

logger = logging.getLogger(__name__)


async def _assert_database_revision_current() -> None:
    settings = get_settings()
    if settings.skip_migration_check:
        return

    repo_root = Path(__file__).resolve().parents[3]
    alembic_ini = repo_root / "alembic.ini"
    if not alembic_ini.exists():
        logger.warning("alembic.ini not found; skipping migration revision check")
        return

    alembic_cfg = AlembicConfig(str(alembic_ini))
    alembic_cfg.set_main_option("script_location", str(repo_root / "alembic"))
    script = ScriptDirectory.from_config(alembic_cfg)
    expected_heads = set(script.get_heads())
    if not expected_heads:
        return

    engine = get_engine()
    try:
        async with engine.connect() as connection:
            result = await connection.execute(text("SELECT version_num FROM alembic_version"))
            current_revisions = {str(row[0]) for row in result.fetchall() if row and row[0]}
    except Exception as exc:
        raise RuntimeError(
            "Database migration revision check failed. "
            "Run `alembic upgrade head` before starting the API."
        ) from exc

    if current_revisions != expected_heads:
        raise RuntimeError(
            "Database schema revision mismatch: "
            f"db={sorted(current_revisions)} expected={sorted(expected_heads)}. "
            "Run `alembic upgrade head`."
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    try:
        await _assert_database_revision_current()
        yield
    finally:
        await close_engine()


def _warn_missing_credentials(settings: Settings) -> None:
    if not settings.stripe_secret_key:
        logger.warning("STRIPE_SECRET_KEY is empty; checkout will be unavailable")
    if not settings.stripe_webhook_secret:
        logger.warning("STRIPE_WEBHOOK_SECRET is empty; every webhook will be rejected")
    if not settings.auth_jwt_secret:
        logger.warning("AUTH_JWT_SECRET is empty; portal endpoints will be unavailable")


def create_app(
    settings: Settings | None = None,
    *,
    gateway: PaymentGateway | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    _warn_missing_credentials(settings)

    app = FastAPI(title="Kliqt Payments API", version="0.1.0", lifespan=lifespan)

    # One gateway per process, shared by checkout and webhook handling.
    payment_gateway = gateway or PaymentGateway.from_settings(settings)
    app.state.settings = settings
    app.state.payment_gateway = payment_gateway
    app.state.checkout_initiator = CheckoutInitiator.from_settings(payment_gateway, settings)
    app.state.webhook_receiver = WebhookReceiver(
        payment_gateway,
        WebhookPolicy(acknowledge_reconciler_failures=settings.webhook_ack_on_reconciler_failure),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.site_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(health.router, tags=["health"])
    app.include_router(checkout.router, prefix="/v1/checkout", tags=["checkout"])
    app.include_router(stripe_webhook.router, prefix="/v1/stripe", tags=["stripe"])
    app.include_router(portal.router, prefix="/v1/portal", tags=["portal"])
    app.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
    app.include_router(api_keys.router, prefix="/v1/keys", tags=["api-keys"])
    return app


app = create_app()
