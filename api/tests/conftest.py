"""API test configuration."""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from types import SimpleNamespace
from typing import Any

import pytest
import stripe
from api.dependencies import get_db
from api.main import create_app
from api.services.stripe_service import PaymentGateway
from httpx import ASGITransport, AsyncClient
from kliqt.config import Settings
from kliqt.models import Base
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

TEST_SECRET_KEY = "sk_test_kliqt"
TEST_WEBHOOK_SECRET = "whsec_test"
TEST_JWT_SECRET = "portal-test-secret"
KNOWN_PRICES = ("price_starter_website", "price_business_website")


class FakeCheckoutSessions:
    """Stands in for ``stripe.checkout.Session``."""

    def __init__(self) -> None:
        self.created: list[dict[str, Any]] = []
        self.stored: dict[str, dict[str, Any]] = {}
        self.next_session_id: str | None = None
        self.raise_on_create: Exception | None = None
        self.raise_on_retrieve: Exception | None = None

    def create(self, **params: Any) -> dict[str, Any]:
        if self.raise_on_create is not None:
            raise self.raise_on_create
        price = params["line_items"][0]["price"]
        if price not in KNOWN_PRICES:
            raise stripe.InvalidRequestError(
                f"No such price: '{price}'",
                "line_items[0][price]",
                code="resource_missing",
            )
        self.created.append(params)
        session_id = self.next_session_id or f"cs_test_{len(self.created):03d}"
        self.next_session_id = None
        return {"id": session_id, "url": f"https://checkout.stripe.com/c/pay/{session_id}"}

    def retrieve(self, session_id: str, **params: Any) -> dict[str, Any]:
        if self.raise_on_retrieve is not None:
            raise self.raise_on_retrieve
        if session_id not in self.stored:
            raise stripe.InvalidRequestError(
                f"No such checkout.session: '{session_id}'", "id", code="resource_missing"
            )
        return self.stored[session_id]


class FakePrices:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    def list(self, **params: Any) -> dict[str, Any]:
        self.calls.append(params)
        return {
            "data": [
                {
                    "id": "price_starter_website",
                    "unit_amount": 40000,
                    "currency": "gbp",
                    "product": "prod_starter",
                    "nickname": "Starter website",
                    "lookup_key": "starter",
                }
            ]
        }


def make_fake_stripe() -> SimpleNamespace:
    return SimpleNamespace(
        checkout=SimpleNamespace(Session=FakeCheckoutSessions()),
        Price=FakePrices(),
    )


def sign_payload(payload: bytes, secret: str = TEST_WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe does."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.{payload.decode('utf-8')}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def stripe_event(event_id: str, event_type: str, obj: dict[str, Any]) -> bytes:
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "created": int(time.time()),
            "livemode": False,
            "data": {"object": obj},
        }
    ).encode()


def session_completed_event(
    session_id: str,
    *,
    event_id: str | None = None,
    amount_total: int = 40000,
    currency: str = "gbp",
    email: str | None = "buyer@example.com",
    payment_intent: str | None = "pi_test_456",
    metadata: dict[str, str] | None = None,
) -> bytes:
    return stripe_event(
        event_id or f"evt_{session_id}",
        "checkout.session.completed",
        {
            "id": session_id,
            "object": "checkout.session",
            "amount_total": amount_total,
            "currency": currency,
            "customer": "cus_test_789",
            "customer_details": {"email": email, "name": "Test Buyer"},
            "payment_intent": payment_intent,
            "payment_status": "paid",
            "status": "complete",
            "metadata": metadata if metadata is not None else {"source": "kliqt_website"},
        },
    )


def payment_intent_event(
    intent_id: str,
    *,
    event_id: str,
    event_type: str = "payment_intent.succeeded",
    amount: int = 40000,
    metadata: dict[str, str] | None = None,
    failure_message: str | None = None,
    receipt_email: str | None = "buyer@example.com",
    customer: str | None = "cus_test_789",
) -> bytes:
    obj: dict[str, Any] = {
        "id": intent_id,
        "object": "payment_intent",
        "amount": amount,
        "currency": "gbp",
        "customer": customer,
        "receipt_email": receipt_email,
        "metadata": metadata or {},
    }
    if failure_message is not None:
        obj["last_payment_error"] = {"code": "card_declined", "message": failure_message}
    return stripe_event(event_id, event_type, obj)


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "DATABASE_URL": "sqlite+aiosqlite://",
        "SKIP_MIGRATION_CHECK": True,
        "SITE_URL": "https://kliqt.test",
        "STRIPE_SECRET_KEY": TEST_SECRET_KEY,
        "STRIPE_PUBLISHABLE_KEY": "pk_test_kliqt",
        "STRIPE_WEBHOOK_SECRET": TEST_WEBHOOK_SECRET,
        "AUTH_JWT_SECRET": TEST_JWT_SECRET,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
async def engine():
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_stripe():
    return make_fake_stripe()


@pytest.fixture
def gateway(fake_stripe):
    return PaymentGateway(
        secret_key=TEST_SECRET_KEY,
        webhook_secret=TEST_WEBHOOK_SECRET,
        timeout_seconds=2,
        stripe_sdk=fake_stripe,
    )


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def app(settings, gateway, session_factory):
    a = create_app(settings, gateway=gateway)

    async def _override_db():
        async with session_factory() as session:
            yield session

    a.dependency_overrides[get_db] = _override_db
    return a


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def post_event(client):
    """POST a signed webhook body to the receiver."""

    async def _post(payload: bytes, *, signature: str | None = None):
        return await client.post(
            "/v1/stripe/webhook",
            content=payload,
            headers={
                "stripe-signature": signature if signature is not None else sign_payload(payload),
                "content-type": "application/json",
            },
        )

    return _post
