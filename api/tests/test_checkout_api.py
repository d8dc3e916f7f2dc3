"""Tests for checkout session creation and the pricing endpoints."""

from __future__ import annotations

import stripe
from conftest import TEST_SECRET_KEY
from httpx import AsyncClient
from kliqt.models import AnalyticsEvent, CheckoutSession
from sqlalchemy import select


async def _sessions(session_factory) -> list[CheckoutSession]:
    async with session_factory() as db:
        return list((await db.execute(select(CheckoutSession))).scalars().all())


async def _analytics_types(session_factory) -> list[str]:
    async with session_factory() as db:
        result = await db.execute(select(AnalyticsEvent.event_type))
        return list(result.scalars().all())


async def test_create_session_returns_redirect_and_records_pending(
    client: AsyncClient, fake_stripe, session_factory
):
    response = await client.post(
        "/v1/checkout/session",
        json={
            "priceId": "price_starter_website",
            "customerEmail": "buyer@example.com",
            "metadata": {"service": "website"},
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["session_id"] == "cs_test_001"
    assert body["url"] == "https://checkout.stripe.com/c/pay/cs_test_001"

    params = fake_stripe.checkout.Session.created[0]
    assert params["mode"] == "payment"
    assert params["line_items"] == [{"price": "price_starter_website", "quantity": 1}]
    assert params["customer_email"] == "buyer@example.com"
    assert params["metadata"] == {"service": "website", "source": "kliqt_website"}
    assert params["payment_intent_data"]["metadata"] == params["metadata"]
    assert params["success_url"] == "https://kliqt.test/success?session_id={CHECKOUT_SESSION_ID}"
    assert params["cancel_url"] == "https://kliqt.test/pricing"
    assert params["api_key"] == TEST_SECRET_KEY

    rows = await _sessions(session_factory)
    assert len(rows) == 1
    assert rows[0].session_id == "cs_test_001"
    assert rows[0].status == "pending"
    assert rows[0].price_id == "price_starter_website"
    assert rows[0].customer_email == "buyer@example.com"
    assert "checkout.success" in await _analytics_types(session_factory)


async def test_create_session_accepts_snake_case_fields(client: AsyncClient, fake_stripe):
    response = await client.post(
        "/v1/checkout/session",
        json={"price_id": "price_business_website"},
    )

    assert response.status_code == 200
    assert "customer_email" not in fake_stripe.checkout.Session.created[0]


async def test_create_session_without_price_is_rejected_before_stripe(
    client: AsyncClient, fake_stripe, session_factory
):
    response = await client.post("/v1/checkout/session", json={"customerEmail": "a@b.com"})

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "MissingPriceReference"
    assert fake_stripe.checkout.Session.created == []
    assert await _sessions(session_factory) == []


async def test_create_session_with_unknown_price(client: AsyncClient, session_factory):
    response = await client.post("/v1/checkout/session", json={"priceId": "price_retired"})

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["code"] == "InvalidPriceReference"
    assert detail["message"] == "Selected service is no longer available."
    assert await _sessions(session_factory) == []
    assert "checkout.failure" in await _analytics_types(session_factory)


async def test_create_session_when_stripe_is_down(client: AsyncClient, fake_stripe, session_factory):
    fake_stripe.checkout.Session.raise_on_create = stripe.APIConnectionError("connection reset")

    response = await client.post("/v1/checkout/session", json={"priceId": "price_starter_website"})

    assert response.status_code == 502
    assert response.json()["detail"]["code"] == "GatewayUnavailable"
    assert await _sessions(session_factory) == []


async def test_create_session_with_unexpected_error_is_internal_failure(
    client: AsyncClient, fake_stripe
):
    fake_stripe.checkout.Session.raise_on_create = RuntimeError("boom")

    response = await client.post("/v1/checkout/session", json={"priceId": "price_starter_website"})

    assert response.status_code == 500
    assert response.json()["detail"]["code"] == "InternalFailure"


async def test_get_unknown_session_is_404(client: AsyncClient):
    response = await client.get("/v1/checkout/session/cs_nope")

    assert response.status_code == 404


async def test_get_pending_session_has_no_order(client: AsyncClient):
    created = await client.post("/v1/checkout/session", json={"priceId": "price_starter_website"})
    session_id = created.json()["session_id"]

    response = await client.get(f"/v1/checkout/session/{session_id}")

    assert response.status_code == 200
    assert response.json()["status"] == "pending"
    assert response.json()["order"] is None


async def test_prices_lists_active_one_time_prices(client: AsyncClient, fake_stripe):
    response = await client.get("/v1/checkout/prices")

    assert response.status_code == 200
    body = response.json()
    assert body["publishable_key"] == "pk_test_kliqt"
    assert body["prices"][0]["id"] == "price_starter_website"
    assert body["prices"][0]["unit_amount"] == 40000
    assert fake_stripe.Price.calls[0]["type"] == "one_time"


async def test_health_reports_stripe_configuration(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["stripe_configured"] is True
