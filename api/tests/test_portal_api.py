"""Tests for the client portal order and payment listings."""

from __future__ import annotations

import time

from conftest import TEST_JWT_SECRET, payment_intent_event, session_completed_event, stripe_event
from httpx import AsyncClient
from jose import jwt


def _token(email: str, *, secret: str = TEST_JWT_SECRET, audience: str = "authenticated") -> str:
    now = int(time.time())
    return jwt.encode(
        {"sub": "user-1", "email": email, "aud": audience, "iat": now, "exp": now + 600},
        secret,
        algorithm="HS256",
    )


def _auth(email: str, **kwargs) -> dict[str, str]:
    return {"Authorization": f"Bearer {_token(email, **kwargs)}"}


async def test_orders_require_a_token(client: AsyncClient):
    response = await client.get("/v1/portal/orders")

    assert response.status_code == 401


async def test_orders_reject_a_token_signed_elsewhere(client: AsyncClient):
    response = await client.get(
        "/v1/portal/orders", headers=_auth("buyer@example.com", secret="someone-else")
    )

    assert response.status_code == 401


async def test_orders_reject_the_wrong_audience(client: AsyncClient):
    response = await client.get(
        "/v1/portal/orders", headers=_auth("buyer@example.com", audience="anon")
    )

    assert response.status_code == 401


async def test_orders_are_scoped_to_the_signed_in_email(client: AsyncClient, post_event):
    await post_event(session_completed_event("cs_mine", email="Buyer@Example.com"))
    await post_event(session_completed_event("cs_theirs", email="other@example.com"))

    response = await client.get("/v1/portal/orders", headers=_auth("buyer@example.com"))

    assert response.status_code == 200
    orders = response.json()["orders"]
    assert len(orders) == 1
    assert orders[0]["status"] == "pending"
    assert orders[0]["amount_total"] == 40000
    assert orders[0]["order_number"].startswith("ORD-")


async def test_payments_link_to_their_order(client: AsyncClient, post_event):
    await post_event(session_completed_event("cs_mine", payment_intent="pi_mine"))
    await post_event(payment_intent_event("pi_mine", event_id="evt_pi_mine"))
    await post_event(payment_intent_event("pi_orphan", event_id="evt_pi_orphan"))

    response = await client.get("/v1/portal/payments", headers=_auth("buyer@example.com"))

    assert response.status_code == 200
    payments = {p["stripe_payment_intent_id"]: p for p in response.json()["payments"]}
    assert set(payments) == {"pi_mine", "pi_orphan"}
    assert payments["pi_mine"]["order_id"] is not None
    assert payments["pi_orphan"]["order_id"] is None
    assert payments["pi_mine"]["status"] == "succeeded"


async def test_payment_without_receipt_email_is_found_through_the_order(
    client: AsyncClient, post_event
):
    await post_event(session_completed_event("cs_norcpt", payment_intent="pi_norcpt"))
    await post_event(
        payment_intent_event("pi_norcpt", event_id="evt_pi_norcpt", receipt_email=None, customer=None)
    )

    response = await client.get("/v1/portal/payments", headers=_auth("buyer@example.com"))

    payments = response.json()["payments"]
    assert [p["stripe_payment_intent_id"] for p in payments] == ["pi_norcpt"]
    assert payments[0]["order_id"] is not None


async def test_payment_without_receipt_email_is_found_through_the_customer(
    client: AsyncClient, post_event
):
    await post_event(
        stripe_event(
            "evt_cus_buyer",
            "customer.created",
            {"id": "cus_buyer", "email": "Buyer@Example.com", "name": "Test Buyer"},
        )
    )
    await post_event(
        payment_intent_event(
            "pi_via_customer", event_id="evt_pi_cus", receipt_email=None, customer="cus_buyer"
        )
    )
    await post_event(
        payment_intent_event(
            "pi_someone_else", event_id="evt_pi_other", receipt_email=None, customer="cus_other"
        )
    )

    response = await client.get("/v1/portal/payments", headers=_auth("buyer@example.com"))

    payments = response.json()["payments"]
    assert [p["stripe_payment_intent_id"] for p in payments] == ["pi_via_customer"]
    assert payments[0]["order_id"] is None
