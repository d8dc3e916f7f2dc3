"""Tests for the Stripe gateway wrapper."""

from __future__ import annotations

import json
import time

import pytest
import stripe
from api.services.payment_errors import (
    GatewayUnavailable,
    InternalFailure,
    InvalidPriceReference,
    InvalidSignature,
    PaymentsNotConfigured,
)
from api.services.stripe_service import PaymentGateway
from conftest import TEST_WEBHOOK_SECRET, make_fake_stripe, sign_payload


def test_verify_event_signature_returns_parsed_event(gateway):
    payload = json.dumps({"id": "evt_1", "type": "customer.created"}).encode()

    event = gateway.verify_event_signature(payload, sign_payload(payload))

    assert event["id"] == "evt_1"


def test_verify_event_signature_rejects_without_secret(fake_stripe):
    unconfigured = PaymentGateway(secret_key="sk_test", webhook_secret="", stripe_sdk=fake_stripe)
    payload = b'{"id": "evt_1"}'

    with pytest.raises(InvalidSignature):
        unconfigured.verify_event_signature(payload, sign_payload(payload))


def test_verify_event_signature_rejects_non_object_body(gateway):
    payload = b'["evt_1"]'

    with pytest.raises(InvalidSignature):
        gateway.verify_event_signature(payload, sign_payload(payload))


def test_verify_event_signature_rejects_garbage_header(gateway):
    with pytest.raises(InvalidSignature):
        gateway.verify_event_signature(b'{"id": "evt_1"}', "not-a-signature")


def test_verify_event_signature_respects_tolerance(fake_stripe):
    lenient = PaymentGateway(
        secret_key="sk_test",
        webhook_secret=TEST_WEBHOOK_SECRET,
        webhook_tolerance_seconds=3600,
        stripe_sdk=fake_stripe,
    )
    payload = b'{"id": "evt_1"}'

    event = lenient.verify_event_signature(
        payload, sign_payload(payload, timestamp=int(time.time()) - 1800)
    )

    assert event == {"id": "evt_1"}


async def test_create_session_without_secret_key_is_not_configured(fake_stripe):
    gateway = PaymentGateway(secret_key="", webhook_secret="", stripe_sdk=fake_stripe)

    with pytest.raises(PaymentsNotConfigured) as exc_info:
        await gateway.create_session(
            price_id="price_starter_website", success_url="https://s", cancel_url="https://c"
        )

    assert exc_info.value.code == "GatewayUnavailable"
    assert fake_stripe.checkout.Session.created == []


async def test_create_session_maps_unknown_price(gateway):
    with pytest.raises(InvalidPriceReference):
        await gateway.create_session(
            price_id="price_missing", success_url="https://s", cancel_url="https://c"
        )


async def test_create_session_maps_other_request_errors_to_internal(gateway, fake_stripe):
    fake_stripe.checkout.Session.raise_on_create = stripe.InvalidRequestError(
        "Invalid URL: success_url", "success_url"
    )

    with pytest.raises(InternalFailure):
        await gateway.create_session(
            price_id="price_starter_website", success_url="bad", cancel_url="https://c"
        )


async def test_create_session_rejected_credentials(gateway, fake_stripe):
    fake_stripe.checkout.Session.raise_on_create = stripe.AuthenticationError("Invalid API Key")

    with pytest.raises(PaymentsNotConfigured):
        await gateway.create_session(
            price_id="price_starter_website", success_url="https://s", cancel_url="https://c"
        )


async def test_create_session_times_out():
    sdk = make_fake_stripe()

    def _slow_create(**params):
        time.sleep(0.5)
        return {"id": "cs_slow", "url": "https://checkout.stripe.com/c/pay/cs_slow"}

    sdk.checkout.Session.create = _slow_create
    gateway = PaymentGateway(
        secret_key="sk_test", webhook_secret="", timeout_seconds=0.05, stripe_sdk=sdk
    )

    with pytest.raises(GatewayUnavailable):
        await gateway.create_session(
            price_id="price_starter_website", success_url="https://s", cancel_url="https://c"
        )


async def test_create_session_with_incomplete_response(gateway, fake_stripe):
    fake_stripe.checkout.Session.create = lambda **params: {"id": "cs_no_url", "url": None}

    with pytest.raises(GatewayUnavailable):
        await gateway.create_session(
            price_id="price_starter_website", success_url="https://s", cancel_url="https://c"
        )


async def test_retrieve_unknown_session(gateway):
    with pytest.raises(InternalFailure):
        await gateway.retrieve_session("cs_unknown")
