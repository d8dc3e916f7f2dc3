"""Stripe gateway client for hosted checkout and webhook verification."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import stripe
from kliqt.config import Settings

from api.services.payment_errors import (
    GatewayUnavailable,
    InternalFailure,
    InvalidPriceReference,
    InvalidSignature,
    PaymentsNotConfigured,
)

logger = logging.getLogger(__name__)

SHIPPING_COUNTRIES = ["GB", "US", "CA", "AU", "DE", "FR", "ES", "IT", "NL"]


@dataclass(frozen=True)
class CheckoutSessionHandle:
    session_id: str
    redirect_url: str


def _as_dict(obj: Any) -> dict[str, Any]:
    if isinstance(obj, dict):
        return obj
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


def _is_price_error(exc: stripe.InvalidRequestError) -> bool:
    param = str(getattr(exc, "param", "") or "")
    if param.startswith("line_items"):
        return True
    message = str(getattr(exc, "user_message", None) or exc).lower()
    return "no such price" in message or ("price" in message and "invalid" in message)


class PaymentGateway:
    """Wraps every call the payments API makes to Stripe.

    Built once at startup with explicit credentials and passed to the
    checkout and webhook services. The Stripe SDK is synchronous, so calls
    run in a worker thread and are bounded by ``timeout_seconds``.
    """

    def __init__(
        self,
        *,
        secret_key: str,
        webhook_secret: str,
        timeout_seconds: float = 10.0,
        webhook_tolerance_seconds: int = 300,
        stripe_sdk: Any | None = None,
    ) -> None:
        self.secret_key = secret_key.strip()
        self.webhook_secret = webhook_secret.strip()
        self.timeout_seconds = timeout_seconds
        self.webhook_tolerance_seconds = webhook_tolerance_seconds
        self._sdk = stripe_sdk if stripe_sdk is not None else stripe

    @classmethod
    def from_settings(cls, settings: Settings, *, stripe_sdk: Any | None = None) -> PaymentGateway:
        return cls(
            secret_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            timeout_seconds=settings.stripe_request_timeout_seconds,
            webhook_tolerance_seconds=settings.stripe_webhook_tolerance_seconds,
            stripe_sdk=stripe_sdk,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key)

    async def _call(self, operation: str, fn: Callable[..., Any], /, *args, **kwargs) -> Any:
        if not self.secret_key:
            raise PaymentsNotConfigured()
        kwargs["api_key"] = self.secret_key
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args, **kwargs),
                timeout=self.timeout_seconds,
            )
        except TimeoutError as exc:
            logger.warning("Stripe %s timed out after %ss", operation, self.timeout_seconds)
            raise GatewayUnavailable() from exc
        except stripe.InvalidRequestError:
            raise
        except stripe.AuthenticationError as exc:
            logger.error("Stripe %s rejected our credentials: %s", operation, exc)
            raise PaymentsNotConfigured() from exc
        except stripe.StripeError as exc:
            logger.warning("Stripe %s failed: %s", operation, exc)
            raise GatewayUnavailable() from exc

    async def create_session(
        self,
        *,
        price_id: str,
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> CheckoutSessionHandle:
        """Open a one-off hosted checkout session for a single price."""
        session_metadata = dict(metadata or {})
        payload: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": session_metadata,
            "payment_intent_data": {"metadata": session_metadata},
            "billing_address_collection": "required",
            "shipping_address_collection": {"allowed_countries": SHIPPING_COUNTRIES},
        }
        if customer_email:
            payload["customer_email"] = customer_email

        try:
            session = await self._call(
                "checkout session create", self._sdk.checkout.Session.create, **payload
            )
        except stripe.InvalidRequestError as exc:
            if _is_price_error(exc):
                logger.info("Stripe rejected price %s: %s", price_id, exc)
                raise InvalidPriceReference() from exc
            logger.warning("Stripe checkout request rejected: %s", exc)
            raise InternalFailure() from exc

        session_id = str(session["id"] or "").strip()
        redirect_url = str(session["url"] or "").strip()
        if not session_id or not redirect_url:
            raise GatewayUnavailable("Stripe returned an incomplete checkout session.")
        return CheckoutSessionHandle(session_id=session_id, redirect_url=redirect_url)

    async def retrieve_session(self, session_id: str) -> dict[str, Any]:
        try:
            session = await self._call(
                "checkout session retrieve", self._sdk.checkout.Session.retrieve, session_id
            )
        except stripe.InvalidRequestError as exc:
            raise InternalFailure(f"Stripe has no checkout session {session_id}") from exc
        return _as_dict(session)

    async def list_prices(self, *, limit: int = 20) -> list[dict[str, Any]]:
        """Active one-off prices, as offered on the pricing page."""
        prices = await self._call(
            "price list", self._sdk.Price.list, active=True, type="one_time", limit=limit
        )
        return [_as_dict(price) for price in _as_dict(prices).get("data", [])]

    def verify_event_signature(self, payload: bytes, sig_header: str | None) -> dict[str, Any]:
        """Check the ``Stripe-Signature`` header over the raw body and parse it.

        The payload must be the exact bytes received; any re-serialization
        invalidates the signature.
        """
        if not self.webhook_secret:
            logger.error("Stripe webhook secret is not configured; rejecting event")
            raise InvalidSignature("Webhook secret is not configured")
        if not sig_header:
            raise InvalidSignature("Missing stripe-signature header")
        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                body,
                sig_header,
                self.webhook_secret,
                self.webhook_tolerance_seconds,
            )
            event = json.loads(body)
        except (UnicodeDecodeError, ValueError, stripe.SignatureVerificationError) as exc:
            logger.warning("Stripe webhook signature verification failed: %s", exc)
            raise InvalidSignature() from exc
        if not isinstance(event, dict):
            raise InvalidSignature()
        return event
