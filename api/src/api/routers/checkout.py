"""Checkout endpoints used by the pricing and success pages."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from kliqt.config import Settings
from kliqt.models import CheckoutSession, Order
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import (
    get_app_settings,
    get_checkout_initiator,
    get_db,
    get_payment_gateway,
)
from api.services.checkout_service import CheckoutInitiator, CheckoutIntent
from api.services.payment_errors import InternalFailure, PaymentError
from api.services.stripe_service import PaymentGateway

logger = logging.getLogger(__name__)
router = APIRouter()


class CheckoutRequest(BaseModel):
    price_id: str | None = Field(default=None, alias="priceId")
    customer_email: str | None = Field(default=None, alias="customerEmail", max_length=320)
    metadata: dict[str, str] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


def _http_error(exc: PaymentError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())


@router.post("/session")
async def create_checkout_session(
    req: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    initiator: CheckoutInitiator = Depends(get_checkout_initiator),
):
    """Open a Stripe Checkout session and return where to send the browser."""
    intent = CheckoutIntent(
        price_id=req.price_id,
        customer_email=req.customer_email,
        metadata=req.metadata,
    )
    try:
        result = await initiator.start(db, intent)
    except PaymentError as exc:
        raise _http_error(exc)
    except Exception as exc:
        logger.exception("Checkout session error")
        raise _http_error(InternalFailure()) from exc
    return {"session_id": result.session_id, "url": result.redirect_url}


@router.get("/session/{session_id}")
async def get_checkout_session(session_id: str, db: AsyncSession = Depends(get_db)):
    """Local view of a session for the success page."""
    session = (
        await db.execute(select(CheckoutSession).where(CheckoutSession.session_id == session_id))
    ).scalars().first()
    order = (
        await db.execute(select(Order).where(Order.stripe_session_id == session_id))
    ).scalars().first()
    if session is None and order is None:
        raise HTTPException(status_code=404, detail="Checkout session not found")

    return {
        "session_id": session_id,
        "status": session.status if session else "completed",
        "amount_total": session.amount_total if session else order.amount_total,
        "currency": session.currency if session else order.currency,
        "order": (
            {
                "id": str(order.id),
                "order_number": order.order_number,
                "status": order.status,
                "amount_total": order.amount_total,
                "currency": order.currency,
            }
            if order
            else None
        ),
    }


@router.get("/prices")
async def get_prices(
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_app_settings),
):
    """Active one-off prices for the pricing page."""
    if not gateway.is_configured:
        return {"prices": [], "publishable_key": settings.stripe_publishable_key}

    try:
        prices = await gateway.list_prices(limit=50)
    except PaymentError:
        return {"prices": [], "publishable_key": settings.stripe_publishable_key}
    return {
        "prices": [
            {
                "id": p["id"],
                "unit_amount": p.get("unit_amount"),
                "currency": p.get("currency"),
                "product": p.get("product"),
                "nickname": p.get("nickname"),
                "lookup_key": p.get("lookup_key"),
            }
            for p in prices
        ],
        "publishable_key": settings.stripe_publishable_key,
    }
