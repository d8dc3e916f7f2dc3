"""Stripe webhook handler."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_webhook_receiver
from api.services.payment_errors import PaymentError
from api.services.webhook_receiver import WebhookReceiver

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    receiver: WebhookReceiver = Depends(get_webhook_receiver),
):
    # Signature covers the exact bytes; never parse before verifying.
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        receipt = await receiver.receive(db, payload, sig_header)
    except PaymentError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail())

    return {"received": True, "status": receipt.status, "event_type": receipt.event_type}
