"""Client portal: the signed-in customer's orders and payments."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from kliqt.models import Customer, Order, Payment
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import Identity, get_current_identity, get_db

router = APIRouter()


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@router.get("/orders")
async def list_orders(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    limit: int = Query(default=50, ge=1, le=200),
):
    result = await db.execute(
        select(Order)
        .where(func.lower(Order.customer_email) == identity.email)
        .order_by(Order.created_at.desc())
        .limit(limit)
    )
    orders = result.scalars().all()
    return {
        "orders": [
            {
                "id": str(order.id),
                "order_number": order.order_number,
                "status": order.status,
                "amount_total": order.amount_total,
                "currency": order.currency,
                "service": order.metadata_json.get("service"),
                "created_at": _iso(order.created_at),
                "updated_at": _iso(order.updated_at),
            }
            for order in orders
        ]
    }


@router.get("/payments")
async def list_payments(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    limit: int = Query(default=50, ge=1, le=200),
):
    # Orders and payments share the Stripe payment-intent id. Checkout often
    # leaves receipt_email empty, so ownership also comes from the order or
    # the Stripe customer record.
    result = await db.execute(
        select(Payment, Order.id)
        .outerjoin(Order, Order.stripe_payment_intent_id == Payment.stripe_payment_intent_id)
        .outerjoin(Customer, Customer.stripe_customer_id == Payment.stripe_customer_id)
        .where(
            or_(
                func.lower(Payment.receipt_email) == identity.email,
                func.lower(Order.customer_email) == identity.email,
                func.lower(Customer.email) == identity.email,
            )
        )
        .order_by(Payment.created_at.desc())
        .limit(limit)
    )
    return {
        "payments": [
            {
                "id": str(payment.id),
                "stripe_payment_intent_id": payment.stripe_payment_intent_id,
                "amount": payment.amount,
                "currency": payment.currency,
                "status": payment.status,
                "failure_reason": payment.failure_reason,
                "order_id": str(order_id) if order_id else None,
                "created_at": _iso(payment.created_at),
            }
            for payment, order_id in result.all()
        ]
    }
