"""Apply Stripe facts to the local checkout, order, payment and customer tables.

Every reconciler is safe to re-run any number of times in any order: rows
are written with ``INSERT .. ON CONFLICT`` against their Stripe identifier,
so concurrent or repeated deliveries converge on one row per key without
application-level locking.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from kliqt.database import dialect_insert
from kliqt.models import CheckoutSession, Customer, Order, Payment
from kliqt.schemas.stripe_events import (
    CheckoutSessionCompleted,
    CheckoutSessionObject,
    CustomerCreated,
    CustomerObject,
    PaymentIntentFailed,
    PaymentIntentObject,
    PaymentIntentSucceeded,
    StripeEvent,
    UnrecognizedEvent,
)
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def _string_metadata(metadata: dict[str, Any]) -> dict[str, str]:
    return {str(key): "" if value is None else str(value) for key, value in metadata.items()}


async def reconcile_session_completed(db: AsyncSession, session: CheckoutSessionObject) -> bool:
    """Mark the checkout session completed and create its order.

    The local pending row is not required: sessions opened from the Stripe
    dashboard are created here. Returns True when a new order was inserted.
    """
    now = datetime.now(UTC)
    metadata = _string_metadata(session.metadata)
    email = session.email

    sessions = CheckoutSession.__table__
    stmt = dialect_insert(db, CheckoutSession).values(
        session_id=session.id,
        status="completed",
        payment_status=session.payment_status,
        amount_total=session.amount_total,
        currency=session.currency,
        customer_email=email,
        stripe_customer_id=session.customer,
        stripe_payment_intent_id=session.payment_intent,
        metadata=metadata,
        completed_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[sessions.c.session_id],
        set_={
            "status": "completed",
            "payment_status": stmt.excluded.payment_status,
            "amount_total": stmt.excluded.amount_total,
            "currency": stmt.excluded.currency,
            "customer_email": func.coalesce(stmt.excluded.customer_email, sessions.c.customer_email),
            "stripe_customer_id": stmt.excluded.stripe_customer_id,
            "stripe_payment_intent_id": stmt.excluded.stripe_payment_intent_id,
            "metadata": stmt.excluded["metadata"],
            "completed_at": func.coalesce(sessions.c.completed_at, stmt.excluded.completed_at),
            "updated_at": now,
        },
    )
    await db.execute(stmt)

    order_stmt = (
        dialect_insert(db, Order)
        .values(
            stripe_session_id=session.id,
            stripe_customer_id=session.customer,
            stripe_payment_intent_id=session.payment_intent,
            customer_email=email,
            amount_total=session.amount_total,
            currency=session.currency,
            status="pending",
            metadata=metadata,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=[Order.__table__.c.stripe_session_id])
    )
    result = await db.execute(order_stmt)
    created = result.rowcount == 1
    if created:
        logger.info("Order created for checkout session %s", session.id)
    else:
        logger.info("Order already exists for checkout session %s", session.id)
    return created


async def _upsert_payment(
    db: AsyncSession,
    intent: PaymentIntentObject,
    *,
    status: str,
    failure_reason: str | None,
) -> None:
    now = datetime.now(UTC)
    stmt = dialect_insert(db, Payment).values(
        stripe_payment_intent_id=intent.id,
        stripe_customer_id=intent.customer,
        amount=intent.amount,
        currency=intent.currency,
        status=status,
        receipt_email=intent.receipt_email,
        failure_reason=failure_reason,
        metadata=_string_metadata(intent.metadata),
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[Payment.__table__.c.stripe_payment_intent_id],
        set_={
            "stripe_customer_id": stmt.excluded.stripe_customer_id,
            "amount": stmt.excluded.amount,
            "currency": stmt.excluded.currency,
            "status": stmt.excluded.status,
            "receipt_email": stmt.excluded.receipt_email,
            "failure_reason": stmt.excluded.failure_reason,
            "metadata": stmt.excluded["metadata"],
            "updated_at": now,
        },
    )
    await db.execute(stmt)


async def reconcile_payment_succeeded(db: AsyncSession, intent: PaymentIntentObject) -> None:
    await _upsert_payment(db, intent, status="succeeded", failure_reason=None)
    logger.info("Payment succeeded: %s", intent.id)


async def reconcile_payment_failed(db: AsyncSession, intent: PaymentIntentObject) -> None:
    reason = intent.last_payment_error.message if intent.last_payment_error else None
    await _upsert_payment(db, intent, status="failed", failure_reason=reason)
    logger.info("Payment failed: %s (%s)", intent.id, reason or "no reason given")


async def reconcile_customer_created(db: AsyncSession, customer: CustomerObject) -> None:
    now = datetime.now(UTC)
    stmt = dialect_insert(db, Customer).values(
        stripe_customer_id=customer.id,
        email=customer.email,
        name=customer.name,
        metadata=_string_metadata(customer.metadata),
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[Customer.__table__.c.stripe_customer_id],
        set_={
            "email": stmt.excluded.email,
            "name": stmt.excluded.name,
            "metadata": stmt.excluded["metadata"],
            "updated_at": now,
        },
    )
    await db.execute(stmt)
    logger.info("Customer recorded: %s", customer.id)


async def reconcile_event(db: AsyncSession, event: StripeEvent) -> str:
    """Dispatch one verified event; returns ``processed`` or ``ignored``."""
    match event:
        case CheckoutSessionCompleted(data=data):
            await reconcile_session_completed(db, data.object)
        case PaymentIntentSucceeded(data=data):
            await reconcile_payment_succeeded(db, data.object)
        case PaymentIntentFailed(data=data):
            await reconcile_payment_failed(db, data.object)
        case CustomerCreated(data=data):
            await reconcile_customer_created(db, data.object)
        case UnrecognizedEvent(type=event_type):
            logger.info("Unhandled Stripe event type: %s", event_type)
            return "ignored"
    return "processed"
