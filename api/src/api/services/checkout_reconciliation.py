"""Sweep pending checkout sessions against Stripe.

Catches completions whose webhook never arrived or was acknowledged after a
failed write. Uses the same reconciler as the webhook path.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from kliqt.models import AnalyticsEvent, CheckoutSession
from kliqt.schemas.stripe_events import CheckoutSessionObject
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.services.payment_errors import PaymentError
from api.services.payment_reconcilers import reconcile_session_completed
from api.services.stripe_service import PaymentGateway

logger = logging.getLogger(__name__)

# Stripe expires an unpaid checkout session after at most 24 hours. Sessions
# opened before the lookback window are either completed already or expired,
# so they are left out of the scan instead of crowding out newer ones.
DEFAULT_LOOKBACK = timedelta(hours=48)


async def run_checkout_reconciliation(
    db: AsyncSession,
    gateway: PaymentGateway,
    *,
    older_than: timedelta = timedelta(minutes=30),
    lookback: timedelta = DEFAULT_LOOKBACK,
    limit: int = 200,
    trigger: str = "manual",
) -> dict[str, Any]:
    started_at = datetime.now(UTC)
    if not gateway.is_configured:
        summary = {
            "status": "skipped",
            "reason": "Stripe is not configured",
            "trigger": trigger,
            "started_at": started_at.isoformat(),
        }
        db.add(AnalyticsEvent(event_type="checkout.reconciliation.skipped", metadata_json=summary))
        return summary

    cutoff = started_at - older_than
    window_start = started_at - max(lookback, older_than)
    result = await db.execute(
        select(CheckoutSession.session_id)
        .where(
            CheckoutSession.status == "pending",
            CheckoutSession.created_at < cutoff,
            CheckoutSession.created_at > window_start,
        )
        .order_by(CheckoutSession.created_at.asc())
        .limit(limit)
    )
    session_ids = list(result.scalars().all())

    scanned = 0
    completed = 0
    still_open = 0
    expired = 0
    failures = 0

    for session_id in session_ids:
        scanned += 1
        try:
            stripe_session = await gateway.retrieve_session(session_id)
        except PaymentError as exc:
            failures += 1
            logger.warning("Checkout reconciliation failed for %s: %s", session_id, exc)
            continue

        stripe_status = stripe_session.get("status")
        if stripe_status == "expired":
            expired += 1
            continue
        if stripe_status != "complete":
            still_open += 1
            continue

        try:
            session = CheckoutSessionObject.model_validate(stripe_session)
        except ValidationError as exc:
            failures += 1
            logger.warning("Stripe returned an unreadable session %s: %s", session_id, exc)
            continue

        await reconcile_session_completed(db, session)
        completed += 1

    summary = {
        "status": "ok",
        "trigger": trigger,
        "started_at": started_at.isoformat(),
        "finished_at": datetime.now(UTC).isoformat(),
        "scanned": scanned,
        "completed": completed,
        "still_open": still_open,
        "expired": expired,
        "failures": failures,
    }
    db.add(AnalyticsEvent(event_type="checkout.reconciliation.run", metadata_json=summary))
    logger.info("Checkout reconciliation: %s", summary)
    return summary
