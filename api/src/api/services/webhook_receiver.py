"""Entry point for Stripe payment-lifecycle webhooks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from kliqt.database import dialect_insert
from kliqt.models import AnalyticsEvent, StripeWebhookEvent
from kliqt.schemas.stripe_events import StripeEvent, parse_stripe_event
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.services.payment_errors import (
    InternalFailure,
    InvalidEventPayload,
    InvalidSignature,
    PersistenceFailure,
)
from api.services.payment_reconcilers import reconcile_event
from api.services.stripe_service import PaymentGateway

logger = logging.getLogger(__name__)

RECONCILER_FAILURE_ALERT = "payments.reconciler.failed"


@dataclass(frozen=True)
class WebhookPolicy:
    # When True a failed reconciler is logged and alerted but the event
    # is still acknowledged, so Stripe does not redeliver it.
    acknowledge_reconciler_failures: bool = True


@dataclass(frozen=True)
class WebhookReceipt:
    status: str
    event_id: str
    event_type: str


class WebhookReceiver:
    def __init__(self, gateway: PaymentGateway, policy: WebhookPolicy | None = None) -> None:
        self._gateway = gateway
        self.policy = policy or WebhookPolicy()

    async def receive(
        self,
        db: AsyncSession,
        payload: bytes,
        sig_header: str | None,
    ) -> WebhookReceipt:
        """Verify, classify and reconcile one delivery.

        Raises ``InvalidSignature`` or ``InvalidEventPayload`` before any
        reconciler runs. Any reconciler failure is alerted and either
        acknowledged or raised (``PersistenceFailure`` for database errors,
        ``InternalFailure`` otherwise) depending on the policy.
        """
        try:
            raw_event = self._gateway.verify_event_signature(payload, sig_header)
        except InvalidSignature as exc:
            await self._record_best_effort(
                db,
                AnalyticsEvent(
                    event_type="stripe.webhook.rejected",
                    metadata_json={"reason": exc.message},
                ),
            )
            raise

        try:
            event = parse_stripe_event(raw_event)
        except ValidationError as exc:
            logger.warning("Stripe webhook payload rejected: %s", exc.errors()[:3])
            raise InvalidEventPayload() from exc

        try:
            previous = await self._previous_outcome(db, event.id)
            if previous in ("processed", "ignored"):
                logger.info("Stripe duplicate webhook ignored: %s", event.id)
                db.add(
                    AnalyticsEvent(
                        event_type="stripe.webhook.duplicate",
                        metadata_json={"event_id": event.id, "event_type": event.type},
                    )
                )
                await db.commit()
                return WebhookReceipt(status="duplicate", event_id=event.id, event_type=event.type)

            logger.info("Stripe webhook: %s %s", event.type, event.id)
            outcome = await reconcile_event(db, event)
            await self._record_outcome(db, event, outcome)
            db.add(
                AnalyticsEvent(
                    event_type=f"stripe.webhook.{outcome}",
                    metadata_json={"event_id": event.id, "event_type": event.type},
                )
            )
            await db.commit()
        except Exception as exc:
            await db.rollback()
            logger.error(
                "%s: event=%s type=%s error=%s",
                RECONCILER_FAILURE_ALERT,
                event.id,
                event.type,
                exc,
                exc_info=not isinstance(exc, SQLAlchemyError),
                extra={"alert": RECONCILER_FAILURE_ALERT, "stripe_event_id": event.id},
            )
            if not self.policy.acknowledge_reconciler_failures:
                if isinstance(exc, SQLAlchemyError):
                    raise PersistenceFailure() from exc
                raise InternalFailure() from exc
            await self._record_failure(db, event, exc)
            return WebhookReceipt(
                status="reconciler_failed", event_id=event.id, event_type=event.type
            )

        return WebhookReceipt(status=outcome, event_id=event.id, event_type=event.type)

    async def _previous_outcome(self, db: AsyncSession, event_id: str) -> str | None:
        result = await db.execute(
            select(StripeWebhookEvent.outcome).where(StripeWebhookEvent.stripe_event_id == event_id)
        )
        return result.scalars().first()

    async def _record_outcome(
        self,
        db: AsyncSession,
        event: StripeEvent,
        outcome: str,
        error: str | None = None,
    ) -> None:
        now = datetime.now(UTC)
        stmt = dialect_insert(db, StripeWebhookEvent).values(
            stripe_event_id=event.id,
            event_type=event.type,
            outcome=outcome,
            error=error,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[StripeWebhookEvent.__table__.c.stripe_event_id],
            set_={"outcome": outcome, "error": error, "updated_at": now},
        )
        await db.execute(stmt)

    async def _record_failure(self, db: AsyncSession, event: StripeEvent, exc: Exception) -> None:
        error = f"{exc.__class__.__name__}: {exc}"[:500]
        try:
            await self._record_outcome(db, event, "failed", error)
            db.add(
                AnalyticsEvent(
                    event_type="stripe.webhook.reconciler_failed",
                    metadata_json={
                        "event_id": event.id,
                        "event_type": event.type,
                        "error": error,
                    },
                )
            )
            await db.commit()
        except SQLAlchemyError as record_exc:
            await db.rollback()
            logger.error(
                "%s: could not record failure for event %s: %s",
                RECONCILER_FAILURE_ALERT,
                event.id,
                record_exc,
            )

    async def _record_best_effort(self, db: AsyncSession, row: AnalyticsEvent) -> None:
        try:
            db.add(row)
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.warning("Could not record %s: %s", row.event_type, exc)
