"""Turn a purchase intent into a hosted checkout session."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from kliqt.config import Settings
from kliqt.database import dialect_insert
from kliqt.models import AnalyticsEvent, CheckoutSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.services.payment_errors import MissingPriceReference, PaymentError, PersistenceFailure
from api.services.stripe_service import CheckoutSessionHandle, PaymentGateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutPolicy:
    # Stripe is the source of truth, so by default a failed audit write must
    # not stop the customer reaching the payment page.
    audit_write_failure_is_fatal: bool = False


@dataclass(frozen=True)
class CheckoutIntent:
    price_id: str | None
    customer_email: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CheckoutResult:
    session_id: str
    redirect_url: str
    audit_recorded: bool


class CheckoutInitiator:
    def __init__(
        self,
        gateway: PaymentGateway,
        *,
        success_url: str,
        cancel_url: str,
        source: str = "kliqt_website",
        policy: CheckoutPolicy | None = None,
    ) -> None:
        self._gateway = gateway
        self.success_url = success_url
        self.cancel_url = cancel_url
        self.source = source
        self.policy = policy or CheckoutPolicy()

    @classmethod
    def from_settings(cls, gateway: PaymentGateway, settings: Settings) -> CheckoutInitiator:
        return cls(
            gateway,
            success_url=settings.checkout_success_url,
            cancel_url=settings.checkout_cancel_url,
            source=settings.checkout_source,
            policy=CheckoutPolicy(
                audit_write_failure_is_fatal=settings.checkout_audit_write_failure_is_fatal,
            ),
        )

    async def start(self, db: AsyncSession, intent: CheckoutIntent) -> CheckoutResult:
        """Open a Stripe session, then record it locally as pending.

        Gateway failures propagate unchanged and leave no local row. The
        gateway call is never retried here.
        """
        price_id = (intent.price_id or "").strip()
        if not price_id:
            raise MissingPriceReference()
        customer_email = (intent.customer_email or "").strip() or None
        metadata = {str(key): str(value) for key, value in intent.metadata.items()}
        metadata["source"] = self.source

        try:
            handle = await self._gateway.create_session(
                price_id=price_id,
                success_url=self.success_url,
                cancel_url=self.cancel_url,
                customer_email=customer_email,
                metadata=metadata,
            )
        except PaymentError as exc:
            await self._track(
                db,
                "checkout.failure",
                {"price_id": price_id, "code": exc.code, "detail": exc.message},
            )
            raise

        audit_recorded = await self._record_pending(
            db,
            handle,
            price_id=price_id,
            customer_email=customer_email,
            metadata=metadata,
        )
        return CheckoutResult(
            session_id=handle.session_id,
            redirect_url=handle.redirect_url,
            audit_recorded=audit_recorded,
        )

    async def _record_pending(
        self,
        db: AsyncSession,
        handle: CheckoutSessionHandle,
        *,
        price_id: str,
        customer_email: str | None,
        metadata: dict[str, str],
    ) -> bool:
        # Insert-if-absent: a completion webhook may already have landed.
        stmt = (
            dialect_insert(db, CheckoutSession)
            .values(
                session_id=handle.session_id,
                price_id=price_id,
                customer_email=customer_email,
                status="pending",
                metadata=metadata,
            )
            .on_conflict_do_nothing(index_elements=[CheckoutSession.__table__.c.session_id])
        )
        try:
            await db.execute(stmt)
            db.add(
                AnalyticsEvent(
                    event_type="checkout.success",
                    metadata_json={"session_id": handle.session_id, "price_id": price_id},
                )
            )
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.warning(
                "Checkout session %s opened but not recorded: %s", handle.session_id, exc
            )
            if self.policy.audit_write_failure_is_fatal:
                raise PersistenceFailure() from exc
            await self._track(
                db,
                "checkout.audit_write_failed",
                {"session_id": handle.session_id, "price_id": price_id},
            )
            return False
        return True

    async def _track(self, db: AsyncSession, event_type: str, metadata: dict) -> None:
        try:
            db.add(AnalyticsEvent(event_type=event_type, metadata_json=metadata))
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.warning("Could not record %s: %s", event_type, exc)
