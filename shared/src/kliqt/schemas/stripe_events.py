"""Typed views of the Stripe webhook events the payments API reconciles.

Stripe sends a JSON envelope ``{"id", "type", "data": {"object": {...}}}``.
Only the fields the reconcilers need are modelled; everything else is
ignored. Event types we do not handle validate as ``UnrecognizedEvent`` so a
new event type added on the Stripe side never breaks the receiver.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Discriminator, Field, Tag, TypeAdapter, field_validator

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
CUSTOMER_CREATED = "customer.created"

HANDLED_EVENT_TYPES = frozenset(
    {
        CHECKOUT_SESSION_COMPLETED,
        PAYMENT_INTENT_SUCCEEDED,
        PAYMENT_INTENT_FAILED,
        CUSTOMER_CREATED,
    }
)


class _StripeObject(BaseModel):
    id: str = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_or_empty(cls, value: Any) -> Any:
        return value if value is not None else {}


class CustomerDetails(BaseModel):
    email: str | None = None
    name: str | None = None


class CheckoutSessionObject(_StripeObject):
    amount_total: int | None = None
    currency: str | None = None
    customer: str | None = None
    customer_email: str | None = None
    customer_details: CustomerDetails | None = None
    payment_intent: str | None = None
    payment_status: str | None = None
    status: str | None = None

    @property
    def email(self) -> str | None:
        if self.customer_details and self.customer_details.email:
            return self.customer_details.email
        return self.customer_email


class LastPaymentError(BaseModel):
    code: str | None = None
    message: str | None = None


class PaymentIntentObject(_StripeObject):
    amount: int
    currency: str
    customer: str | None = None
    receipt_email: str | None = None
    last_payment_error: LastPaymentError | None = None


class CustomerObject(_StripeObject):
    email: str | None = None
    name: str | None = None


class _SessionData(BaseModel):
    object: CheckoutSessionObject


class _PaymentIntentData(BaseModel):
    object: PaymentIntentObject


class _CustomerData(BaseModel):
    object: CustomerObject


class _AnyData(BaseModel):
    object: dict[str, Any]


class _Event(BaseModel):
    id: str = Field(min_length=1)
    created: int | None = None
    livemode: bool = False


class CheckoutSessionCompleted(_Event):
    type: Literal["checkout.session.completed"]
    data: _SessionData


class PaymentIntentSucceeded(_Event):
    type: Literal["payment_intent.succeeded"]
    data: _PaymentIntentData


class PaymentIntentFailed(_Event):
    type: Literal["payment_intent.payment_failed"]
    data: _PaymentIntentData


class CustomerCreated(_Event):
    type: Literal["customer.created"]
    data: _CustomerData


class UnrecognizedEvent(_Event):
    type: str = Field(min_length=1)
    data: _AnyData


def _event_tag(value: Any) -> str:
    if isinstance(value, dict):
        event_type = value.get("type")
    else:
        event_type = getattr(value, "type", None)
    return event_type if event_type in HANDLED_EVENT_TYPES else "unrecognized"


StripeEvent = Annotated[
    Union[
        Annotated[CheckoutSessionCompleted, Tag(CHECKOUT_SESSION_COMPLETED)],
        Annotated[PaymentIntentSucceeded, Tag(PAYMENT_INTENT_SUCCEEDED)],
        Annotated[PaymentIntentFailed, Tag(PAYMENT_INTENT_FAILED)],
        Annotated[CustomerCreated, Tag(CUSTOMER_CREATED)],
        Annotated[UnrecognizedEvent, Tag("unrecognized")],
    ],
    Discriminator(_event_tag),
]

_event_adapter: TypeAdapter[StripeEvent] = TypeAdapter(StripeEvent)


def parse_stripe_event(payload: dict[str, Any]) -> StripeEvent:
    """Validate a verified webhook body; raises ``pydantic.ValidationError``."""
    return _event_adapter.validate_python(payload)
