"""SQLAlchemy ORM models for Kliqt payments and the jobs API."""

from kliqt.models.base import Base
from kliqt.models.analytics_event import AnalyticsEvent
from kliqt.models.api_key import ApiKey
from kliqt.models.checkout_session import CheckoutSession
from kliqt.models.customer import Customer
from kliqt.models.job import Job, JobCategory
from kliqt.models.order import Order
from kliqt.models.payment import Payment
from kliqt.models.stripe_webhook_event import StripeWebhookEvent

__all__ = [
    "Base",
    "AnalyticsEvent",
    "ApiKey",
    "CheckoutSession",
    "Customer",
    "Job",
    "JobCategory",
    "Order",
    "Payment",
    "StripeWebhookEvent",
]
