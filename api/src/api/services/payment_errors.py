"""Typed failures raised by the checkout and webhook services."""

from __future__ import annotations


class PaymentError(Exception):
    """Base class; ``code`` is the machine-readable value returned to callers."""

    code = "InternalFailure"
    status_code = 500
    default_message = "Something went wrong. Please retry or contact support."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_detail(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class MissingPriceReference(PaymentError):
    code = "MissingPriceReference"
    status_code = 400
    default_message = "A price reference is required to start checkout."


class InvalidPriceReference(PaymentError):
    code = "InvalidPriceReference"
    status_code = 400
    default_message = "Selected service is no longer available."


class InvalidSignature(PaymentError):
    code = "InvalidSignature"
    status_code = 400
    default_message = "Invalid webhook signature"


class InvalidEventPayload(PaymentError):
    code = "InvalidEventPayload"
    status_code = 400
    default_message = "Invalid webhook payload"


class GatewayUnavailable(PaymentError):
    code = "GatewayUnavailable"
    status_code = 502
    default_message = "Failed to create checkout session. Please retry or contact support."


class PaymentsNotConfigured(GatewayUnavailable):
    status_code = 503
    default_message = "Online payments are not configured. Please contact support."


class PersistenceFailure(PaymentError):
    code = "PersistenceFailure"
    status_code = 500
    default_message = "Payment records could not be saved."


class InternalFailure(PaymentError):
    pass
