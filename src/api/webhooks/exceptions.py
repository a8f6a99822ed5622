"""
Payment Webhook Exceptions

Failures raised while authenticating and reconciling gateway notifications.
None of these messages are ever returned to the caller.
"""

from typing import Optional

from src.shared.error_handler import TransientStorageError

__all__ = [
    "WebhookError",
    "InvalidSignature",
    "ConfigurationError",
    "MalformedNotification",
    "UnknownPayment",
    "GatewayUnavailable",
    "PaymentNotFoundAtGateway",
    "TransientStorageError",
]


class WebhookError(Exception):
    """Base class for webhook processing failures"""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.message = message
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self):
        if self.original_error:
            return f"{self.message} | Original error: {str(self.original_error)}"
        return self.message


class InvalidSignature(WebhookError):
    """Missing, malformed or non-matching signature"""


class ConfigurationError(WebhookError):
    """The webhook secret (or another required setting) is not configured"""


class MalformedNotification(WebhookError):
    """Authenticated body that cannot be parsed into a notification"""


class UnknownPayment(WebhookError):
    """No local payment record matches the notification"""

    def __init__(self, gateway: str, external_payment_id: str):
        self.gateway = gateway
        self.external_payment_id = external_payment_id
        super().__init__(
            f"No {gateway} payment found for external id {external_payment_id}"
        )


class GatewayUnavailable(WebhookError):
    """The gateway API could not be reached to resolve a notification"""


class PaymentNotFoundAtGateway(WebhookError):
    """The gateway API does not know the notified payment (test pings, deleted data)"""
