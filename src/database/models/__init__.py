# Import all models to ensure they are registered with SQLAlchemy

from .enrollment import Enrollment
from .outbound_webhook import OutboundWebhook, OutboundWebhookDelivery
from .payment import Payment
from .webhook_notification import WebhookNotification

__all__ = [
    "Enrollment",
    "OutboundWebhook",
    "OutboundWebhookDelivery",
    "Payment",
    "WebhookNotification",
]
