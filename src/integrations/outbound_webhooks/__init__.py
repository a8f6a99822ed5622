"""
Outbound Webhooks Integration Module

Lets third-party systems subscribe to platform events (payment outcomes)
and receive signed HTTP callbacks.
"""

from src.integrations.outbound_webhooks.dispatcher import (
    OutboundWebhookDispatcher,
    sign_payload,
)
from src.integrations.outbound_webhooks.models import (
    OutboundDeliverySchema,
    OutboundWebhookCreate,
    OutboundWebhookSchema,
    OutboundWebhookUpdate,
)
from src.integrations.outbound_webhooks.service import OutboundWebhookService

__all__ = [
    # Services
    "OutboundWebhookDispatcher",
    "OutboundWebhookService",
    "sign_payload",
    # Models
    "OutboundWebhookCreate",
    "OutboundWebhookUpdate",
    "OutboundWebhookSchema",
    "OutboundDeliverySchema",
]
