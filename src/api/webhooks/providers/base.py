import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from src.api.webhooks.exceptions import MalformedNotification
from src.api.webhooks.models import PaymentNotification, WebhookRequest
from src.api.webhooks.signature import SignatureVerifier
from src.config.constants import PaymentGateway


class BaseWebhookProvider(ABC):
    """
    Abstract Base Class for payment gateway webhook providers.
    Ensures a consistent interface for the WebhookService.
    """

    gateway: PaymentGateway

    def __init__(self, verifier: SignatureVerifier):
        self.verifier = verifier

    @abstractmethod
    def authenticate(self, request: WebhookRequest) -> bool:
        """
        Verify the request signature over the raw body.
        Raises InvalidSignature / ConfigurationError; returns False only when
        validation was skipped.
        """
        pass

    @abstractmethod
    def parse_notification(
        self, request: WebhookRequest, signature_verified: bool = True
    ) -> Optional[PaymentNotification]:
        """Normalize the payload; None means the event is not about a payment."""
        pass

    @abstractmethod
    async def resolve_status(self, notification: PaymentNotification) -> PaymentNotification:
        """Fill in the gateway's declared status when the payload lacks it."""
        pass

    def describe(self) -> Dict[str, Any]:
        return {
            "gateway": self.gateway.value,
            "configured": self.configured,
            "has_webhook_secret": self.verifier.configured,
            "environment": self.verifier.environment,
        }

    @property
    def configured(self) -> bool:
        return self.verifier.configured

    @staticmethod
    def load_json(raw_body: bytes) -> Dict[str, Any]:
        if not raw_body:
            raise MalformedNotification("Empty notification body")
        try:
            payload = json.loads(raw_body)
        except (UnicodeDecodeError, ValueError) as e:
            raise MalformedNotification("Notification body is not valid JSON", e)
        if not isinstance(payload, dict):
            raise MalformedNotification("Notification body must be a JSON object")
        return payload
