from typing import Any, Dict, Optional

import stripe

from src.api.webhooks.exceptions import InvalidSignature, MalformedNotification
from src.api.webhooks.models import PaymentNotification, WebhookRequest
from src.api.webhooks.providers.base import BaseWebhookProvider
from src.api.webhooks.signature import SignatureVerifier, parse_signature_header
from src.config.constants import PaymentGateway
from src.shared.error_handler import ErrorHandler

PAYMENT_INTENT_EVENTS = {
    "payment_intent.succeeded",
    "payment_intent.payment_failed",
    "payment_intent.canceled",
    "payment_intent.processing",
}

CHECKOUT_SESSION_EVENTS = {
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
    "checkout.session.async_payment_failed",
    "checkout.session.expired",
}


class StripeProvider(BaseWebhookProvider):
    """
    Stripe webhook provider. Events carry the object itself, so no API
    lookup is needed to learn the status.
    """

    gateway = PaymentGateway.STRIPE

    def __init__(
        self,
        verifier: SignatureVerifier,
        tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE,
    ):
        super().__init__(verifier)
        self._error_handler = ErrorHandler(__name__)
        self.tolerance = tolerance

    def authenticate(self, request: WebhookRequest) -> bool:
        header = request.header("stripe-signature")
        timestamp, _ = parse_signature_header(header)
        if not self.verifier.guard(timestamp):
            return False
        if not header:
            raise InvalidSignature("stripe signature header missing")

        try:
            stripe.Webhook.construct_event(
                request.raw_body, header, self.verifier.secret, tolerance=self.tolerance
            )
        except stripe.SignatureVerificationError as e:
            raise InvalidSignature(f"stripe signature rejected: {e}")
        except UnicodeDecodeError:
            raise InvalidSignature("stripe payload is not UTF-8")
        except ValueError as e:
            # Raised only after the signature matched
            raise MalformedNotification(f"Stripe event is not valid JSON: {e}")
        return True

    @staticmethod
    def _declared_status(event_type: str, obj: Dict[str, Any]) -> Optional[str]:
        if event_type in ("payment_intent.payment_failed", "checkout.session.async_payment_failed"):
            return "payment_failed"
        if event_type == "checkout.session.expired":
            return "expired"
        if event_type.startswith("checkout.session."):
            return obj.get("payment_status")
        return obj.get("status")

    @staticmethod
    def _external_reference(obj: Dict[str, Any]) -> Optional[str]:
        metadata = obj.get("metadata") or {}
        return (
            obj.get("client_reference_id")
            or metadata.get("external_reference")
            or metadata.get("payment_id")
        )

    def parse_notification(
        self, request: WebhookRequest, signature_verified: bool = True
    ) -> Optional[PaymentNotification]:
        payload = self.load_json(request.raw_body)
        event_type = payload.get("type")

        if event_type not in PAYMENT_INTENT_EVENTS | CHECKOUT_SESSION_EVENTS:
            self._error_handler.logger.info(f"[stripe] Ignoring event type '{event_type}'")
            return None

        data = payload.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        if not isinstance(obj, dict) or not obj.get("id"):
            raise MalformedNotification(f"Stripe event {event_type} without data.object.id")

        timestamp, _ = parse_signature_header(request.header("stripe-signature"))
        return PaymentNotification(
            gateway=self.gateway,
            external_payment_id=str(obj["id"]),
            external_reference=self._external_reference(obj),
            declared_status=self._declared_status(event_type, obj),
            notification_id=payload.get("id"),
            event_type=event_type,
            timestamp=timestamp,
            signature_verified=signature_verified,
            payload=payload,
        )

    async def resolve_status(self, notification: PaymentNotification) -> PaymentNotification:
        return notification
