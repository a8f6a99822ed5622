from typing import Dict, List, Optional

import httpx

from src.api.webhooks.providers.base import BaseWebhookProvider
from src.api.webhooks.providers.mercadopago import MercadoPagoProvider
from src.api.webhooks.providers.stripe import StripeProvider
from src.api.webhooks.signature import SignatureVerifier
from src.config.constants import PaymentGateway
from src.config.settings import Settings


class WebhookProviderFactory:
    def __init__(self, providers: Dict[PaymentGateway, BaseWebhookProvider]):
        self._providers = dict(providers)

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "WebhookProviderFactory":
        mercadopago = MercadoPagoProvider(
            verifier=SignatureVerifier(
                PaymentGateway.MERCADOPAGO.value,
                settings.MERCADOPAGO_WEBHOOK_SECRET,
                environment=settings.ENVIRONMENT,
                skip_validation=settings.MERCADOPAGO_SKIP_SIGNATURE_VALIDATION,
            ),
            access_token=settings.MERCADOPAGO_ACCESS_TOKEN,
            api_url=settings.MERCADOPAGO_API_URL,
            signature_format=settings.MERCADOPAGO_SIGNATURE_FORMAT,
            webhook_path=settings.MERCADOPAGO_WEBHOOK_PATH,
            timeout=settings.MERCADOPAGO_API_TIMEOUT,
            transport=transport,
        )
        stripe = StripeProvider(
            verifier=SignatureVerifier(
                PaymentGateway.STRIPE.value,
                settings.STRIPE_WEBHOOK_SECRET,
                environment=settings.ENVIRONMENT,
            ),
            tolerance=settings.STRIPE_SIGNATURE_TOLERANCE,
        )
        return cls({PaymentGateway.MERCADOPAGO: mercadopago, PaymentGateway.STRIPE: stripe})

    def get_provider(self, gateway: PaymentGateway) -> BaseWebhookProvider:
        try:
            return self._providers[PaymentGateway(gateway)]
        except (KeyError, ValueError):
            raise ValueError(f"Unknown payment gateway: {gateway}")

    def describe(self) -> List[Dict]:
        return [provider.describe() for provider in self._providers.values()]
