import json
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx

from src.api.webhooks.exceptions import (
    ConfigurationError,
    GatewayUnavailable,
    MalformedNotification,
    PaymentNotFoundAtGateway,
)
from src.api.webhooks.models import PaymentNotification, WebhookRequest
from src.api.webhooks.providers.base import BaseWebhookProvider
from src.api.webhooks.signature import (
    SignatureVerifier,
    build_canonical_message,
    parse_signature_header,
)
from src.config.constants import PaymentGateway, SignatureFormat
from src.shared.error_handler import ErrorHandler

_ALPHANUMERIC = re.compile(r"^[A-Za-z0-9]+$")


class MercadoPagoProvider(BaseWebhookProvider):
    """
    Mercado Pago webhook provider.

    Notifications only carry ``{type, action, data: {id}}``; the payment
    status is read back from the payments API with the account access token.
    """

    gateway = PaymentGateway.MERCADOPAGO

    def __init__(
        self,
        verifier: SignatureVerifier,
        access_token: Optional[str] = None,
        api_url: str = "https://api.mercadopago.com",
        signature_format: SignatureFormat = SignatureFormat.MANIFEST,
        webhook_path: str = "/webhooks/mercadopago",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(verifier)
        self._error_handler = ErrorHandler(__name__)
        self.access_token = access_token
        self.api_url = api_url.rstrip("/")
        self.signature_format = SignatureFormat(signature_format)
        self.webhook_path = webhook_path
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.access_token) and self.verifier.configured

    def _signature_parts(self, request: WebhookRequest) -> Tuple[Optional[str], List[str]]:
        header = request.header("x-signature")
        if header and "=" not in header:
            # Bare hex signature with the timestamp in its own header
            return request.header("x-timestamp"), [header.strip()]
        timestamp, signatures = parse_signature_header(header)
        return timestamp or request.header("x-timestamp"), signatures

    def _data_id(self, request: WebhookRequest) -> Optional[str]:
        """The ``data.id`` as it appears in the signed manifest."""
        data_id = request.query_params.get("data.id") or request.query_params.get("id")
        if not data_id:
            try:
                payload = json.loads(request.raw_body or b"{}")
            except (UnicodeDecodeError, ValueError):
                return None
            data = payload.get("data") if isinstance(payload, dict) else None
            if not isinstance(data, dict) or data.get("id") is None:
                return None
            data_id = str(data["id"])
        # Mercado Pago signs alphanumeric ids lower-cased
        return data_id.lower() if _ALPHANUMERIC.match(data_id) else data_id

    def authenticate(self, request: WebhookRequest) -> bool:
        timestamp, signatures = self._signature_parts(request)
        message = build_canonical_message(
            self.signature_format,
            timestamp=timestamp,
            raw_body=request.raw_body,
            method=request.method,
            path=self.webhook_path,
            data_id=self._data_id(request),
            request_id=request.header("x-request-id"),
        )
        return self.verifier.verify(message, signatures, timestamp)

    def parse_notification(
        self, request: WebhookRequest, signature_verified: bool = True
    ) -> Optional[PaymentNotification]:
        payload = self.load_json(request.raw_body)

        event_type = (
            payload.get("type")
            or request.query_params.get("type")
            or request.query_params.get("topic")
        )
        if event_type != "payment":
            self._error_handler.logger.info(
                f"[mercadopago] Ignoring notification of type '{event_type}'"
            )
            return None

        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        data_id = data.get("id") or request.query_params.get("data.id")
        if data_id is None or str(data_id).strip() == "":
            raise MalformedNotification("Payment notification without data.id")

        timestamp, _ = self._signature_parts(request)
        notification_id = payload.get("id")
        return PaymentNotification(
            gateway=self.gateway,
            external_payment_id=str(data_id),
            notification_id=str(notification_id) if notification_id is not None else None,
            event_type=event_type,
            action=payload.get("action"),
            timestamp=timestamp,
            signature_verified=signature_verified,
            payload=payload,
        )

    async def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        if not self.access_token:
            self._error_handler.logger.critical(
                "[mercadopago] MERCADOPAGO_ACCESS_TOKEN not configured; cannot look up payments"
            )
            raise ConfigurationError("Mercado Pago access token is not configured")

        endpoint = f"{self.api_url}/v1/payments/{payment_id}"
        headers = {"Authorization": f"Bearer {self.access_token}"}

        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            try:
                response = await client.get(endpoint, headers=headers)
            except httpx.HTTPError as e:
                self._error_handler.logger.error(
                    f"[mercadopago] Payment lookup failed for {payment_id}: {e}"
                )
                raise GatewayUnavailable(f"Mercado Pago API unreachable for {payment_id}", e)

        if response.status_code == 404:
            raise PaymentNotFoundAtGateway(f"Mercado Pago payment {payment_id} not found")

        if response.status_code != 200:
            self._error_handler.logger.error(
                f"[mercadopago] Payment lookup returned {response.status_code} for {payment_id}"
            )
            raise GatewayUnavailable(
                f"Mercado Pago API returned {response.status_code} for {payment_id}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise GatewayUnavailable(f"Mercado Pago API returned invalid JSON for {payment_id}", e)

    async def resolve_status(self, notification: PaymentNotification) -> PaymentNotification:
        if notification.declared_status:
            return notification

        payment = await self.fetch_payment(notification.external_payment_id)
        self._error_handler.logger.info(
            f"[mercadopago] Payment {notification.external_payment_id} status "
            f"'{payment.get('status')}' ({payment.get('status_detail')})"
        )
        return notification.model_copy(
            update={
                "declared_status": payment.get("status"),
                "external_reference": payment.get("external_reference")
                or notification.external_reference,
            }
        )
