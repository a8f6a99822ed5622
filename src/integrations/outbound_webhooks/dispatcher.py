"""
Outbound Webhook Dispatcher

Delivers platform events to subscribed endpoints. Runs after the inbound
response has been sent; a failed delivery is logged and recorded, never
raised to the request that triggered it.
"""

import hashlib
import hmac
import json
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy import select

from src.config.constants import OutboundEvent
from src.database.connection import Database
from src.database.models.outbound_webhook import OutboundWebhook, OutboundWebhookDelivery
from src.shared.error_handler import ErrorHandler
from src.shared.utils import utcnow

MAX_RESPONSE_BODY = 1000


def sign_payload(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


class OutboundWebhookDispatcher:
    def __init__(
        self,
        database: Database,
        timeout: float = 10.0,
        user_agent: str = "EduCommunity-Webhook/1.0",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.database = database
        self.timeout = timeout
        self.user_agent = user_agent
        self._transport = transport
        self._error_handler = ErrorHandler(__name__)

    async def _subscribers(self, event: OutboundEvent) -> List[OutboundWebhook]:
        async with self.database.session() as session:
            result = await session.execute(
                select(OutboundWebhook).where(OutboundWebhook.is_active.is_(True))
            )
            return [w for w in result.scalars().all() if event.value in (w.events or [])]

    async def dispatch(self, event: OutboundEvent, data: Dict[str, Any]) -> int:
        """
        Send ``event`` to every active subscriber. Returns the number of
        successful deliveries.
        """
        try:
            webhooks = await self._subscribers(event)
        except Exception as e:
            self._error_handler.logger.error(
                f"Could not load subscribers for {event.value}: {e}", exc_info=True
            )
            return 0

        if not webhooks:
            return 0

        payload = {"event": event.value, "timestamp": utcnow().isoformat(), "data": data}
        body = json.dumps(payload, default=str).encode("utf-8")

        delivered = 0
        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            for webhook in webhooks:
                if await self._deliver(client, webhook, event, payload, body):
                    delivered += 1

        self._error_handler.logger.info(
            f"Event {event.value} delivered to {delivered}/{len(webhooks)} webhooks"
        )
        return delivered

    async def _deliver(
        self,
        client: httpx.AsyncClient,
        webhook: OutboundWebhook,
        event: OutboundEvent,
        payload: Dict[str, Any],
        body: bytes,
    ) -> bool:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
            "X-Webhook-Event": event.value,
        }
        if webhook.secret_key:
            headers["X-Webhook-Signature"] = sign_payload(webhook.secret_key, body)

        delivery = OutboundWebhookDelivery(
            webhook_id=webhook.id, event_type=event.value, payload=payload
        )
        try:
            response = await client.post(webhook.url, content=body, headers=headers)
            delivery.response_status = response.status_code
            delivery.response_body = response.text[:MAX_RESPONSE_BODY]
            delivery.is_success = 200 <= response.status_code < 300
            if not delivery.is_success:
                delivery.error_message = f"HTTP {response.status_code}"
        except httpx.HTTPError as e:
            delivery.error_message = str(e) or e.__class__.__name__
            delivery.is_success = False

        if delivery.is_success:
            self._error_handler.logger.info(f"Webhook {webhook.id} accepted {event.value}")
        else:
            self._error_handler.logger.warning(
                f"Webhook {webhook.id} delivery of {event.value} failed: {delivery.error_message}"
            )

        try:
            async with self.database.session() as session:
                async with session.begin():
                    session.add(delivery)
        except Exception as e:
            self._error_handler.logger.error(
                f"Could not record delivery for webhook {webhook.id}: {e}", exc_info=True
            )
        return delivery.is_success
