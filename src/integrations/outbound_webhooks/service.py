"""
Outbound Webhook Subscription Service

CRUD for third-party endpoints subscribed to platform events, and read
access to their delivery log.
"""

from typing import List, Optional

from sqlalchemy import select

from src.database.connection import Database
from src.database.models.outbound_webhook import OutboundWebhook, OutboundWebhookDelivery
from src.integrations.outbound_webhooks.models import (
    OutboundDeliverySchema,
    OutboundWebhookCreate,
    OutboundWebhookSchema,
    OutboundWebhookUpdate,
)
from src.shared.error_handler import ErrorHandler, handle_service_errors
from src.shared.exceptions import ResourceNotFoundException


def to_schema(webhook: OutboundWebhook) -> OutboundWebhookSchema:
    schema = OutboundWebhookSchema.model_validate(webhook)
    schema.has_secret = bool(webhook.secret_key)
    return schema


class OutboundWebhookService:
    def __init__(self, database: Database):
        self.database = database
        self._error_handler = ErrorHandler(__name__)

    @handle_service_errors("creating outbound webhook")
    async def create_webhook(self, data: OutboundWebhookCreate) -> OutboundWebhookSchema:
        webhook = OutboundWebhook(
            name=data.name,
            url=data.url,
            events=[event.value for event in data.events],
            is_active=data.is_active,
            secret_key=data.secret_key,
        )
        async with self.database.session() as session:
            async with session.begin():
                session.add(webhook)
        self._error_handler.logger.info(f"Outbound webhook {webhook.id} created for {webhook.url}")
        return to_schema(webhook)

    @handle_service_errors("listing outbound webhooks")
    async def list_webhooks(self, active_only: bool = False) -> List[OutboundWebhookSchema]:
        stmt = select(OutboundWebhook).order_by(OutboundWebhook.created_at)
        if active_only:
            stmt = stmt.where(OutboundWebhook.is_active.is_(True))
        async with self.database.session() as session:
            result = await session.execute(stmt)
            return [to_schema(w) for w in result.scalars().all()]

    @handle_service_errors("getting outbound webhook")
    async def get_webhook(self, webhook_id: str) -> OutboundWebhookSchema:
        async with self.database.session() as session:
            webhook = await session.get(OutboundWebhook, webhook_id)
            if webhook is None:
                raise ResourceNotFoundException(detail=f"Webhook {webhook_id} not found")
            return to_schema(webhook)

    @handle_service_errors("updating outbound webhook")
    async def update_webhook(
        self, webhook_id: str, data: OutboundWebhookUpdate
    ) -> OutboundWebhookSchema:
        changes = data.model_dump(exclude_unset=True)
        if "events" in changes and changes["events"] is not None:
            changes["events"] = [event.value for event in data.events]

        async with self.database.session() as session:
            async with session.begin():
                webhook = await session.get(OutboundWebhook, webhook_id)
                if webhook is None:
                    raise ResourceNotFoundException(detail=f"Webhook {webhook_id} not found")
                for field, value in changes.items():
                    setattr(webhook, field, value)
            await session.refresh(webhook)
            return to_schema(webhook)

    @handle_service_errors("deleting outbound webhook")
    async def delete_webhook(self, webhook_id: str) -> None:
        async with self.database.session() as session:
            async with session.begin():
                webhook = await session.get(OutboundWebhook, webhook_id)
                if webhook is None:
                    raise ResourceNotFoundException(detail=f"Webhook {webhook_id} not found")
                await session.delete(webhook)
        self._error_handler.logger.info(f"Outbound webhook {webhook_id} deleted")

    @handle_service_errors("listing outbound webhook deliveries")
    async def list_deliveries(
        self, webhook_id: str, limit: int = 50, success: Optional[bool] = None
    ) -> List[OutboundDeliverySchema]:
        await self.get_webhook(webhook_id)
        stmt = select(OutboundWebhookDelivery).where(
            OutboundWebhookDelivery.webhook_id == webhook_id
        )
        if success is not None:
            stmt = stmt.where(OutboundWebhookDelivery.is_success.is_(success))
        stmt = stmt.order_by(OutboundWebhookDelivery.id.desc()).limit(limit)

        async with self.database.session() as session:
            result = await session.execute(stmt)
            return [OutboundDeliverySchema.model_validate(d) for d in result.scalars().all()]
