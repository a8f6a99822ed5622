from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query, status

from src.api.webhooks.audit import NotificationAuditor
from src.api.webhooks.models import ReplaySummary, WebhookNotificationSchema
from src.api.webhooks.reconciler import PaymentReconciler
from src.config.constants import NotificationStatus
from src.database.connection import Database
from src.dependencies.auth import require_admin_token
from src.dependencies.services import (
    get_auditor,
    get_database,
    get_outbound_dispatcher,
    get_reconciler,
)
from src.integrations.outbound_webhooks import (
    OutboundDeliverySchema,
    OutboundWebhookCreate,
    OutboundWebhookDispatcher,
    OutboundWebhookSchema,
    OutboundWebhookService,
    OutboundWebhookUpdate,
)
from src.shared.responses import success_response

admin_router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin_token)],
)


def get_outbound_webhook_service(
    database: Annotated[Database, Depends(get_database)],
) -> OutboundWebhookService:
    return OutboundWebhookService(database)


@admin_router.get(
    "/webhook-notifications",
    response_model=List[WebhookNotificationSchema],
    summary="Inbound payment notifications, newest first",
)
async def list_notifications(
    auditor: Annotated[NotificationAuditor, Depends(get_auditor)],
    notification_status: Optional[NotificationStatus] = Query(None, alias="status"),
    flagged: Optional[bool] = Query(None, description="Only rows flagged for review"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    rows = await auditor.list_notifications(notification_status, flagged, limit, offset)
    return success_response(
        [WebhookNotificationSchema.model_validate(r).model_dump(mode="json") for r in rows]
    )


@admin_router.post(
    "/webhook-notifications/replay",
    response_model=ReplaySummary,
    summary="Re-run unresolved notifications through reconciliation",
)
async def replay_unresolved(
    auditor: Annotated[NotificationAuditor, Depends(get_auditor)],
    reconciler: Annotated[PaymentReconciler, Depends(get_reconciler)],
    dispatcher: Annotated[OutboundWebhookDispatcher, Depends(get_outbound_dispatcher)],
    limit: int = Query(100, ge=1, le=1000),
):
    summary = await auditor.replay_unresolved(reconciler, limit=limit, dispatcher=dispatcher)
    return success_response(summary.model_dump(mode="json"))


@admin_router.get("/outbound-webhooks", response_model=List[OutboundWebhookSchema])
async def list_outbound_webhooks(
    service: Annotated[OutboundWebhookService, Depends(get_outbound_webhook_service)],
    active_only: bool = Query(False),
):
    webhooks = await service.list_webhooks(active_only)
    return success_response([w.model_dump(mode="json") for w in webhooks])


@admin_router.post("/outbound-webhooks", response_model=OutboundWebhookSchema)
async def create_outbound_webhook(
    data: OutboundWebhookCreate,
    service: Annotated[OutboundWebhookService, Depends(get_outbound_webhook_service)],
):
    webhook = await service.create_webhook(data)
    return success_response(
        webhook.model_dump(mode="json"),
        message="Webhook created",
        status_code=status.HTTP_201_CREATED,
    )


@admin_router.get("/outbound-webhooks/{webhook_id}", response_model=OutboundWebhookSchema)
async def get_outbound_webhook(
    webhook_id: str,
    service: Annotated[OutboundWebhookService, Depends(get_outbound_webhook_service)],
):
    webhook = await service.get_webhook(webhook_id)
    return success_response(webhook.model_dump(mode="json"))


@admin_router.patch("/outbound-webhooks/{webhook_id}", response_model=OutboundWebhookSchema)
async def update_outbound_webhook(
    webhook_id: str,
    data: OutboundWebhookUpdate,
    service: Annotated[OutboundWebhookService, Depends(get_outbound_webhook_service)],
):
    webhook = await service.update_webhook(webhook_id, data)
    return success_response(webhook.model_dump(mode="json"), message="Webhook updated")


@admin_router.delete("/outbound-webhooks/{webhook_id}")
async def delete_outbound_webhook(
    webhook_id: str,
    service: Annotated[OutboundWebhookService, Depends(get_outbound_webhook_service)],
):
    await service.delete_webhook(webhook_id)
    return success_response({"id": webhook_id}, message="Webhook deleted")


@admin_router.get(
    "/outbound-webhooks/{webhook_id}/deliveries",
    response_model=List[OutboundDeliverySchema],
)
async def list_outbound_deliveries(
    webhook_id: str,
    service: Annotated[OutboundWebhookService, Depends(get_outbound_webhook_service)],
    success: Optional[bool] = Query(None),
    limit: int = Query(50, ge=1, le=500),
):
    deliveries = await service.list_deliveries(webhook_id, limit=limit, success=success)
    return success_response([d.model_dump(mode="json") for d in deliveries])
