"""
Dependencies resolving per-process collaborators from ``app.state``.
"""

from fastapi import Depends, Request

from src.api.webhooks.audit import NotificationAuditor
from src.api.webhooks.providers.factory import WebhookProviderFactory
from src.api.webhooks.reconciler import PaymentReconciler
from src.api.webhooks.service import WebhookService
from src.config.settings import Settings
from src.database.connection import Database
from src.integrations.outbound_webhooks.dispatcher import OutboundWebhookDispatcher
from src.shared.exceptions import ServiceUnavailableException


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    database = getattr(request.app.state, "database", None)
    if database is None:
        raise ServiceUnavailableException(detail="Database is not initialized")
    return database


def get_provider_factory(request: Request) -> WebhookProviderFactory:
    return request.app.state.providers


def get_outbound_dispatcher(
    request: Request, database: Database = Depends(get_database)
) -> OutboundWebhookDispatcher:
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        app_settings = get_settings(request)
        dispatcher = OutboundWebhookDispatcher(
            database,
            timeout=app_settings.OUTBOUND_WEBHOOK_TIMEOUT,
            user_agent=app_settings.OUTBOUND_WEBHOOK_USER_AGENT,
        )
        request.app.state.dispatcher = dispatcher
    return dispatcher


def get_reconciler(database: Database = Depends(get_database)) -> PaymentReconciler:
    return PaymentReconciler(database)


def get_auditor(
    database: Database = Depends(get_database),
    app_settings: Settings = Depends(get_settings),
) -> NotificationAuditor:
    return NotificationAuditor(database, app_settings.UNKNOWN_PAYMENT_REVIEW_THRESHOLD)


def get_webhook_service(
    providers: WebhookProviderFactory = Depends(get_provider_factory),
    reconciler: PaymentReconciler = Depends(get_reconciler),
    auditor: NotificationAuditor = Depends(get_auditor),
) -> WebhookService:
    return WebhookService(providers, reconciler, auditor)
