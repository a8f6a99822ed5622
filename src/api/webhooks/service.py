from typing import Optional

from src.api.webhooks.audit import NotificationAuditor
from src.api.webhooks.exceptions import (
    GatewayUnavailable,
    PaymentNotFoundAtGateway,
    UnknownPayment,
)
from src.api.webhooks.models import ReconciliationResult, WebhookRequest
from src.api.webhooks.providers.factory import WebhookProviderFactory
from src.api.webhooks.reconciler import PaymentReconciler
from src.config.constants import NotificationStatus, PaymentGateway
from src.shared.error_handler import ErrorHandler, ServiceError


class WebhookService:
    """
    Runs one inbound notification through authenticate, parse, resolve,
    reconcile and audit.

    Exceptions propagate to the route, which turns them into the status code
    that tells the gateway whether to retry.
    """

    def __init__(
        self,
        providers: WebhookProviderFactory,
        reconciler: PaymentReconciler,
        auditor: NotificationAuditor,
    ):
        self.providers = providers
        self.reconciler = reconciler
        self.auditor = auditor
        self._error_handler = ErrorHandler(__name__)

    async def process(
        self, gateway: PaymentGateway, request: WebhookRequest
    ) -> Optional[ReconciliationResult]:
        """Returns None when the notification is acknowledged without reconciling."""
        provider = self.providers.get_provider(gateway)

        # Nothing is stored before the signature checks out
        verified = provider.authenticate(request)
        payload = provider.load_json(request.raw_body)

        notification = provider.parse_notification(request, signature_verified=verified)
        if notification is None:
            await self.auditor.record(gateway, NotificationStatus.IGNORED, payload)
            return None

        self._error_handler.logger.info(
            f"[{gateway.value}] Notification for payment {notification.external_payment_id} "
            f"(event={notification.event_type}, action={notification.action}, "
            f"ts={notification.timestamp}, verified={verified})"
        )

        try:
            notification = await provider.resolve_status(notification)
        except PaymentNotFoundAtGateway as e:
            self._error_handler.logger.warning(f"[{gateway.value}] {e}; acknowledging")
            await self.auditor.record(
                gateway, NotificationStatus.IGNORED, payload, notification, str(e)
            )
            raise
        except GatewayUnavailable as e:
            await self.auditor.record(
                gateway, NotificationStatus.FAILED, payload, notification, str(e)
            )
            raise

        try:
            result = await self.reconciler.reconcile(notification)
        except UnknownPayment as e:
            await self.auditor.record(
                gateway, NotificationStatus.UNRESOLVED, payload, notification, str(e)
            )
            raise

        try:
            await self.auditor.record(
                gateway, NotificationStatus.PROCESSED, payload, notification
            )
        except ServiceError as e:
            # Reconciliation is already committed
            self._error_handler.logger.error(
                f"[{gateway.value}] Payment {result.payment_id} reconciled "
                f"({result.outcome.value}) but the audit row was not written: {e}",
                exc_info=True,
            )
        return result
