"""
Notification audit trail and manual review support.

Every authenticated notification leaves one row in ``webhook_notifications``.
Notifications for payments that do not exist locally stay ``unresolved``;
once the same gateway payment id has been seen unresolved a configurable
number of times, its rows are flagged for manual review.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update

from src.api.webhooks.exceptions import UnknownPayment, WebhookError
from src.api.webhooks.models import PaymentNotification, ReplaySummary
from src.config.constants import NotificationStatus, PaymentGateway
from src.database.connection import Database
from src.database.models.webhook_notification import WebhookNotification
from src.shared.error_handler import (
    ErrorHandler,
    ServiceError,
    TransientStorageError,
    handle_service_errors,
)
from src.shared.utils import utcnow


class NotificationAuditor:
    def __init__(self, database: Database, review_threshold: int = 3):
        self.database = database
        self.review_threshold = max(1, review_threshold)
        self._error_handler = ErrorHandler(__name__)

    @handle_service_errors("recording webhook notification")
    async def record(
        self,
        gateway: PaymentGateway,
        status: NotificationStatus,
        payload: Dict[str, Any],
        notification: Optional[PaymentNotification] = None,
        error_message: Optional[str] = None,
    ) -> WebhookNotification:
        row = WebhookNotification(
            gateway=PaymentGateway(gateway).value,
            notification_id=notification.notification_id if notification else None,
            external_payment_id=notification.external_payment_id if notification else None,
            external_reference=notification.external_reference if notification else None,
            declared_status=notification.declared_status if notification else None,
            payload=payload,
            status=status.value,
            error_message=error_message,
            flagged_for_review=False,
            processed_at=utcnow() if status == NotificationStatus.PROCESSED else None,
        )

        async with self.database.session() as session:
            async with session.begin():
                session.add(row)
                await session.flush()

                if status == NotificationStatus.UNRESOLVED and row.external_payment_id:
                    row.flagged_for_review = await self._flag_if_over_threshold(
                        session, row.gateway, row.external_payment_id
                    )

        return row

    async def _flag_if_over_threshold(self, session, gateway: str, external_payment_id: str) -> bool:
        unresolved = (
            WebhookNotification.gateway == gateway,
            WebhookNotification.external_payment_id == external_payment_id,
            WebhookNotification.status == NotificationStatus.UNRESOLVED.value,
        )
        count = (
            await session.execute(
                select(func.count()).select_from(WebhookNotification).where(*unresolved)
            )
        ).scalar_one()

        if count < self.review_threshold:
            return False

        result = await session.execute(
            update(WebhookNotification)
            .where(*unresolved, WebhookNotification.flagged_for_review.is_(False))
            .values(flagged_for_review=True)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            self._error_handler.logger.warning(
                f"[{gateway}] Payment {external_payment_id} unresolved after {count} "
                "notifications; flagged for manual review"
            )
        return True

    @handle_service_errors("listing webhook notifications")
    async def list_notifications(
        self,
        status: Optional[NotificationStatus] = None,
        flagged: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[WebhookNotification]:
        stmt = select(WebhookNotification)
        if status is not None:
            stmt = stmt.where(WebhookNotification.status == status.value)
        if flagged is not None:
            stmt = stmt.where(WebhookNotification.flagged_for_review.is_(flagged))
        stmt = stmt.order_by(WebhookNotification.id.desc()).limit(limit).offset(offset)

        async with self.database.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def replay_unresolved(
        self, reconciler, limit: int = 100, dispatcher=None
    ) -> ReplaySummary:
        """
        Re-run unresolved notifications through the reconciler.

        Rows whose payment now exists become ``processed``; rows that fail for
        another reason keep their status and record the error. Transitions
        applied here are announced through ``dispatcher`` like live ones.
        """
        rows = await self.list_notifications(NotificationStatus.UNRESOLVED, limit=limit)
        summary = ReplaySummary(total=len(rows))

        for row in reversed(rows):
            summary.notification_ids.append(row.id)
            if not row.external_payment_id:
                summary.failed += 1
                await self._mark(row.id, NotificationStatus.FAILED, "Missing external payment id")
                continue

            notification = PaymentNotification(
                gateway=PaymentGateway(row.gateway),
                external_payment_id=row.external_payment_id,
                external_reference=row.external_reference,
                declared_status=row.declared_status,
                notification_id=row.notification_id,
                payload=row.payload or {},
            )
            try:
                result = await reconciler.reconcile(notification)
            except UnknownPayment:
                summary.still_unresolved += 1
                continue
            except TransientStorageError:
                raise
            except (WebhookError, ServiceError) as e:
                self._error_handler.logger.error(f"Replay of notification {row.id} failed: {e}")
                summary.failed += 1
                await self._mark(row.id, NotificationStatus.UNRESOLVED, str(e))
                continue

            if dispatcher is not None and result.outbound_event is not None:
                await dispatcher.dispatch(result.outbound_event, result.event_data())
                summary.events_dispatched += 1

            summary.processed += 1
            await self._mark(row.id, NotificationStatus.PROCESSED, None)

        self._error_handler.logger.info(
            f"Replayed {summary.total} unresolved notifications: "
            f"{summary.processed} processed ({summary.events_dispatched} announced), "
            f"{summary.still_unresolved} still unresolved, "
            f"{summary.failed} failed"
        )
        return summary

    @handle_service_errors("updating webhook notification")
    async def _mark(
        self, notification_id: int, status: NotificationStatus, error_message: Optional[str]
    ) -> None:
        values: Dict[str, Any] = {"status": status.value, "error_message": error_message}
        if status == NotificationStatus.PROCESSED:
            values["processed_at"] = utcnow()
            values["flagged_for_review"] = False

        async with self.database.session() as session:
            async with session.begin():
                await session.execute(
                    update(WebhookNotification)
                    .where(WebhookNotification.id == notification_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
