import pytest

from src.api.webhooks.audit import NotificationAuditor
from src.api.webhooks.models import PaymentNotification
from src.api.webhooks.reconciler import PaymentReconciler
from src.config.constants import (
    NotificationStatus,
    OutboundEvent,
    PaymentGateway,
    PaymentStatus,
)
from tests.helpers import count_enrollments, get_payment, seed_payment


def unknown_notification(payment_id="999", declared_status="approved"):
    return PaymentNotification(
        gateway=PaymentGateway.MERCADOPAGO,
        external_payment_id=payment_id,
        declared_status=declared_status,
        notification_id="n-1",
    )


class RecordingDispatcher:
    def __init__(self):
        self.events = []

    async def dispatch(self, event, data):
        self.events.append((event, data))
        return 1


async def record_unresolved(auditor, payment_id="999"):
    return await auditor.record(
        PaymentGateway.MERCADOPAGO,
        NotificationStatus.UNRESOLVED,
        {"type": "payment", "data": {"id": payment_id}},
        unknown_notification(payment_id),
        "No payment found",
    )


@pytest.mark.asyncio
class TestNotificationAuditor:
    async def test_records_processed_notification(self, database):
        auditor = NotificationAuditor(database)

        row = await auditor.record(
            PaymentGateway.MERCADOPAGO,
            NotificationStatus.PROCESSED,
            {"type": "payment"},
            unknown_notification("123456"),
        )

        assert row.id is not None
        assert row.status == NotificationStatus.PROCESSED.value
        assert row.processed_at is not None
        assert row.flagged_for_review is False

    async def test_flags_after_threshold(self, database, caplog):
        auditor = NotificationAuditor(database, review_threshold=3)

        first = await record_unresolved(auditor)
        second = await record_unresolved(auditor)
        assert not first.flagged_for_review and not second.flagged_for_review

        with caplog.at_level("WARNING"):
            third = await record_unresolved(auditor)

        assert third.flagged_for_review is True
        assert "flagged for manual review" in caplog.text
        flagged = await auditor.list_notifications(NotificationStatus.UNRESOLVED, flagged=True)
        assert len(flagged) == 3

    async def test_threshold_counts_per_payment(self, database):
        auditor = NotificationAuditor(database, review_threshold=2)

        await record_unresolved(auditor, "1")
        row = await record_unresolved(auditor, "2")

        assert row.flagged_for_review is False
        assert await auditor.list_notifications(flagged=True) == []

    async def test_list_filters(self, database):
        auditor = NotificationAuditor(database)
        await record_unresolved(auditor)
        await auditor.record(PaymentGateway.STRIPE, NotificationStatus.IGNORED, {"type": "x"})

        assert len(await auditor.list_notifications()) == 2
        ignored = await auditor.list_notifications(NotificationStatus.IGNORED)
        assert [r.gateway for r in ignored] == ["stripe"]

    async def test_replay_processes_once_payment_exists(self, database):
        auditor = NotificationAuditor(database)
        await record_unresolved(auditor, "999")
        await record_unresolved(auditor, "888")
        payment = await seed_payment(database, external_payment_id="999")

        summary = await auditor.replay_unresolved(PaymentReconciler(database))

        assert summary.total == 2
        assert summary.processed == 1
        assert summary.still_unresolved == 1
        assert (await get_payment(database, payment.id)).status == PaymentStatus.SUCCEEDED.value
        assert await count_enrollments(database) == 1
        remaining = await auditor.list_notifications(NotificationStatus.UNRESOLVED)
        assert [r.external_payment_id for r in remaining] == ["888"]

    async def test_replay_with_nothing_pending(self, database):
        summary = await NotificationAuditor(database).replay_unresolved(PaymentReconciler(database))
        assert summary.total == 0

    async def test_replay_announces_applied_transitions(self, database):
        auditor = NotificationAuditor(database)
        await record_unresolved(auditor, "999")
        payment = await seed_payment(database, external_payment_id="999")
        dispatcher = RecordingDispatcher()

        summary = await auditor.replay_unresolved(PaymentReconciler(database), dispatcher=dispatcher)

        assert summary.processed == 1
        assert summary.events_dispatched == 1
        [(event, data)] = dispatcher.events
        assert event == OutboundEvent.PAYMENT_SUCCEEDED
        assert data["payment_id"] == payment.id
        assert data["gateway"] == "mercadopago"
        assert data["enrollment_created"] is True

    async def test_replay_of_settled_payment_is_not_announced(self, database):
        auditor = NotificationAuditor(database)
        await record_unresolved(auditor, "999")
        await seed_payment(database, external_payment_id="999", status=PaymentStatus.SUCCEEDED)
        dispatcher = RecordingDispatcher()

        summary = await auditor.replay_unresolved(PaymentReconciler(database), dispatcher=dispatcher)

        assert summary.processed == 1
        assert summary.events_dispatched == 0
        assert dispatcher.events == []
