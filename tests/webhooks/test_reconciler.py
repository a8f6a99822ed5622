import asyncio

import pytest

from src.api.webhooks.exceptions import UnknownPayment
from src.api.webhooks.models import PaymentNotification, ReconciliationResult
from src.api.webhooks.reconciler import PaymentReconciler
from src.api.webhooks.repository import PaymentRepository
from src.config.constants import (
    EnrollmentSource,
    OutboundEvent,
    PaymentGateway,
    PaymentStatus,
    ReconciliationOutcome,
)
from src.database.connection import Database
from src.shared.error_handler import TransientStorageError
from tests.constants import COURSE_ID, USER_ID
from tests.helpers import count_enrollments, count_payments, get_payment, seed_payment


def notification(declared_status, payment_id="123456", gateway=PaymentGateway.MERCADOPAGO, **kwargs):
    return PaymentNotification(
        gateway=gateway,
        external_payment_id=payment_id,
        declared_status=declared_status,
        **kwargs,
    )


@pytest.mark.asyncio
class TestPaymentReconciler:
    async def test_approved_payment_succeeds_and_enrolls_once(self, database):
        payment = await seed_payment(database)

        result = await PaymentReconciler(database).reconcile(notification("approved"))

        assert result.outcome == ReconciliationOutcome.APPLIED
        assert result.previous_status == PaymentStatus.PENDING
        assert result.new_status == PaymentStatus.SUCCEEDED
        assert result.enrollment_created is True
        stored = await get_payment(database, payment.id)
        assert stored.status == PaymentStatus.SUCCEEDED.value
        assert stored.gateway_status == "approved"
        assert await count_enrollments(database) == 1

    async def test_duplicate_delivery_is_a_noop(self, database):
        await seed_payment(database)
        reconciler = PaymentReconciler(database)

        await reconciler.reconcile(notification("approved"))
        second = await reconciler.reconcile(notification("approved"))

        assert second.outcome == ReconciliationOutcome.ALREADY_TERMINAL
        assert second.enrollment_created is False
        assert await count_enrollments(database) == 1

    async def test_terminal_status_never_reverts(self, database):
        payment = await seed_payment(database)
        reconciler = PaymentReconciler(database)

        await reconciler.reconcile(notification("approved"))
        late_pending = await reconciler.reconcile(notification("pending"))
        late_rejected = await reconciler.reconcile(notification("rejected"))

        assert late_pending.outcome == ReconciliationOutcome.ALREADY_TERMINAL
        assert late_rejected.outcome == ReconciliationOutcome.ALREADY_TERMINAL
        assert (await get_payment(database, payment.id)).status == PaymentStatus.SUCCEEDED.value

    async def test_rejected_payment_fails_without_enrollment(self, database):
        payment = await seed_payment(database)

        result = await PaymentReconciler(database).reconcile(notification("rejected"))

        assert result.outcome == ReconciliationOutcome.APPLIED
        assert result.new_status == PaymentStatus.FAILED
        assert result.enrollment_created is False
        assert (await get_payment(database, payment.id)).status == PaymentStatus.FAILED.value
        assert await count_enrollments(database) == 0

    @pytest.mark.parametrize("declared", ["pending", "in_process", "brand_new_status", None])
    async def test_non_terminal_status_leaves_payment_pending(self, database, declared):
        payment = await seed_payment(database)

        result = await PaymentReconciler(database).reconcile(notification(declared))

        assert result.outcome == ReconciliationOutcome.UNCHANGED
        stored = await get_payment(database, payment.id)
        assert stored.status == PaymentStatus.PENDING.value
        assert stored.gateway_status is None

    async def test_unknown_payment_leaves_store_untouched(self, database):
        payment = await seed_payment(database, external_payment_id="111")

        with pytest.raises(UnknownPayment) as exc_info:
            await PaymentReconciler(database).reconcile(notification("approved", payment_id="999"))

        assert exc_info.value.external_payment_id == "999"
        assert await count_payments(database) == 1
        assert (await get_payment(database, payment.id)).status == PaymentStatus.PENDING.value
        assert await count_enrollments(database) == 0

    async def test_lookup_is_scoped_by_gateway(self, database):
        await seed_payment(database, gateway=PaymentGateway.STRIPE, external_payment_id="123456")

        with pytest.raises(UnknownPayment):
            await PaymentReconciler(database).reconcile(notification("approved"))

    async def test_concurrent_deliveries_enroll_exactly_once(self, database):
        await seed_payment(database)
        reconciler = PaymentReconciler(database)

        results = await asyncio.gather(
            *[reconciler.reconcile(notification("approved")) for _ in range(8)]
        )

        outcomes = [r.outcome for r in results]
        assert outcomes.count(ReconciliationOutcome.APPLIED) == 1
        assert outcomes.count(ReconciliationOutcome.ALREADY_TERMINAL) == 7
        assert sum(r.enrollment_created for r in results) == 1
        assert await count_enrollments(database) == 1

    async def test_external_reference_binds_payment_id(self, database):
        payment = await seed_payment(
            database, external_payment_id=None, external_reference="order-77"
        )

        result = await PaymentReconciler(database).reconcile(
            notification("approved", payment_id="555", external_reference="order-77")
        )

        assert result.payment_id == payment.id
        stored = await get_payment(database, payment.id)
        assert stored.external_payment_id == "555"
        assert stored.status == PaymentStatus.SUCCEEDED.value

    async def test_existing_enrollment_is_not_duplicated(self, database):
        await seed_payment(database)
        async with database.session() as session:
            async with session.begin():
                await PaymentRepository(session).insert_enrollment_if_absent(
                    USER_ID, COURSE_ID, source=EnrollmentSource.EXTERNAL
                )

        result = await PaymentReconciler(database).reconcile(notification("approved"))

        assert result.outcome == ReconciliationOutcome.APPLIED
        assert result.enrollment_created is False
        assert await count_enrollments(database) == 1

    async def test_stripe_checkout_paid(self, database):
        await seed_payment(database, gateway=PaymentGateway.STRIPE, external_payment_id="cs_1")

        result = await PaymentReconciler(database).reconcile(
            notification("paid", payment_id="cs_1", gateway=PaymentGateway.STRIPE)
        )

        assert result.new_status == PaymentStatus.SUCCEEDED
        assert await count_enrollments(database) == 1

    async def test_unreachable_database_is_transient(self, tmp_path):
        database = Database.from_url(
            f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'test.db'}"
        )
        try:
            with pytest.raises(TransientStorageError):
                await PaymentReconciler(database).reconcile(notification("approved"))
        finally:
            await database.dispose()


@pytest.mark.asyncio
class TestCheckoutRetries:
    async def test_rejected_then_approved_payment_enrolls_once(self, database):
        checkout = await seed_payment(
            database, external_payment_id=None, external_reference="order-77"
        )
        reconciler = PaymentReconciler(database)

        rejected = await reconciler.reconcile(
            notification("rejected", payment_id="111", external_reference="order-77")
        )
        approved = await reconciler.reconcile(
            notification("approved", payment_id="222", external_reference="order-77")
        )

        assert rejected.payment_id == checkout.id
        assert rejected.new_status == PaymentStatus.FAILED
        assert approved.outcome == ReconciliationOutcome.APPLIED
        assert approved.payment_id != checkout.id
        assert approved.new_status == PaymentStatus.SUCCEEDED
        assert approved.enrollment_created is True
        assert await count_enrollments(database) == 1
        assert await count_payments(database) == 2

        first = await get_payment(database, checkout.id)
        retry = await get_payment(database, approved.payment_id)
        assert (first.external_payment_id, first.status) == ("111", PaymentStatus.FAILED.value)
        assert (retry.external_payment_id, retry.status) == ("222", PaymentStatus.SUCCEEDED.value)
        assert retry.external_reference == "order-77"
        assert (retry.user_id, retry.course_id) == (USER_ID, COURSE_ID)

    async def test_each_gateway_payment_stays_final(self, database):
        await seed_payment(database, external_payment_id=None, external_reference="order-77")
        reconciler = PaymentReconciler(database)
        await reconciler.reconcile(
            notification("rejected", payment_id="111", external_reference="order-77")
        )
        await reconciler.reconcile(
            notification("approved", payment_id="222", external_reference="order-77")
        )

        late_111 = await reconciler.reconcile(
            notification("approved", payment_id="111", external_reference="order-77")
        )
        again_222 = await reconciler.reconcile(
            notification("approved", payment_id="222", external_reference="order-77")
        )

        assert late_111.outcome == ReconciliationOutcome.ALREADY_TERMINAL
        assert late_111.new_status == PaymentStatus.FAILED
        assert again_222.outcome == ReconciliationOutcome.ALREADY_TERMINAL
        assert await count_payments(database) == 2
        assert await count_enrollments(database) == 1

    async def test_pending_retry_gets_its_own_record(self, database):
        await seed_payment(database, external_payment_id=None, external_reference="order-77")
        reconciler = PaymentReconciler(database)
        await reconciler.reconcile(
            notification("rejected", payment_id="111", external_reference="order-77")
        )

        in_process = await reconciler.reconcile(
            notification("in_process", payment_id="222", external_reference="order-77")
        )
        approved = await reconciler.reconcile(
            notification("approved", payment_id="222", external_reference="order-77")
        )

        assert in_process.outcome == ReconciliationOutcome.UNCHANGED
        assert approved.payment_id == in_process.payment_id
        assert approved.outcome == ReconciliationOutcome.APPLIED
        assert await count_payments(database) == 2
        assert await count_enrollments(database) == 1

    async def test_concurrent_attempts_on_unbound_checkout(self, database):
        await seed_payment(database, external_payment_id=None, external_reference="order-77")
        reconciler = PaymentReconciler(database)

        results = await asyncio.gather(
            reconciler.reconcile(
                notification("rejected", payment_id="111", external_reference="order-77")
            ),
            reconciler.reconcile(
                notification("approved", payment_id="222", external_reference="order-77")
            ),
        )

        assert [r.outcome for r in results] == [ReconciliationOutcome.APPLIED] * 2
        assert {r.new_status for r in results} == {PaymentStatus.FAILED, PaymentStatus.SUCCEEDED}
        assert len({r.payment_id for r in results}) == 2
        assert await count_payments(database) == 2
        assert await count_enrollments(database) == 1

    async def test_second_approval_for_paid_checkout_does_not_enroll_again(self, database):
        await seed_payment(database, external_payment_id=None, external_reference="order-77")
        reconciler = PaymentReconciler(database)
        await reconciler.reconcile(
            notification("approved", payment_id="111", external_reference="order-77")
        )

        duplicate_charge = await reconciler.reconcile(
            notification("approved", payment_id="222", external_reference="order-77")
        )

        assert duplicate_charge.outcome == ReconciliationOutcome.APPLIED
        assert duplicate_charge.enrollment_created is False
        assert await count_payments(database) == 2
        assert await count_enrollments(database) == 1

    async def test_reference_from_other_gateway_is_not_matched(self, database):
        await seed_payment(
            database,
            gateway=PaymentGateway.STRIPE,
            external_payment_id="pi_1",
            external_reference="order-77",
        )

        with pytest.raises(UnknownPayment):
            await PaymentReconciler(database).reconcile(
                notification("approved", payment_id="222", external_reference="order-77")
            )
        assert await count_payments(database) == 1


class TestOutboundEvent:
    def result(self, outcome, new_status):
        return ReconciliationResult(
            outcome=outcome,
            gateway=PaymentGateway.MERCADOPAGO,
            payment_id="p-1",
            previous_status=PaymentStatus.PENDING,
            new_status=new_status,
            user_id=USER_ID,
            course_id=COURSE_ID,
        )

    def test_applied_transitions_announce_their_outcome(self):
        succeeded = self.result(ReconciliationOutcome.APPLIED, PaymentStatus.SUCCEEDED)
        failed = self.result(ReconciliationOutcome.APPLIED, PaymentStatus.FAILED)

        assert succeeded.outbound_event == OutboundEvent.PAYMENT_SUCCEEDED
        assert failed.outbound_event == OutboundEvent.PAYMENT_FAILED
        assert succeeded.event_data()["gateway"] == "mercadopago"
        assert succeeded.event_data()["payment_id"] == "p-1"

    @pytest.mark.parametrize(
        "outcome", [ReconciliationOutcome.ALREADY_TERMINAL, ReconciliationOutcome.UNCHANGED]
    )
    def test_other_outcomes_are_silent(self, outcome):
        assert self.result(outcome, PaymentStatus.SUCCEEDED).outbound_event is None
