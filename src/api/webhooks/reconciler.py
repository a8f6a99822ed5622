from typing import Optional, Tuple

from src.api.webhooks.exceptions import UnknownPayment
from src.api.webhooks.models import PaymentNotification, ReconciliationResult
from src.api.webhooks.repository import PaymentRepository
from src.api.webhooks.status_mapping import map_gateway_status
from src.config.constants import (
    EnrollmentSource,
    PaymentGateway,
    PaymentStatus,
    ReconciliationOutcome,
)
from src.database.connection import Database
from src.database.models.payment import Payment
from src.shared.error_handler import ErrorHandler, handle_service_errors


class PaymentReconciler:
    """
    Applies a verified gateway notification to the local payment record.

    A payment leaves ``pending`` at most once. The winner of the conditional
    update is the only caller that grants the enrollment, so duplicate and
    concurrent deliveries never double-enroll or revert a terminal status.

    Each gateway payment has its own record. A checkout registered by
    external reference is bound to the first gateway payment reported for it;
    later payments for the same reference (a retry after a rejected card)
    get a new pending record cloned from the checkout.
    """

    def __init__(self, database: Database):
        self.database = database
        self._error_handler = ErrorHandler(__name__)

    async def _new_attempt(
        self, repo: PaymentRepository, checkout: Payment, notification: PaymentNotification
    ) -> Payment:
        attempt = await repo.insert_attempt_if_absent(checkout, notification.external_payment_id)
        self._error_handler.logger.info(
            f"Payment {attempt.id} tracks gateway payment {notification.external_payment_id} "
            f"for checkout {checkout.id} (reference={checkout.external_reference}, "
            f"checkout status={checkout.status})"
        )
        return attempt

    async def _locate(
        self, repo: PaymentRepository, notification: PaymentNotification
    ) -> Tuple[Optional[Payment], bool]:
        """Returns the payment and whether it still has to be bound to the gateway id."""
        gateway = notification.gateway.value
        payment = await repo.get_by_external_id(gateway, notification.external_payment_id)
        if payment is not None or not notification.external_reference:
            return payment, False

        checkout = await repo.get_by_reference(gateway, notification.external_reference)
        if checkout is None:
            return None, False
        if checkout.external_payment_id is None:
            return checkout, True
        return await self._new_attempt(repo, checkout, notification), False

    @staticmethod
    def _initial_result(payment: Payment, gateway: PaymentGateway) -> ReconciliationResult:
        status = PaymentStatus(payment.status)
        return ReconciliationResult(
            outcome=ReconciliationOutcome.UNCHANGED,
            gateway=gateway,
            payment_id=payment.id,
            previous_status=status,
            new_status=status,
            user_id=payment.user_id,
            course_id=payment.course_id,
        )

    @handle_service_errors("payment reconciliation")
    async def reconcile(self, notification: PaymentNotification) -> ReconciliationResult:
        gateway = notification.gateway.value
        log_context = (
            f"gateway={gateway} payment={notification.external_payment_id} "
            f"ts={notification.timestamp}"
        )

        async with self.database.session() as session:
            async with session.begin():
                repo = PaymentRepository(session)
                payment, unbound = await self._locate(repo, notification)
                if payment is None:
                    self._error_handler.logger.warning(
                        f"Unknown payment in notification ({log_context})"
                    )
                    raise UnknownPayment(gateway, notification.external_payment_id)

                result = self._initial_result(payment, notification.gateway)

                if result.previous_status.is_terminal:
                    self._error_handler.logger.info(
                        f"Payment {payment.id} already {result.previous_status.value}; "
                        f"duplicate notification ignored ({log_context})"
                    )
                    result.outcome = ReconciliationOutcome.ALREADY_TERMINAL
                    return result

                target = map_gateway_status(notification.gateway, notification.declared_status)
                if target is None or not target.is_terminal:
                    self._error_handler.logger.info(
                        f"Payment {payment.id} stays pending "
                        f"(declared '{notification.declared_status}', {log_context})"
                    )
                    return result

                applied = await repo.transition_status(
                    payment.id,
                    target,
                    notification.declared_status,
                    notification.external_payment_id,
                )
                if not applied and unbound:
                    bound_to = await repo.get_external_payment_id(payment.id)
                    if bound_to != notification.external_payment_id:
                        # Another gateway payment for the same checkout bound it first
                        payment = await self._new_attempt(repo, payment, notification)
                        result = self._initial_result(payment, notification.gateway)
                        applied = await repo.transition_status(
                            payment.id,
                            target,
                            notification.declared_status,
                            notification.external_payment_id,
                        )

                if not applied:
                    # Lost the race to a concurrent delivery
                    current = await repo.get_status(payment.id) or result.previous_status
                    self._error_handler.logger.info(
                        f"Payment {payment.id} transitioned concurrently to "
                        f"{current.value} ({log_context})"
                    )
                    result.outcome = ReconciliationOutcome.ALREADY_TERMINAL
                    result.new_status = current
                    return result

                if target == PaymentStatus.SUCCEEDED:
                    result.enrollment_created = await repo.insert_enrollment_if_absent(
                        payment.user_id,
                        payment.course_id,
                        source=EnrollmentSource.PAYMENT,
                        reference=payment.id,
                    )

                result.outcome = ReconciliationOutcome.APPLIED
                result.new_status = target

        self._error_handler.logger.info(
            f"Payment {result.payment_id} {result.previous_status.value} -> "
            f"{result.new_status.value}, enrollment_created={result.enrollment_created} "
            f"({log_context})"
        )
        return result
