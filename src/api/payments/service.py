from typing import List

from src.api.payments.models import (
    CreatePaymentSchema,
    GatewayStatusSchema,
    PaymentSchema,
    PaymentStatusSchema,
)
from src.api.webhooks.providers.factory import WebhookProviderFactory
from src.config.constants import PaymentStatus
from src.database.connection import Database
from src.database.models.payment import Payment
from src.shared.error_handler import ErrorHandler, handle_service_errors
from src.shared.exceptions import ResourceNotFoundException


class PaymentService:
    """
    Checkout records. Payments are created here as ``pending`` and only
    leave that state through webhook reconciliation.
    """

    def __init__(self, database: Database):
        self.database = database
        self._error_handler = ErrorHandler(__name__)

    @handle_service_errors("registering payment")
    async def create_payment(self, payment_data: CreatePaymentSchema) -> PaymentSchema:
        payment = Payment(
            user_id=payment_data.user_id,
            course_id=payment_data.course_id,
            gateway=payment_data.gateway.value,
            external_payment_id=payment_data.external_payment_id,
            external_reference=payment_data.external_reference,
            amount=payment_data.amount,
            currency=payment_data.currency.upper(),
            status=PaymentStatus.PENDING.value,
        )
        async with self.database.session() as session:
            async with session.begin():
                session.add(payment)

        self._error_handler.logger.info(
            f"Payment {payment.id} registered ({payment.gateway}, "
            f"external_id={payment.external_payment_id}, ref={payment.external_reference})"
        )
        return PaymentSchema.model_validate(payment)

    @handle_service_errors("getting payment status")
    async def get_payment_status(self, payment_id: str) -> PaymentStatusSchema:
        async with self.database.session() as session:
            payment = await session.get(Payment, payment_id)
            if payment is None:
                raise ResourceNotFoundException(detail=f"Payment {payment_id} not found")
            return PaymentStatusSchema(
                payment_id=payment.id,
                status=PaymentStatus(payment.status),
                gateway=payment.gateway,
                gateway_status=payment.gateway_status,
                updated_at=payment.updated_at,
            )

    @staticmethod
    def get_gateway_status(providers: WebhookProviderFactory) -> List[GatewayStatusSchema]:
        return [GatewayStatusSchema(**info) for info in providers.describe()]
