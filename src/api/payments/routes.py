from typing import Annotated, List

from fastapi import APIRouter, Depends, status

from src.api.payments.models import (
    CreatePaymentSchema,
    GatewayStatusSchema,
    PaymentSchema,
    PaymentStatusSchema,
)
from src.api.payments.service import PaymentService
from src.api.webhooks.providers.factory import WebhookProviderFactory
from src.database.connection import Database
from src.dependencies.auth import require_external_token
from src.dependencies.services import get_database, get_provider_factory
from src.shared.responses import success_response

payments_router = APIRouter(prefix="/payments", tags=["Payments"])


def get_payment_service(
    database: Annotated[Database, Depends(get_database)],
) -> PaymentService:
    return PaymentService(database)


@payments_router.get(
    "/gateways",
    response_model=List[GatewayStatusSchema],
    summary="Configuration state of each payment gateway",
)
async def get_gateways(
    providers: Annotated[WebhookProviderFactory, Depends(get_provider_factory)],
):
    gateways = PaymentService.get_gateway_status(providers)
    return success_response([g.model_dump(mode="json") for g in gateways])


@payments_router.post(
    "",
    response_model=PaymentSchema,
    summary="Register a pending checkout",
    dependencies=[Depends(require_external_token)],
)
async def create_payment(
    payment_data: CreatePaymentSchema,
    payment_service: Annotated[PaymentService, Depends(get_payment_service)],
):
    """
    Record a checkout before redirecting the user to the gateway, so the
    gateway's notifications can be matched to it.
    """
    payment = await payment_service.create_payment(payment_data)
    return success_response(
        payment.model_dump(mode="json"),
        message="Payment registered",
        status_code=status.HTTP_201_CREATED,
    )


@payments_router.get(
    "/{payment_id}/status",
    response_model=PaymentStatusSchema,
    dependencies=[Depends(require_external_token)],
)
async def get_payment_status(
    payment_id: str,
    payment_service: Annotated[PaymentService, Depends(get_payment_service)],
):
    result = await payment_service.get_payment_status(payment_id)
    return success_response(result.model_dump(mode="json"))
