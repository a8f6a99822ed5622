from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status

from src.api.webhooks.exceptions import (
    ConfigurationError,
    GatewayUnavailable,
    InvalidSignature,
    MalformedNotification,
    PaymentNotFoundAtGateway,
    TransientStorageError,
    UnknownPayment,
)
from src.api.webhooks.models import WebhookAcknowledgement, WebhookRequest
from src.api.webhooks.service import WebhookService
from src.config.constants import PaymentGateway
from src.dependencies.services import get_outbound_dispatcher, get_webhook_service
from src.integrations.outbound_webhooks.dispatcher import OutboundWebhookDispatcher
from src.shared.responses import acknowledgement_response
from src.shared.utils import get_logger

logger = get_logger(__name__)

webhooks_router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


async def _handle_webhook(
    gateway: PaymentGateway,
    request: Request,
    background_tasks: BackgroundTasks,
    service: WebhookService,
    dispatcher: OutboundWebhookDispatcher,
):
    # Raw bytes first: the signature covers exactly what was received
    raw_body = await request.body()
    webhook_request = WebhookRequest(
        method=request.method,
        path=request.url.path,
        headers={k.lower(): v for k, v in request.headers.items()},
        query_params=dict(request.query_params),
        raw_body=raw_body,
    )
    where = f"[{gateway.value}] {request.method} {request.url.path}"

    try:
        result = await service.process(gateway, webhook_request)
    except InvalidSignature as e:
        logger.warning(f"{where} rejected: {e}")
        return acknowledgement_response(False, "invalid_signature", status.HTTP_401_UNAUTHORIZED)
    except ConfigurationError as e:
        logger.critical(f"{where} cannot be processed: {e}")
        return acknowledgement_response(
            False, "configuration_error", status.HTTP_500_INTERNAL_SERVER_ERROR
        )
    except MalformedNotification as e:
        logger.warning(f"{where} malformed notification: {e}")
        return acknowledgement_response(False, "malformed", status.HTTP_400_BAD_REQUEST)
    except UnknownPayment as e:
        logger.warning(f"{where} {e}; acknowledged and logged for review")
        return acknowledgement_response(True, "unresolved")
    except PaymentNotFoundAtGateway:
        return acknowledgement_response(True, "ignored")
    except (GatewayUnavailable, TransientStorageError) as e:
        logger.error(f"{where} transient failure, gateway should retry: {e}")
        return acknowledgement_response(
            False, "retry", status.HTTP_503_SERVICE_UNAVAILABLE
        )
    except Exception as e:
        logger.error(f"{where} unexpected failure: {e}", exc_info=True)
        return acknowledgement_response(
            False, "error", status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    if result is None:
        return acknowledgement_response(True, "ignored")

    if result.outbound_event is not None:
        background_tasks.add_task(
            dispatcher.dispatch, result.outbound_event, result.event_data()
        )

    return acknowledgement_response(True, result.outcome.value)


@webhooks_router.post(
    "/mercadopago",
    response_model=WebhookAcknowledgement,
    summary="Mercado Pago payment notification",
)
async def mercadopago_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    service: Annotated[WebhookService, Depends(get_webhook_service)],
    dispatcher: Annotated[OutboundWebhookDispatcher, Depends(get_outbound_dispatcher)],
):
    return await _handle_webhook(
        PaymentGateway.MERCADOPAGO, request, background_tasks, service, dispatcher
    )


@webhooks_router.post(
    "/stripe",
    response_model=WebhookAcknowledgement,
    summary="Stripe payment event",
)
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    service: Annotated[WebhookService, Depends(get_webhook_service)],
    dispatcher: Annotated[OutboundWebhookDispatcher, Depends(get_outbound_dispatcher)],
):
    return await _handle_webhook(
        PaymentGateway.STRIPE, request, background_tasks, service, dispatcher
    )
