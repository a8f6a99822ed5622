from typing import Dict, Optional

from src.config.constants import PaymentGateway, PaymentStatus
from src.shared.utils import get_logger

logger = get_logger(__name__)

MERCADOPAGO_STATUS_MAP: Dict[str, PaymentStatus] = {
    "approved": PaymentStatus.SUCCEEDED,
    "authorized": PaymentStatus.SUCCEEDED,
    "rejected": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.FAILED,
    "charged_back": PaymentStatus.FAILED,
    "refunded": PaymentStatus.FAILED,
    "pending": PaymentStatus.PENDING,
    "in_process": PaymentStatus.PENDING,
    "in_mediation": PaymentStatus.PENDING,
}

STRIPE_STATUS_MAP: Dict[str, PaymentStatus] = {
    "succeeded": PaymentStatus.SUCCEEDED,
    "paid": PaymentStatus.SUCCEEDED,
    "no_payment_required": PaymentStatus.SUCCEEDED,
    "payment_failed": PaymentStatus.FAILED,
    "canceled": PaymentStatus.FAILED,
    "expired": PaymentStatus.FAILED,
    "processing": PaymentStatus.PENDING,
    "requires_action": PaymentStatus.PENDING,
    "requires_payment_method": PaymentStatus.PENDING,
    "unpaid": PaymentStatus.PENDING,
}

GATEWAY_STATUS_MAPS: Dict[PaymentGateway, Dict[str, PaymentStatus]] = {
    PaymentGateway.MERCADOPAGO: MERCADOPAGO_STATUS_MAP,
    PaymentGateway.STRIPE: STRIPE_STATUS_MAP,
}


def map_gateway_status(
    gateway: PaymentGateway, declared_status: Optional[str]
) -> Optional[PaymentStatus]:
    """
    Translate a gateway's payment status into the local enumeration.

    Returns None for statuses the gateway table does not know; callers treat
    that like ``pending`` and leave the record alone.
    """
    if not declared_status:
        return None

    mapped = GATEWAY_STATUS_MAPS.get(PaymentGateway(gateway), {}).get(
        declared_status.strip().lower()
    )
    if mapped is None:
        logger.warning(f"Unmapped {gateway} payment status '{declared_status}'")
    return mapped
