from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from src.config.constants import (
    NotificationStatus,
    OutboundEvent,
    PaymentGateway,
    PaymentStatus,
    ReconciliationOutcome,
)
from src.shared.utils import utcnow


class WebhookRequest(BaseModel):
    """The parts of an inbound HTTP call a gateway provider needs."""

    method: str = "POST"
    path: str
    headers: Dict[str, str] = Field(default_factory=dict)  # lower-cased names
    query_params: Dict[str, str] = Field(default_factory=dict)
    raw_body: bytes = b""

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


class PaymentNotification(BaseModel):
    """
    One authenticated gateway notification, normalized across gateways.

    ``declared_status`` is the gateway's own vocabulary; Mercado Pago only
    fills it after the payment lookup.
    """

    gateway: PaymentGateway
    external_payment_id: str
    external_reference: Optional[str] = None
    declared_status: Optional[str] = None
    notification_id: Optional[str] = None
    event_type: Optional[str] = None
    action: Optional[str] = None
    timestamp: Optional[str] = None
    signature_verified: bool = True
    payload: Dict[str, Any] = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=utcnow)


class ReconciliationResult(BaseModel):
    outcome: ReconciliationOutcome
    gateway: PaymentGateway
    payment_id: str
    previous_status: PaymentStatus
    new_status: PaymentStatus
    enrollment_created: bool = False
    user_id: Optional[str] = None
    course_id: Optional[str] = None

    @property
    def outbound_event(self) -> Optional[OutboundEvent]:
        """Only the delivery that applied the transition announces it."""
        if self.outcome != ReconciliationOutcome.APPLIED:
            return None
        if self.new_status == PaymentStatus.SUCCEEDED:
            return OutboundEvent.PAYMENT_SUCCEEDED
        if self.new_status == PaymentStatus.FAILED:
            return OutboundEvent.PAYMENT_FAILED
        return None

    def event_data(self) -> Dict[str, Any]:
        return {
            "payment_id": self.payment_id,
            "gateway": self.gateway.value,
            "status": self.new_status.value,
            "user_id": self.user_id,
            "course_id": self.course_id,
            "enrollment_created": self.enrollment_created,
        }


class WebhookAcknowledgement(BaseModel):
    success: bool
    status: str


class WebhookNotificationSchema(BaseModel):
    id: int
    gateway: str
    notification_id: Optional[str] = None
    external_payment_id: Optional[str] = None
    external_reference: Optional[str] = None
    declared_status: Optional[str] = None
    payload: Dict[str, Any]
    status: NotificationStatus
    error_message: Optional[str] = None
    flagged_for_review: bool
    created_at: datetime
    processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReplaySummary(BaseModel):
    total: int = 0
    processed: int = 0
    events_dispatched: int = 0
    still_unresolved: int = 0
    failed: int = 0
    notification_ids: List[int] = Field(default_factory=list)
