from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from src.config.constants import PaymentGateway, PaymentStatus


class CreatePaymentSchema(BaseModel):
    """
    Checkout registered by the platform before the user is sent to the gateway.
    Either the gateway payment id or our own external reference must be given.
    """

    user_id: str = Field(..., min_length=1, max_length=255)
    course_id: str = Field(..., min_length=1, max_length=255)
    gateway: PaymentGateway
    external_payment_id: Optional[str] = Field(None, max_length=255)
    external_reference: Optional[str] = Field(None, max_length=255)
    amount: Optional[Decimal] = Field(None, gt=0, description="Amount charged")
    currency: str = Field("BRL", min_length=3, max_length=3, description="Currency code")

    @model_validator(mode="after")
    def require_identifier(self):
        if not self.external_payment_id and not self.external_reference:
            raise ValueError("external_payment_id or external_reference is required")
        return self


class PaymentSchema(BaseModel):
    id: str
    user_id: str
    course_id: str
    gateway: PaymentGateway
    external_payment_id: Optional[str] = None
    external_reference: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: str
    status: PaymentStatus
    gateway_status: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PaymentStatusSchema(BaseModel):
    payment_id: str
    status: PaymentStatus
    gateway: PaymentGateway
    gateway_status: Optional[str] = None
    updated_at: datetime


class GatewayStatusSchema(BaseModel):
    gateway: PaymentGateway
    configured: bool
    has_webhook_secret: bool
    environment: str
