"""
Outbound Webhook Models

Pydantic schemas for webhook subscriptions and their delivery log
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from src.config.constants import OutboundEvent


class OutboundWebhookCreate(BaseModel):
    """Subscription registered by an administrator"""

    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    url: str = Field(..., min_length=1, max_length=2048, description="Target URL")
    events: List[OutboundEvent] = Field(
        default_factory=lambda: [OutboundEvent.PAYMENT_SUCCEEDED],
        description="Events the endpoint listens to",
    )
    is_active: bool = Field(True, description="Whether deliveries are sent")
    secret_key: Optional[str] = Field(
        None, description="Shared secret used for X-Webhook-Signature"
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return v


class OutboundWebhookUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    url: Optional[str] = Field(None, min_length=1, max_length=2048)
    events: Optional[List[OutboundEvent]] = None
    is_active: Optional[bool] = None
    secret_key: Optional[str] = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return v


class OutboundWebhookSchema(BaseModel):
    """Subscription as returned by the admin API (secret never exposed)"""

    id: str
    name: str
    url: str
    events: List[str]
    is_active: bool
    has_secret: bool = False
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OutboundDeliverySchema(BaseModel):
    id: int
    webhook_id: str
    event_type: str
    payload: Dict[str, Any]
    response_status: Optional[int] = None
    response_body: Optional[str] = None
    error_message: Optional[str] = None
    is_success: bool
    created_at: datetime

    class Config:
        from_attributes = True
