from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from .models import EmailStatus, NotificationType


class NotificationPreferenceRead(BaseModel):
    id: str
    user_id: str
    notification_type: NotificationType
    is_enabled: bool
    days_before: Optional[int] = None
    utilization_threshold: Optional[int] = None
    email_address: Optional[str] = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationPreferenceUpdate(BaseModel):
    is_enabled: Optional[bool] = None
    days_before: Optional[int] = Field(default=None, ge=1, le=365)
    utilization_threshold: Optional[int] = Field(default=None, ge=1, le=100)
    email_address: Optional[EmailStr] = None


class EmailLogRead(BaseModel):
    id: str
    created_at: datetime
    sent_at: Optional[datetime] = None
    recipient: str
    subject: str
    template_key: str
    status: EmailStatus
    error: Optional[str] = None
    context_json: Optional[dict] = None
    correlation_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
