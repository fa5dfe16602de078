"""Unified notification request schemas."""

import enum
import uuid
from typing import Any

from pydantic import BaseModel, Field


class NotificationType(str, enum.Enum):
    REMINDER = "reminder"
    INVITATION = "invitation"
    ALERT = "alert"
    SYSTEM = "system"


class Channel(str, enum.Enum):
    TELEGRAM = "telegram"
    WHATSAPP = "whatsapp"
    EMAIL = "email"
    IN_APP = "in_app"


class Priority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class RecipientPayload(BaseModel):
    name: str = Field(..., max_length=200)
    recipient_id: uuid.UUID | None = None
    user_id: uuid.UUID | None = None
    phone: str | None = Field(None, max_length=30)
    email: str | None = Field(None, max_length=320)
    telegram_id: str | None = Field(None, max_length=64)


class UnifiedNotificationRequest(BaseModel):
    type: NotificationType = NotificationType.SYSTEM
    channels: list[Channel] = Field(default_factory=list)
    recipient: RecipientPayload
    data: dict[str, Any] = Field(default_factory=dict)
    template_key: str | None = None
    item_id: uuid.UUID | None = None
    priority: Priority = Priority.NORMAL

