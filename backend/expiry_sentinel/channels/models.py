"""In-app notification store written by the in-app channel."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, Column, DateTime, String, Text
from sqlalchemy.dialects.postgresql import UUID

from ..database.base import Base


class InAppNotification(Base):
    __tablename__ = "in_app_notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    message = Column(Text, default="")
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(String(64), nullable=True)
    action_url = Column(String(500), nullable=True)
    priority = Column(String(10), default="normal")
    notification_type = Column(String(30), nullable=True)
    source_channel = Column(String(30), default="system")
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
