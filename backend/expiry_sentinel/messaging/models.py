"""Message template model."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, Column, DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID

from ..database.base import Base

ALL_CHANNELS = "all"


class MessageTemplate(Base):
    __tablename__ = "message_templates"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), default="")
    channel = Column(String(20), nullable=False, default=ALL_CHANNELS)  # telegram / whatsapp / email / in_app / all
    template_key = Column(String(100), nullable=True)
    template_type = Column(String(50), default="reminder")
    template_text = Column(Text, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    __table_args__ = (Index("idx_templates_channel_active", "channel", "is_active"),)
