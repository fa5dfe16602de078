"""Notification history and daily send counters."""

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from ..database.base import Base


class NotificationStatus(str, enum.Enum):
    SENT = "sent"
    FAILED = "failed"
    PENDING = "pending"
    SKIPPED = "skipped"
    RATE_LIMITED = "rate_limited"


# Rows with these statuses stand for a real delivery attempt and block a resend the same day.
ATTEMPT_STATUSES = (NotificationStatus.SENT.value, NotificationStatus.FAILED.value, NotificationStatus.PENDING.value)


class NotificationLog(Base):
    """One row per channel attempt; the deduplication source of truth."""

    __tablename__ = "notification_log"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    item_id = Column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="CASCADE"), nullable=False)
    deadline_id = Column(UUID(as_uuid=True), ForeignKey("item_deadlines.id", ondelete="CASCADE"), nullable=True)
    recipient_id = Column(UUID(as_uuid=True), ForeignKey("recipients.id", ondelete="SET NULL"), nullable=True)
    run_id = Column(UUID(as_uuid=True), ForeignKey("automation_runs.id", ondelete="SET NULL"), nullable=True)
    reminder_day = Column(Integer, nullable=False, default=0)
    channel = Column(String(20), nullable=True)
    status = Column(String(20), nullable=False)
    provider_message_id = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    message_preview = Column(String(500), default="")
    scheduled_for = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    sent_at = Column(DateTime(timezone=True), nullable=True)
    log_date = Column(Date, nullable=False)  # calendar day in the business timezone
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), index=True)

    __table_args__ = (
        Index("idx_notif_dedup", "item_id", "recipient_id", "reminder_day", "log_date"),
    )


# Rate limiting is channel-agnostic: one counter per recipient per day.
RATE_LIMIT_CHANNEL = "all"


class RateLimit(Base):
    __tablename__ = "rate_limits"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    channel = Column(String(20), nullable=False, default=RATE_LIMIT_CHANNEL)
    recipient_id = Column(UUID(as_uuid=True), ForeignKey("recipients.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    count = Column(Integer, nullable=False, default=0)
    last_sent_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (UniqueConstraint("channel", "recipient_id", "date", name="uq_rate_limit_key"),)
