"""Tracked items, their deadlines, reminder rules and recipients.

Only the columns the reminder dispatcher reads are modelled here; the admin
screens that edit these tables live elsewhere.
"""

import enum
import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, ForeignKey, Index, String, Table, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from ..database.base import Base

logger = logging.getLogger(__name__)


class ItemStatus(str, enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    ARCHIVED = "archived"


WORKFLOW_FINISHED = "finished"
DEADLINE_ACTIVE = "active"


item_recipients = Table(
    "item_recipients",
    Base.metadata,
    Column("item_id", UUID(as_uuid=True), ForeignKey("items.id", ondelete="CASCADE"), primary_key=True),
    Column("recipient_id", UUID(as_uuid=True), ForeignKey("recipients.id", ondelete="CASCADE"), primary_key=True),
)


class Department(Base):
    __tablename__ = "departments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)


class Category(Base):
    __tablename__ = "categories"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    code = Column(String(50), default="")


class ReminderRule(Base):
    __tablename__ = "reminder_rules"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), default="")
    days_before = Column(JSON, nullable=False, default=list)  # e.g. [7, 3, 1, 0]
    is_active = Column(Boolean, default=True, nullable=False)

    def offsets(self) -> set[int]:
        """Integer day offsets from ``days_before``; malformed entries are skipped."""
        valid = set()
        for value in self.days_before or []:
            try:
                valid.add(int(value))
            except (TypeError, ValueError):
                logger.warning("Reminder rule %s: ignoring invalid days_before entry %r", self.id, value)
        return valid

    def fires_on(self, days_until_due: int) -> bool:
        """Exact-day match: a reminder fires only on a listed offset."""
        if not self.is_active:
            return False
        return days_until_due in self.offsets()


class Recipient(Base):
    __tablename__ = "recipients"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    telegram_id = Column(String(64), nullable=True)
    whatsapp_number = Column(String(32), nullable=True)
    email = Column(String(255), nullable=True)
    user_id = Column(UUID(as_uuid=True), nullable=True)  # in-app target
    is_active = Column(Boolean, default=True, nullable=False)


class Item(Base):
    __tablename__ = "items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(500), nullable=False)
    ref_number = Column(String(100), default="")
    expiry_date = Column(Date, nullable=False)
    status = Column(String(20), default=ItemStatus.ACTIVE.value, nullable=False)
    workflow_status = Column(String(30), nullable=True)
    reminder_rule_id = Column(UUID(as_uuid=True), ForeignKey("reminder_rules.id", ondelete="SET NULL"), nullable=True)
    department_id = Column(UUID(as_uuid=True), ForeignKey("departments.id", ondelete="SET NULL"), nullable=True)
    category_id = Column(UUID(as_uuid=True), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    notes = Column(Text, default="")
    responsible_person = Column(String(255), default="")
    dynamic_fields = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    reminder_rule = relationship("ReminderRule")
    department = relationship("Department")
    category = relationship("Category")
    deadlines = relationship("ItemDeadline", back_populates="item", cascade="all, delete-orphan")
    recipients = relationship("Recipient", secondary=item_recipients)

    __table_args__ = (
        Index("idx_items_status", "status"),
        Index("idx_items_expiry", "expiry_date"),
    )


class ItemDeadline(Base):
    """One of several independent expiry dates on an item (license, insurance...)."""

    __tablename__ = "item_deadlines"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    item_id = Column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True)
    deadline_type = Column(String(50), default="")
    deadline_label = Column(String(255), nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(String(20), default=DEADLINE_ACTIVE, nullable=False)
    reminder_rule_id = Column(UUID(as_uuid=True), ForeignKey("reminder_rules.id", ondelete="SET NULL"), nullable=True)
    last_reminder_sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    item = relationship("Item", back_populates="deadlines")
    reminder_rule = relationship("ReminderRule")
