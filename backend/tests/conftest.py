"""Shared test fixtures."""

import os

# Settings are read at import time; keep tests off real infrastructure.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("INTERNAL_FUNCTION_KEY", "test-internal-key")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "")
os.environ.setdefault("RESEND_API_KEY", "")

import uuid  # noqa: E402
from datetime import UTC, date, datetime  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from expiry_sentinel.automation.models import AutomationRun  # noqa: E402
from expiry_sentinel.catalog.models import Category, Department, Item, ItemDeadline, Recipient, ReminderRule  # noqa: E402
from expiry_sentinel.channels.base import ChannelError  # noqa: E402
from expiry_sentinel.channels.models import InAppNotification  # noqa: E402
from expiry_sentinel.database.base import Base  # noqa: E402
from expiry_sentinel.integrations.cache import NullCacheService  # noqa: E402
from expiry_sentinel.integrations.models import Integration  # noqa: E402
from expiry_sentinel.messaging.models import MessageTemplate  # noqa: E402
from expiry_sentinel.notifications.models import NotificationLog, RateLimit  # noqa: E402

# Models must be imported so Base.metadata.create_all() sees all tables.
_ALL_MODELS = [AutomationRun, InAppNotification, Integration, MessageTemplate, NotificationLog, RateLimit]

# 09:00 in Riyadh on 2026-03-10.
NOW = datetime(2026, 3, 10, 6, 0, tzinfo=UTC)
TODAY = date(2026, 3, 10)


@pytest.fixture
def db_session():
    """Create an in-memory SQLite database for testing.

    Note: SQLite doesn't support all PostgreSQL features (JSONB, UUID),
    but works for basic service logic testing.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestSession = sessionmaker(bind=engine)
    session = TestSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def null_cache():
    """No-op cache for testing."""
    return NullCacheService()


@pytest.fixture
def rule(db_session):
    """Reminder rule firing 7, 3, 1 and 0 days before the due date."""
    r = ReminderRule(id=uuid.uuid4(), name="Standard", days_before=[7, 3, 1, 0], is_active=True)
    db_session.add(r)
    db_session.commit()
    return r


@pytest.fixture
def make_recipient(db_session):
    def _make(name="Ahmed", telegram_id="111", whatsapp_number="0551234567", email=None, user_id=None, is_active=True):
        recipient = Recipient(
            id=uuid.uuid4(),
            name=name,
            telegram_id=telegram_id,
            whatsapp_number=whatsapp_number,
            email=email,
            user_id=user_id,
            is_active=is_active,
        )
        db_session.add(recipient)
        db_session.commit()
        return recipient

    return _make


@pytest.fixture
def make_item(db_session, rule):
    def _make(title="Commercial register", expiry_date=None, recipients=(), reminder_rule=rule, **fields):
        department = Department(id=uuid.uuid4(), name="HR")
        category = Category(id=uuid.uuid4(), name="Licenses", code="LIC")
        item = Item(
            id=uuid.uuid4(),
            title=title,
            ref_number=fields.pop("ref_number", "CR-001"),
            expiry_date=expiry_date or TODAY,
            reminder_rule=reminder_rule,
            department=department,
            category=category,
            **fields,
        )
        item.recipients = list(recipients)
        db_session.add_all([department, category, item])
        db_session.commit()
        return item

    return _make


@pytest.fixture
def make_deadline(db_session):
    def _make(item, label="Insurance", due_date=None, status="active", reminder_rule=None):
        deadline = ItemDeadline(
            id=uuid.uuid4(),
            item=item,
            deadline_label=label,
            deadline_type=label.lower(),
            due_date=due_date or TODAY,
            status=status,
            reminder_rule=reminder_rule,
        )
        db_session.add(deadline)
        db_session.commit()
        return deadline

    return _make


class FakeSender:
    """Records sends; optionally fails every call."""

    def __init__(self, channel, fail=False):
        self.channel = channel
        self.fail = fail
        self.calls = []

    def send(self, address, message, **context):
        self.calls.append({"address": address, "message": message, **context})
        if self.fail:
            raise ChannelError(f"{self.channel} provider down")
        return f"{self.channel}-{len(self.calls)}"


@pytest.fixture
def fake_senders():
    return {"telegram": FakeSender("telegram"), "whatsapp": FakeSender("whatsapp")}
