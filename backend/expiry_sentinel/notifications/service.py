"""Deduplication guard, daily rate limiter and notification logging.

The rate limit is channel-agnostic: one counter per recipient per business
day, incremented once per reminder that reached the recipient on at least one
channel. The increment is a single ``INSERT ... ON CONFLICT DO UPDATE`` so
concurrent runs cannot lose updates.
"""

import uuid
from datetime import UTC, date, datetime

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from ..config import settings
from .models import ATTEMPT_STATUSES, RATE_LIMIT_CHANNEL, NotificationLog, NotificationStatus, RateLimit

_PREVIEW_CHARS = 500


def already_notified(
    db: Session,
    item_id: uuid.UUID,
    recipient_id: uuid.UUID,
    reminder_day: int,
    day: date,
    deadline_id: uuid.UUID | None = None,
) -> bool:
    """Check if this reminder was already attempted for the recipient on ``day``."""
    query = db.query(NotificationLog.id).filter(
        NotificationLog.item_id == item_id,
        NotificationLog.recipient_id == recipient_id,
        NotificationLog.reminder_day == reminder_day,
        NotificationLog.log_date == day,
        NotificationLog.status.in_(ATTEMPT_STATUSES),
    )
    if deadline_id is None:
        query = query.filter(NotificationLog.deadline_id.is_(None))
    else:
        query = query.filter(NotificationLog.deadline_id == deadline_id)
    return query.first() is not None


def sends_today(db: Session, recipient_id: uuid.UUID, day: date) -> int:
    row = (
        db.query(RateLimit.count)
        .filter(
            RateLimit.channel == RATE_LIMIT_CHANNEL,
            RateLimit.recipient_id == recipient_id,
            RateLimit.date == day,
        )
        .first()
    )
    return int(row[0] or 0) if row else 0


def is_rate_limited(db: Session, recipient_id: uuid.UUID, day: date, limit: int | None = None) -> bool:
    limit = settings.daily_send_limit if limit is None else limit
    return sends_today(db, recipient_id, day) >= limit


def _dialect_insert(db: Session):
    name = db.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert
    if name == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Atomic rate-limit upsert not supported on dialect {name!r}")


def increment_send_count(db: Session, recipient_id: uuid.UUID, day: date, now: datetime | None = None) -> None:
    """Atomically add one send to the recipient's counter for ``day``."""
    now = now or datetime.now(UTC)
    insert = _dialect_insert(db)
    stmt = insert(RateLimit).values(
        id=uuid.uuid4(),
        channel=RATE_LIMIT_CHANNEL,
        recipient_id=recipient_id,
        date=day,
        count=1,
        last_sent_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["channel", "recipient_id", "date"],
        set_={"count": RateLimit.count + 1, "last_sent_at": now},
    )
    db.execute(stmt)


def log_notification(
    db: Session,
    *,
    item_id: uuid.UUID,
    recipient_id: uuid.UUID | None,
    reminder_day: int,
    status: NotificationStatus,
    log_date: date,
    channel: str | None = None,
    deadline_id: uuid.UUID | None = None,
    run_id: uuid.UUID | None = None,
    provider_message_id: str | None = None,
    error_message: str | None = None,
    message: str = "",
    now: datetime | None = None,
) -> NotificationLog:
    now = now or datetime.now(UTC)
    entry = NotificationLog(
        item_id=item_id,
        deadline_id=deadline_id,
        recipient_id=recipient_id,
        run_id=run_id,
        reminder_day=reminder_day,
        channel=channel,
        status=status.value,
        provider_message_id=provider_message_id or None,
        error_message=error_message,
        message_preview=(message or "")[:_PREVIEW_CHARS],
        scheduled_for=now,
        sent_at=now if status == NotificationStatus.SENT else None,
        log_date=log_date,
        created_at=now,
    )
    db.add(entry)
    return entry
