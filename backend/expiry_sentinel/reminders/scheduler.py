"""Due-reminder selection.

"Today" is the calendar date in the business timezone (Asia/Riyadh by default,
no DST). It is resolved once per run by :func:`local_today` and passed in,
so a region change only touches the ``TIMEZONE`` setting.
"""

import uuid
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from ..catalog.models import DEADLINE_ACTIVE, WORKFLOW_FINISHED, Item, ItemDeadline, ItemStatus, Recipient, ReminderRule
from ..config import settings


def business_timezone() -> ZoneInfo:
    return ZoneInfo(settings.timezone)


def local_today(now: datetime | None = None) -> date:
    """Calendar date of ``now`` (default: current time) in the business timezone."""
    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(business_timezone()).date()


@dataclass(frozen=True)
class DueReminder:
    item: Item
    due_date: date
    days_until_due: int
    deadline: ItemDeadline | None = None

    @property
    def deadline_id(self) -> uuid.UUID | None:
        return self.deadline.id if self.deadline else None

    @property
    def deadline_label(self) -> str | None:
        return self.deadline.deadline_label if self.deadline else None

    @property
    def label(self) -> str:
        if self.deadline:
            return f"{self.item.title} / {self.deadline.deadline_label}"
        return self.item.title


def days_until(due_date: date, today: date) -> int:
    return (due_date - today).days


def _candidate_items(db: Session) -> list[Item]:
    return (
        db.query(Item)
        .options(
            selectinload(Item.reminder_rule),
            selectinload(Item.deadlines).selectinload(ItemDeadline.reminder_rule),
            selectinload(Item.recipients),
            selectinload(Item.category),
            selectinload(Item.department),
        )
        .filter(
            Item.status == ItemStatus.ACTIVE.value,
            or_(Item.workflow_status.is_(None), Item.workflow_status != WORKFLOW_FINISHED),
        )
        .order_by(Item.expiry_date.asc(), Item.id.asc())
        .all()
    )


def _fires(rule: ReminderRule | None, days_left: int) -> bool:
    return rule is not None and rule.fires_on(days_left)


def iter_due_reminders(db: Session, today: date) -> Iterator[DueReminder]:
    """Yield every reminder that fires on ``today``.

    Items with active deadlines are evaluated per deadline (deadline rule, or
    the item's rule); other items use their own expiry date. Matching is exact:
    a day missed by the job is not caught up later.
    """
    for item in _candidate_items(db):
        deadlines = [d for d in item.deadlines if d.status == DEADLINE_ACTIVE]
        if deadlines:
            for deadline in sorted(deadlines, key=lambda d: (d.due_date, str(d.id))):
                days_left = days_until(deadline.due_date, today)
                if _fires(deadline.reminder_rule or item.reminder_rule, days_left):
                    yield DueReminder(item=item, due_date=deadline.due_date, days_until_due=days_left, deadline=deadline)
            continue

        days_left = days_until(item.expiry_date, today)
        if _fires(item.reminder_rule, days_left):
            yield DueReminder(item=item, due_date=item.expiry_date, days_until_due=days_left)


def active_recipients(item: Item) -> list[Recipient]:
    return [r for r in item.recipients if r.is_active]
