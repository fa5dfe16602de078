"""Automated reminder dispatch.

One call of :func:`run_automated_reminders` is one automation run:

1. stale ``running`` rows are failed, a new run row is committed as ``running``
2. the run lease is taken (Redis when available) and renewed per due reminder
3. due reminders are selected for today in the business timezone
4. per recipient: dedup guard -> daily rate limit -> render -> send every
   configured channel independently -> log each attempt -> commit
5. the run row is moved to ``completed``, ``completed_with_errors`` or ``failed``

Side effects are idempotent per calendar day: a second run on the same day
skips every (reminder, recipient) pair that already has an attempt logged.
"""

import logging
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..automation.models import RunStatus
from ..automation.service import fail_stale_runs, finish_run, start_run
from ..catalog.models import Recipient
from ..channels.base import ChannelError, ChannelNotConfigured, ChannelResult, ChannelSender
from ..channels.service import build_senders, recipient_address
from ..config import settings
from ..integrations.cache import CacheService, NullCacheService
from ..integrations.service import load_channel_configs
from ..messaging.models import MessageTemplate
from ..messaging.renderer import render
from ..messaging.service import load_active_templates, template_text_for
from ..messaging.variables import TemplateVariables, build_reminder_variables
from ..notifications.models import NotificationStatus
from ..notifications.service import already_notified, increment_send_count, is_rate_limited, log_notification
from .scheduler import DueReminder, active_recipients, iter_due_reminders, local_today

logger = logging.getLogger(__name__)

JOB_TYPE = "automated_reminders"
LEASE_KEY = "lock:automated-reminders"
MAX_REPORTED_ERRORS = 50


class ReminderRunError(Exception):
    """A run aborted on an unexpected error; the run row is already marked failed."""

    def __init__(self, run_id: uuid.UUID, message: str) -> None:
        super().__init__(message)
        self.run_id = run_id


@dataclass
class RunSummary:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    rate_limited: int = 0
    no_recipients: int = 0
    no_channel: int = 0
    by_channel: dict[str, dict[str, int]] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    cancelled: bool = False
    lease: str | None = None

    def record(self, result: ChannelResult, recipient_name: str) -> None:
        counters = self.by_channel.setdefault(result.channel, {"sent": 0, "failed": 0})
        if result.success:
            self.sent += 1
            counters["sent"] += 1
        else:
            self.failed += 1
            counters["failed"] += 1
            if len(self.errors) < MAX_REPORTED_ERRORS:
                self.errors.append(f"{result.channel} error for {recipient_name}: {result.error}")

    def terminal_status(self) -> RunStatus:
        if self.sent == 0 and self.failed > 0:
            return RunStatus.FAILED
        if self.failed > 0:
            return RunStatus.COMPLETED_WITH_ERRORS
        return RunStatus.COMPLETED

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "processed": self.processed,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "rate_limited": self.rate_limited,
            "no_recipients": self.no_recipients,
            "no_channel": self.no_channel,
            "by_channel": self.by_channel,
            "errors": self.errors,
            "cancelled": self.cancelled,
        }
        if self.lease:
            out["lease"] = self.lease
        return out


@dataclass(frozen=True)
class RunOutcome:
    run_id: uuid.UUID
    status: RunStatus
    timestamp: datetime
    duration_ms: int
    results: dict[str, Any]


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def run_automated_reminders(
    db: Session,
    *,
    now: datetime | None = None,
    cache: CacheService | None = None,
    triggered_by: str | None = None,
    source: str | None = None,
    cancel_event: threading.Event | None = None,
    senders: dict[str, ChannelSender] | None = None,
    channels: list[str] | None = None,
) -> RunOutcome:
    """Run the reminder dispatch once and return its outcome.

    ``now`` defaults to the current time; ``senders`` defaults to senders built
    from the integration configs. Raises :class:`ReminderRunError` on a fatal
    error after marking the run failed.
    """
    started = time.monotonic()
    now = now or datetime.now(UTC)
    today = local_today(now)
    cache = cache or NullCacheService()

    fail_stale_runs(db, JOB_TYPE)
    run = start_run(
        db,
        JOB_TYPE,
        metadata={"triggered_by": triggered_by or "schedule", "source": source, "local_date": today.isoformat()},
    )
    run_id = run.id
    summary = RunSummary()
    logger.info("Automated reminder run %s started (local date %s)", run_id, today)

    token = cache.acquire_lock(LEASE_KEY, settings.run_lease_seconds)
    if token is None:
        summary.lease = "held"
        logger.warning("Run %s skipped: another reminder run holds the lease", run_id)
        finish_run(db, run, RunStatus.COMPLETED, duration_ms=_elapsed_ms(started), results=summary.as_dict())
        return RunOutcome(run_id, RunStatus.COMPLETED, now, _elapsed_ms(started), summary.as_dict())

    try:
        _dispatch(
            db, run_id, today, summary, senders, channels, cancel_event,
            lambda: cache.refresh_lock(LEASE_KEY, token, settings.run_lease_seconds),
        )
    except Exception as exc:
        db.rollback()
        logger.exception("Fatal error in reminder run %s", run_id)
        try:
            finish_run(
                db,
                run,
                RunStatus.FAILED,
                duration_ms=_elapsed_ms(started),
                processed=summary.processed,
                success=summary.sent,
                failed=summary.failed,
                results=summary.as_dict(),
                error_message=str(exc),
            )
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Could not record failure of run %s; it will be failed as stale", run_id)
        raise ReminderRunError(run_id, str(exc)) from exc
    finally:
        cache.release_lock(LEASE_KEY, token)

    status = summary.terminal_status()
    duration_ms = _elapsed_ms(started)
    finish_run(
        db,
        run,
        status,
        duration_ms=duration_ms,
        processed=summary.processed,
        success=summary.sent,
        failed=summary.failed,
        results=summary.as_dict(),
    )
    logger.info(
        "Reminder run %s finished: %s (processed=%d sent=%d failed=%d skipped=%d rate_limited=%d) in %d ms",
        run_id, status.value, summary.processed, summary.sent, summary.failed,
        summary.skipped, summary.rate_limited, duration_ms,
    )
    return RunOutcome(run_id, status, now, duration_ms, summary.as_dict())


def _dispatch(
    db: Session,
    run_id: uuid.UUID,
    today: date,
    summary: RunSummary,
    senders: dict[str, ChannelSender] | None,
    channels: list[str] | None,
    cancel_event: threading.Event | None,
    renew_lease: Callable[[], bool],
) -> None:
    templates = load_active_templates(db, template_type="reminder")
    if senders is None:
        senders = build_senders(load_channel_configs(db), db)
    wanted = channels or settings.reminder_channel_list
    active_channels = [c for c in wanted if c in senders]
    if not active_channels:
        logger.warning("No configured channel among %s; reminders will not be delivered", wanted)

    limited: set[uuid.UUID] = set()
    lease_lost = False
    for due in iter_due_reminders(db, today):
        if cancel_event is not None and cancel_event.is_set():
            summary.cancelled = True
            break
        if not renew_lease() and not lease_lost:
            lease_lost = True
            logger.warning("Run %s lost its lease; continuing, duplicate sends are still guarded per day", run_id)
        summary.processed += 1
        logger.info("Processing %s (%d days until due)", due.label, due.days_until_due)

        recipients = active_recipients(due.item)
        if not recipients:
            summary.no_recipients += 1
            logger.info("No active recipients for %s", due.label)
            continue

        for recipient in recipients:
            if cancel_event is not None and cancel_event.is_set():
                summary.cancelled = True
                break
            _dispatch_to_recipient(
                db, run_id, due, recipient, today, templates, senders, active_channels, summary, limited
            )
        if summary.cancelled:
            break

    if summary.cancelled:
        logger.warning("Reminder run %s cancelled after %d reminders", run_id, summary.processed)


def _dispatch_to_recipient(
    db: Session,
    run_id: uuid.UUID,
    due: DueReminder,
    recipient: Recipient,
    today: date,
    templates: list[MessageTemplate],
    senders: dict[str, ChannelSender],
    channels: list[str],
    summary: RunSummary,
    limited: set[uuid.UUID],
) -> None:
    item = due.item
    if already_notified(db, item.id, recipient.id, due.days_until_due, today, due.deadline_id):
        summary.skipped += 1
        logger.info("Skipping duplicate: %s -> %s (day %d)", due.label, recipient.name, due.days_until_due)
        return

    if recipient.id in limited or is_rate_limited(db, recipient.id, today):
        if recipient.id not in limited:
            limited.add(recipient.id)
            logger.info("Daily limit reached for %s, skipping remaining reminders", recipient.name)
        summary.rate_limited += 1
        log_notification(
            db,
            item_id=item.id,
            deadline_id=due.deadline_id,
            recipient_id=recipient.id,
            run_id=run_id,
            reminder_day=due.days_until_due,
            status=NotificationStatus.RATE_LIMITED,
            log_date=today,
            error_message=f"Daily limit of {settings.daily_send_limit} notifications reached",
        )
        db.commit()
        return

    variables = build_reminder_variables(item, recipient, due.due_date, due.days_until_due, due.deadline)
    results: list[tuple[ChannelResult, str]] = []
    for channel in channels:
        address = recipient_address(channel, recipient)
        if not address:
            continue
        message = render(template_text_for(templates, channel), variables)
        result = _send_one(senders[channel], channel, address, message, variables, item.id)
        if result is not None:
            results.append((result, message))

    if not results:
        summary.no_channel += 1
        logger.info("No reachable channel for %s", recipient.name)
        return

    for result, message in results:
        log_notification(
            db,
            item_id=item.id,
            deadline_id=due.deadline_id,
            recipient_id=recipient.id,
            run_id=run_id,
            reminder_day=due.days_until_due,
            channel=result.channel,
            status=NotificationStatus.SENT if result.success else NotificationStatus.FAILED,
            log_date=today,
            provider_message_id=result.message_id,
            error_message=result.error,
            message=message,
        )
        summary.record(result, recipient.name)

    if any(result.success for result, _ in results):
        increment_send_count(db, recipient.id, today)
        if due.deadline is not None:
            due.deadline.last_reminder_sent_at = datetime.now(UTC)
    db.commit()


def _send_one(
    sender: ChannelSender,
    channel: str,
    address: str,
    message: str,
    variables: TemplateVariables,
    item_id: uuid.UUID,
) -> ChannelResult | None:
    """Send on one channel. Returns None when the channel turns out not to be configured."""
    try:
        message_id = sender.send(
            address,
            message,
            subject=f"تذكير: {variables.get('title', '')}",
            title=variables.get("title"),
            entity_type="item",
            entity_id=item_id,
            action_url=variables.get("item_url"),
            notification_type="reminder",
        )
    except ChannelNotConfigured as exc:
        logger.debug("%s not attempted: %s", channel, exc)
        return None
    except ChannelError as exc:
        logger.warning("%s send to %s failed: %s", channel, address, exc)
        return ChannelResult(channel=channel, success=False, error=str(exc))
    except Exception as exc:
        # One provider blowing up must not stop the other channels.
        logger.exception("Unexpected %s sender error", channel)
        return ChannelResult(channel=channel, success=False, error=str(exc) or type(exc).__name__)
    logger.info("Sent %s reminder to %s", channel, address)
    return ChannelResult(channel=channel, success=True, message_id=message_id)
