"""Ad-hoc notification to one recipient over a caller-chosen set of channels."""

import json
import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..channels.base import ChannelError, ChannelNotConfigured, ChannelResult, ChannelSender
from ..channels.service import build_senders
from ..integrations.service import load_channel_configs
from ..messaging.models import ALL_CHANNELS, MessageTemplate
from ..messaging.renderer import render
from ..messaging.service import select_template
from ..reminders.scheduler import local_today
from .models import NotificationStatus
from .schemas import Channel, NotificationType, RecipientPayload, UnifiedNotificationRequest
from .service import log_notification

logger = logging.getLogger(__name__)

DEFAULT_IN_APP_TITLE = "إشعار جديد"


def _address(channel: Channel, recipient: RecipientPayload) -> str | None:
    if channel == Channel.TELEGRAM:
        return recipient.telegram_id or None
    if channel == Channel.WHATSAPP:
        return recipient.phone or None
    if channel == Channel.EMAIL:
        return recipient.email or None
    return str(recipient.user_id) if recipient.user_id else None


def _message_for(templates: list[MessageTemplate], channel: str, template_key: str | None, data: dict) -> str:
    template = select_template(templates, channel, template_key)
    if template is None:
        return json.dumps(data, ensure_ascii=False, default=str)
    return render(template.template_text, data)


def _reminder_day(data: dict[str, Any]) -> int:
    try:
        return int(data.get("days_left") or 0)
    except (TypeError, ValueError):
        return 0


def _context(request: UnifiedNotificationRequest, channel: Channel) -> dict[str, Any]:
    data = request.data
    if channel == Channel.EMAIL:
        return {"subject": data.get("email_subject")}
    if channel == Channel.IN_APP:
        kind = request.type.value
        return {
            "title": data.get("notification_title") or data.get("title") or DEFAULT_IN_APP_TITLE,
            "entity_type": "item" if request.type == NotificationType.REMINDER else kind,
            "entity_id": request.item_id or data.get("entity_id"),
            "action_url": data.get("item_url") or data.get("action_url"),
            "priority": request.priority.value,
            "notification_type": kind,
        }
    return {}


def _send(sender: ChannelSender, channel: str, address: str, message: str, context: dict) -> ChannelResult | None:
    try:
        message_id = sender.send(address, message, **context)
    except ChannelNotConfigured as exc:
        logger.debug("%s not attempted: %s", channel, exc)
        return None
    except ChannelError as exc:
        logger.warning("%s notification to %s failed: %s", channel, address, exc)
        return ChannelResult(channel=channel, success=False, error=str(exc))
    except Exception as exc:
        logger.exception("Unexpected %s sender error", channel)
        return ChannelResult(channel=channel, success=False, error=str(exc) or type(exc).__name__)
    return ChannelResult(channel=channel, success=True, message_id=message_id)


def send_unified_notification(
    db: Session,
    request: UnifiedNotificationRequest,
    senders: dict[str, ChannelSender] | None = None,
) -> dict[str, Any]:
    """Send one notification on every requested channel the recipient can be reached on.

    Channels whose provider is not configured are left out of the results,
    except email, which is reported as a failure when disabled.
    """
    channels = list(dict.fromkeys(request.channels))
    names = [c.value for c in channels]
    templates = (
        db.query(MessageTemplate)
        .filter(MessageTemplate.is_active.is_(True), MessageTemplate.channel.in_([*names, ALL_CHANNELS]))
        .order_by(MessageTemplate.created_at.asc())
        .all()
    )
    if senders is None:
        senders = build_senders(load_channel_configs(db), db)

    message_data = {**request.data, "recipient_name": request.recipient.name}
    results: list[ChannelResult] = []
    for channel in channels:
        address = _address(channel, request.recipient)
        if not address:
            continue
        sender = senders.get(channel.value)
        if sender is None:
            if channel == Channel.EMAIL:
                results.append(ChannelResult(channel="email", success=False, error="Email disabled"))
            continue

        if channel == Channel.IN_APP:
            message = request.data.get("notification_message") or request.data.get("remaining_text") or ""
        else:
            message = _message_for(templates, channel.value, request.template_key, message_data)
        result = _send(sender, channel.value, address, message, _context(request, channel))
        if result is not None:
            results.append(result)
    db.commit()

    if request.item_id and request.recipient.recipient_id and results:
        now = datetime.now(UTC)
        try:
            for result in results:
                log_notification(
                    db,
                    item_id=request.item_id,
                    recipient_id=request.recipient.recipient_id,
                    reminder_day=_reminder_day(request.data),
                    channel=result.channel,
                    status=NotificationStatus.SENT if result.success else NotificationStatus.FAILED,
                    log_date=local_today(now),
                    provider_message_id=result.message_id,
                    error_message=result.error,
                    now=now,
                )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.warning("Failed to log unified notification for item %s", request.item_id, exc_info=True)

    success_count = sum(1 for r in results if r.success)
    logger.info(
        "Unified %s notification to %s: %d/%d channels succeeded",
        request.type.value, request.recipient.name, success_count, len(results),
    )
    return {
        "success": success_count > 0,
        "results": [r.as_dict() for r in results],
        "summary": {"total": len(results), "success": success_count, "failed": len(results) - success_count},
    }
