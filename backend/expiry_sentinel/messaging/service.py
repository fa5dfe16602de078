"""Template selection."""

import logging

from sqlalchemy.orm import Session

from .models import ALL_CHANNELS, MessageTemplate

logger = logging.getLogger(__name__)

DEFAULT_REMINDER_TEMPLATE = (
    "🔔 تذكير تلقائي\n\n"
    "📋 العنصر: {{title}}\n"
    "{{#if deadline_label}}🗂 الموعد: {{deadline_label}}\n{{/if}}"
    "🔖 الرقم: {{ref_number}}\n"
    "📁 الفئة: {{category_name}}\n"
    "📅 تاريخ الانتهاء: {{due_date}}\n"
    "⏰ ينتهي: {{remaining_text}}\n\n"
    "يرجى اتخاذ الإجراء اللازم.\n"
    "{{item_url}}"
)


def load_active_templates(db: Session, template_type: str | None = None) -> list[MessageTemplate]:
    query = db.query(MessageTemplate).filter(MessageTemplate.is_active.is_(True))
    if template_type:
        query = query.filter(MessageTemplate.template_type == template_type)
    return query.order_by(MessageTemplate.created_at.asc()).all()


def select_template(
    templates: list[MessageTemplate],
    channel: str,
    template_key: str | None = None,
) -> MessageTemplate | None:
    """Pick the best template for a channel.

    Order: matching template_key, channel default, then the generic
    all-channels default. Non-default templates are only reachable by key.
    """
    own = [t for t in templates if t.channel == channel]
    if template_key:
        for t in own:
            if t.template_key == template_key:
                return t
    for t in own:
        if t.is_default:
            return t
    for t in templates:
        if t.channel == ALL_CHANNELS and t.is_default:
            return t
    return None


def template_text_for(templates: list[MessageTemplate], channel: str) -> str:
    """Reminder template text for a channel, falling back to the built-in one."""
    template = select_template(templates, channel)
    if template is None:
        logger.debug("No active template for channel %s, using built-in reminder", channel)
        return DEFAULT_REMINDER_TEMPLATE
    return template.template_text
