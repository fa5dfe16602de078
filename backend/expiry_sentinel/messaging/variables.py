"""Canonical template variables for reminder messages."""

from datetime import date
from typing import Any, TypedDict

from ..catalog.models import Item, ItemDeadline, Recipient
from ..config import settings


class TemplateVariables(TypedDict, total=False):
    recipient_name: str
    title: str
    item_title: str
    ref_number: str
    item_code: str
    due_date: str
    expiry_date: str
    days_left: int
    remaining_text: str
    item_url: str
    department_name: str
    category_name: str
    category: str
    notes: str
    creator_note: str
    responsible_person: str
    deadline_label: str
    dynamic_fields: dict[str, Any]


TEMPLATE_VARIABLE_KEYS = frozenset(TemplateVariables.__annotations__)


def remaining_text(days_left: int) -> str:
    """Arabic wording for the time left until the due date."""
    if days_left == 0:
        return "اليوم"
    if days_left == 1:
        return "غداً"
    if days_left < 0:
        return f"متأخر {abs(days_left)} يوم"
    return f"خلال {days_left} يوم"


def item_url(item_id) -> str:
    return f"{settings.app_base_url.rstrip('/')}/items/{item_id}"


def build_reminder_variables(
    item: Item,
    recipient: Recipient,
    due_date: date,
    days_left: int,
    deadline: ItemDeadline | None = None,
) -> TemplateVariables:
    """Build the variable set for one due reminder and recipient."""
    ref = item.ref_number or "-"
    category_name = item.category.name if item.category else "-"
    notes = item.notes or ""
    dynamic = item.dynamic_fields if isinstance(item.dynamic_fields, dict) else {}
    return TemplateVariables(
        recipient_name=recipient.name,
        title=item.title,
        item_title=item.title,
        ref_number=ref,
        item_code=ref,
        due_date=due_date.isoformat(),
        expiry_date=due_date.isoformat(),
        days_left=days_left,
        remaining_text=remaining_text(days_left),
        item_url=item_url(item.id),
        department_name=item.department.name if item.department else "-",
        category_name=category_name,
        category=category_name,
        notes=notes,
        creator_note=notes,
        responsible_person=item.responsible_person or "-",
        deadline_label=deadline.deadline_label if deadline else "",
        dynamic_fields={str(k): v for k, v in dynamic.items()},
    )
