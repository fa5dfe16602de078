"""Reminder trigger and preview routes."""

import threading
from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..channels.service import CHANNELS, recipient_address
from ..config import settings
from ..database.base import get_db
from ..dependencies import get_cache, get_shutdown_event, verify_internal_key
from ..integrations.cache import CacheService
from ..rate_limit import limiter
from .scheduler import active_recipients, iter_due_reminders, local_today
from .schemas import TriggerRequest
from .service import ReminderRunError, run_automated_reminders

router = APIRouter(tags=["reminders"], dependencies=[Depends(verify_internal_key)])


@router.post("/automated-reminders")
@limiter.limit(settings.rate_limit_trigger)
def automated_reminders(
    request: Request,
    body: TriggerRequest | None = None,
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache),
    shutdown: threading.Event | None = Depends(get_shutdown_event),
):
    """Run the daily reminder dispatch once."""
    body = body or TriggerRequest()
    try:
        outcome = run_automated_reminders(
            db,
            cache=cache,
            triggered_by=body.triggered_by,
            source=body.source,
            cancel_event=shutdown,
        )
    except ReminderRunError as exc:
        return JSONResponse(
            {"success": False, "run_id": str(exc.run_id), "error": str(exc)},
            status_code=500,
        )

    return JSONResponse(
        {
            "success": outcome.status.value != "failed",
            "run_id": str(outcome.run_id),
            "status": outcome.status.value,
            "timestamp": outcome.timestamp.isoformat(),
            "duration_ms": outcome.duration_ms,
            "results": outcome.results,
        }
    )


@router.get("/due-items")
def due_items(
    day: date | None = Query(None, alias="date"),
    db: Session = Depends(get_db),
):
    """Preview the reminders that fire on a date (default: today). No side effects."""
    day = day or local_today()
    items = []
    for due in iter_due_reminders(db, day):
        recipients = active_recipients(due.item)
        items.append(
            {
                "item_id": str(due.item.id),
                "title": due.item.title,
                "ref_number": due.item.ref_number or "",
                "deadline_id": str(due.deadline_id) if due.deadline_id else None,
                "deadline_label": due.deadline_label,
                "due_date": due.due_date.isoformat(),
                "days_left": due.days_until_due,
                "recipients": [
                    {
                        "id": str(r.id),
                        "name": r.name,
                        "channels": [c for c in CHANNELS if recipient_address(c, r)],
                    }
                    for r in recipients
                ],
            }
        )
    return {"date": day.isoformat(), "count": len(items), "items": items}
