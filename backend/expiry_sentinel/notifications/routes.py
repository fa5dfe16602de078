"""Unified notification and rate-limit routes."""


from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..config import settings
from ..database.base import get_db
from ..dependencies import verify_internal_key
from ..rate_limit import limiter
from ..reminders.scheduler import local_today
from .models import RATE_LIMIT_CHANNEL, RateLimit
from .schemas import UnifiedNotificationRequest
from .unified import send_unified_notification

router = APIRouter(tags=["notifications"], dependencies=[Depends(verify_internal_key)])


@router.post("/unified-notification")
@limiter.limit(settings.rate_limit_trigger)
def unified_notification(
    request: Request,
    body: UnifiedNotificationRequest,
    db: Session = Depends(get_db),
):
    if not body.channels:
        return JSONResponse({"success": False, "error": "No channels specified"}, status_code=400)
    return JSONResponse(send_unified_notification(db, body))


@router.get("/rate-limits")
def rate_limits(db: Session = Depends(get_db)):
    """Today's per-recipient send counters."""
    today = local_today()
    rows = (
        db.query(RateLimit)
        .filter(RateLimit.channel == RATE_LIMIT_CHANNEL, RateLimit.date == today)
        .order_by(RateLimit.count.desc())
        .all()
    )
    return {
        "date": today.isoformat(),
        "limit": settings.daily_send_limit,
        "recipients": [
            {
                "recipient_id": str(r.recipient_id),
                "count": r.count,
                "limited": r.count >= settings.daily_send_limit,
                "last_sent_at": r.last_sent_at.isoformat() if r.last_sent_at else None,
            }
            for r in rows
        ],
    }
