"""Automation run bookkeeping."""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import Session

from ..config import settings
from .models import AutomationRun, RunStatus

logger = logging.getLogger(__name__)


def start_run(db: Session, job_type: str, metadata: dict | None = None, now: datetime | None = None) -> AutomationRun:
    """Create a run in ``running`` state and commit it so observers can see it."""
    run = AutomationRun(
        job_type=job_type,
        status=RunStatus.RUNNING.value,
        started_at=now or datetime.now(UTC),
        run_metadata=metadata or {},
    )
    db.add(run)
    db.commit()
    db.refresh(run)
    return run


def finish_run(
    db: Session,
    run: AutomationRun,
    status: RunStatus,
    *,
    duration_ms: int,
    processed: int = 0,
    success: int = 0,
    failed: int = 0,
    results: dict | None = None,
    error_message: str | None = None,
) -> AutomationRun:
    run.status = status.value
    run.completed_at = datetime.now(UTC)
    run.duration_ms = duration_ms
    run.items_processed = processed
    run.items_success = success
    run.items_failed = failed
    run.results = results
    run.error_message = error_message
    db.commit()
    return run


def fail_stale_runs(db: Session, job_type: str, now: datetime | None = None) -> int:
    """Mark runs stuck in ``running`` past the stale threshold as failed."""
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(minutes=settings.stale_run_minutes)
    stale = (
        db.query(AutomationRun)
        .filter(
            AutomationRun.job_type == job_type,
            AutomationRun.status == RunStatus.RUNNING.value,
            AutomationRun.started_at < cutoff,
        )
        .all()
    )
    for run in stale:
        run.status = RunStatus.FAILED.value
        run.completed_at = now
        run.error_message = f"Stale run: still running after {settings.stale_run_minutes} minutes"
        logger.warning("Marked stale %s run %s as failed", job_type, run.id)
    if stale:
        db.commit()
    return len(stale)


def recent_runs(db: Session, limit: int = 20, job_type: str | None = None) -> list[AutomationRun]:
    query = db.query(AutomationRun)
    if job_type:
        query = query.filter(AutomationRun.job_type == job_type)
    return query.order_by(AutomationRun.started_at.desc()).limit(limit).all()


def run_to_dict(run: AutomationRun) -> dict:
    return {
        "id": str(run.id),
        "job_type": run.job_type,
        "status": run.status,
        "started_at": run.started_at.isoformat() if run.started_at else None,
        "completed_at": run.completed_at.isoformat() if run.completed_at else None,
        "duration_ms": run.duration_ms,
        "items_processed": run.items_processed,
        "items_success": run.items_success,
        "items_failed": run.items_failed,
        "results": run.results,
        "error_message": run.error_message,
        "metadata": run.run_metadata,
    }
