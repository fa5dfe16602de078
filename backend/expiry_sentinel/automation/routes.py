"""Automation run history."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database.base import get_db
from ..dependencies import verify_internal_key
from .service import recent_runs, run_to_dict

router = APIRouter(tags=["automation"], dependencies=[Depends(verify_internal_key)])


@router.get("/automation-runs")
def automation_runs(
    limit: int = Query(20, ge=1, le=200),
    job_type: str | None = None,
    db: Session = Depends(get_db),
):
    return {"runs": [run_to_dict(r) for r in recent_runs(db, limit=limit, job_type=job_type)]}
