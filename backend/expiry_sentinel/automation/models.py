"""Automation run tracking model."""

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID

from ..database.base import Base


class RunStatus(str, enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"


class AutomationRun(Base):
    """One row per dispatch execution, moved from running to a terminal status."""

    __tablename__ = "automation_runs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    job_type = Column(String(50), nullable=False)
    status = Column(String(30), nullable=False, default=RunStatus.RUNNING.value)
    started_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration_ms = Column(Integer, nullable=True)
    items_processed = Column(Integer, default=0)
    items_success = Column(Integer, default=0)
    items_failed = Column(Integer, default=0)
    results = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    run_metadata = Column("metadata", JSON, nullable=True)

    __table_args__ = (Index("idx_runs_job_started", "job_type", "started_at"),)
