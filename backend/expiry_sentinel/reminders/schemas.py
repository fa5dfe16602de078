"""Reminder trigger schemas."""

from pydantic import BaseModel, Field


class TriggerRequest(BaseModel):
    triggered_by: str | None = Field(None, max_length=100)
    source: str | None = Field(None, max_length=100)
