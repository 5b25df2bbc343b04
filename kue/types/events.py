"""
Event type definitions for job and queue observers.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from kue.constants import JobState


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobEvent(BaseModel):
    """
    Event emitted when a job changes.
    Delivered to the job's observers and forwarded to the queue.
    """

    event_type: str
    job_id: str
    job_type: str
    state: JobState
    timestamp: datetime = Field(default_factory=_utcnow)
    data: dict[str, Any] | None = None


class QueueEvent(BaseModel):
    """Event emitted by the queue itself (job creation, worker start)."""

    event_type: str
    job_type: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)
    data: dict[str, Any] | None = None
