"""
Type definitions for the job queue.
Contains the persisted job record, backoff policies and event models.
"""

from kue.types.events import JobEvent, QueueEvent
from kue.types.job import (
    AttemptInfo,
    BackoffPolicy,
    ExponentialBackoff,
    FixedBackoff,
    HandlerOutcome,
    JobRecord,
)

__all__ = [
    # Job types
    "JobRecord",
    "BackoffPolicy",
    "FixedBackoff",
    "ExponentialBackoff",
    "AttemptInfo",
    "HandlerOutcome",
    # Event types
    "JobEvent",
    "QueueEvent",
]
