"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobState(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - INACTIVE -> ACTIVE (claimed by a worker)
    - ACTIVE -> COMPLETE (handler succeeded)
    - ACTIVE -> INACTIVE (retry, immediately or with a deferred score)
    - ACTIVE -> DELAYED (retry with backoff, compatibility mode)
    - ACTIVE -> FAILED (no attempts left)
    """

    INACTIVE = "inactive"
    ACTIVE = "active"
    COMPLETE = "complete"
    FAILED = "failed"
    DELAYED = "delayed"


class JobPriority(StrEnum):
    """Named priority levels."""

    LOW = "low"
    NORMAL = "normal"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Score offsets added to a job's timing
PRIORITY_OFFSETS: dict[JobPriority, int] = {
    JobPriority.LOW: 10,
    JobPriority.NORMAL: 0,
    JobPriority.MEDIUM: -5,
    JobPriority.HIGH: -10,
    JobPriority.CRITICAL: -15,
}

# Default values
DEFAULT_KEY_PREFIX = "q"
DEFAULT_MAX_ATTEMPTS = 1
DEFAULT_POLL_INTERVAL_SECONDS = 1.0
WILDCARD_JOB_TYPE = "*"

# Settings stored in the q:settings hash
SETTING_POLL_INTERVAL = "poll_interval"

# Job fields holding JSON payloads in the job hash
JSON_FIELDS = frozenset({"data", "result", "backoff"})

# Metrics names
METRIC_QUEUE_DEPTH = "kue_queue_depth"
METRIC_JOBS_CREATED = "kue_jobs_created_total"
METRIC_JOBS_FINISHED = "kue_jobs_finished_total"
METRIC_JOB_DURATION = "kue_job_duration_seconds"
METRIC_DEQUEUE = "kue_dequeue_total"

# Trace span names
SPAN_EXECUTE_JOB = "execute_job"
SPAN_DEQUEUE = "dequeue"

# Job event names (state names are emitted as events too)
EVENT_CREATE = "create"
EVENT_UPDATE = "update"
EVENT_SAVE = "save"
EVENT_LOG = "log"
EVENT_ERROR = "error"
EVENT_PROGRESS = "progress"
EVENT_REMOVE = "remove"

# Queue event names
EVENT_PROCESS = "process"
