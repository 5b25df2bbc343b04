"""
Exceptions raised by the job queue.
"""


class KueError(Exception):
    """Base class for job queue errors."""


class QueueNotCreated(KueError):
    """Raised when the process-wide queue is requested before creation."""
