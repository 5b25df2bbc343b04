"""
Queue module.
Contains the queue and the process-wide queue registry.
"""

from kue.queue.registry import Queue, create_queue, get_queue, reset_queue

__all__ = [
    "Queue",
    "create_queue",
    "get_queue",
    "reset_queue",
]
