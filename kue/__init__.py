"""
Kue - Redis-backed distributed job queue.

Producers enqueue typed jobs with priority, delay and retry policy; worker
processes compete for them through single-key atomic Redis operations.
"""

__version__ = "1.0.0"
