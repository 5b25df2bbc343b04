"""
Jobs module.
Contains the job entity, backoff policies and scheduling strategies.
"""

from kue.jobs.backoff import compute_delay, exponential, fixed, parse_policy
from kue.jobs.job import Job, generate_job_id
from kue.jobs.scheduling import DelayedState, SchedulingStrategy, ScoreDeferral

__all__ = [
    "Job",
    "generate_job_id",
    "compute_delay",
    "fixed",
    "exponential",
    "parse_policy",
    "SchedulingStrategy",
    "ScoreDeferral",
    "DelayedState",
]
