"""
Retry backoff policies.

A policy is data (`FixedBackoff` or `ExponentialBackoff`); `compute_delay`
turns it into the number of milliseconds to wait before the next attempt.
"""

import logging
import math
from typing import Any

from pydantic import TypeAdapter, ValidationError

from kue.types.job import BackoffPolicy, ExponentialBackoff, FixedBackoff

logger = logging.getLogger(__name__)

_policy_adapter: TypeAdapter[BackoffPolicy] = TypeAdapter(BackoffPolicy)


def fixed(delay: int | None = None) -> FixedBackoff:
    """Build a fixed backoff policy."""
    return FixedBackoff(delay=delay)


def exponential(delay: int | None = None) -> ExponentialBackoff:
    """Build an exponential backoff policy."""
    return ExponentialBackoff(delay=delay)


def compute_delay(
    policy: FixedBackoff | ExponentialBackoff,
    attempt_number: int,
    default_delay: int = 0,
) -> int:
    """
    Milliseconds to wait before retrying.

    Args:
        policy: The backoff policy.
        attempt_number: Zero-based number of the failed attempt.
        default_delay: Delay used when the policy carries none.

    Returns:
        Delay in milliseconds.
    """
    delay = policy.delay if policy.delay is not None else default_delay

    if isinstance(policy, ExponentialBackoff):
        # half-up, not banker's rounding
        return math.floor(delay * 0.5 * (2**attempt_number - 1) + 0.5)
    return delay


def parse_policy(value: Any) -> FixedBackoff | ExponentialBackoff | None:
    """
    Coerce user input into a policy.

    Accepts a policy model, a mapping like {"type": "exponential", "delay": 1000},
    or True (fixed, using the job's own delay). Anything else returns None.
    """
    if value is True:
        return FixedBackoff()
    if isinstance(value, (FixedBackoff, ExponentialBackoff)):
        return value
    try:
        return _policy_adapter.validate_python(value)
    except ValidationError:
        logger.debug("Ignoring malformed backoff policy", extra={"backoff": repr(value)})
        return None
