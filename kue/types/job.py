"""
Job-related type definitions.

`JobRecord` is the serialization boundary between a `Job` and its Redis hash:
every field is stored as a string, payload fields as JSON.
"""

import json
from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from kue.constants import DEFAULT_MAX_ATTEMPTS, JSON_FIELDS, JobState


class FixedBackoff(BaseModel):
    """Retry after the same delay every time."""

    type: Literal["fixed"] = "fixed"
    delay: int | None = Field(default=None, ge=0)


class ExponentialBackoff(BaseModel):
    """Retry after `delay * 0.5 * (2**n - 1)` milliseconds."""

    type: Literal["exponential"] = "exponential"
    delay: int | None = Field(default=None, ge=0)


BackoffPolicy = Annotated[
    Union[FixedBackoff, ExponentialBackoff],
    Field(discriminator="type"),
]


class JobRecord(BaseModel):
    """
    Persisted fields of a job.

    Timestamps and durations are integer milliseconds.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    priority: int = 0
    progress: int = 0
    state: JobState = JobState.INACTIVE
    backoff: BackoffPolicy | None = None
    error: str | None = None
    timing: int = 0
    delay: int = 0
    promote_at: int = 0
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    created_at: int = 0
    updated_at: int = 0
    failed_at: int | None = None
    duration: int = 0
    worker: str | None = None

    def to_redis(self) -> dict[str, str]:
        """Encode all non-null fields for HSET."""
        mapping = {}
        for name in type(self).model_fields:
            value = getattr(self, name)
            if value is not None:
                mapping[name] = encode_field(name, value)
        return mapping

    @classmethod
    def from_redis(cls, mapping: dict[str, str]) -> "JobRecord":
        """Decode a hash read with HGETALL."""
        decoded: dict[str, Any] = {}
        for name, raw in mapping.items():
            if name not in cls.model_fields:
                continue
            decoded[name] = decode_field(name, raw)
        return cls.model_validate(decoded)


def encode_field(name: str, value: Any) -> str:
    """Encode one job field as a hash value."""
    if name in JSON_FIELDS:
        if isinstance(value, BaseModel):
            return value.model_dump_json()
        return json.dumps(value)
    if isinstance(value, bool):
        return str(int(value))
    return str(value)


def decode_field(name: str, raw: str) -> Any:
    """Decode one hash value back into its field type."""
    if name in JSON_FIELDS:
        return json.loads(raw)
    return raw


@dataclass(frozen=True)
class AttemptInfo:
    """Outcome of consuming one attempt."""

    remaining: int
    attempt_number: int
    max_attempts: int


@dataclass
class HandlerOutcome:
    """
    What a handler reported for one run.

    `error` is whatever the handler passed to `done` or raised.
    """

    error: Any = None
    result: Any = None

    @property
    def success(self) -> bool:
        return self.error is None
