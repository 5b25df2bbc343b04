"""
Job entity: one unit of work, its state machine and its Redis record.

A `Job` is owned by whoever holds it; Redis is the shared record. Field
writes go straight to the job hash one at a time, so several writes are
never atomic together. Each state change re-indexes the job in three sorted
sets (all jobs, jobs by state, jobs by type and state) scored by
`timing + priority`, removing the previous state's memberships first.
"""

import hashlib
import inspect
import logging
import traceback
from collections.abc import Callable
from functools import lru_cache
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from pydantic import TypeAdapter

from kue.constants import (
    EVENT_ERROR,
    EVENT_LOG,
    EVENT_PROGRESS,
    EVENT_REMOVE,
    EVENT_SAVE,
    EVENT_UPDATE,
    PRIORITY_OFFSETS,
    JobPriority,
    JobState,
)
from kue.events import EventRegistry
from kue.jobs.backoff import compute_delay, parse_policy
from kue.jobs.scheduling import SCHEDULED_FIELDS
from kue.types.events import JobEvent
from kue.types.job import AttemptInfo, JobRecord, decode_field, encode_field
from kue.utils import now_ms, to_epoch_ms

if TYPE_CHECKING:
    from kue.queue.registry import Queue

logger = logging.getLogger(__name__)


@lru_cache
def _field_adapter(name: str) -> TypeAdapter:
    return TypeAdapter(JobRecord.model_fields[name].annotation)


def generate_job_id() -> str:
    """Opaque, globally unique job id."""
    return hashlib.sha1(uuid4().bytes).hexdigest()


class Job:
    """
    A job and the operations that advance it.

    Configure a new job with the fluent `with_*` methods, then `save()` it.
    Workers drive the rest of the lifecycle through `active()`, `complete()`,
    `attempt()` and `reattempt()`.
    """

    def __init__(
        self,
        queue: "Queue",
        job_type: str,
        data: dict[str, Any] | None = None,
        record: JobRecord | None = None,
    ):
        """
        Initialize a job.

        Args:
            queue: The queue whose client, key schema and scheduling are used.
            job_type: Handler routing key.
            data: Job payload.
            record: Existing record (used by `load`). A new one is built if absent.
        """
        self.queue = queue
        self.client = queue.client
        self.keys = queue.keys
        self.events: EventRegistry[JobEvent] = EventRegistry()

        if record is None:
            record = JobRecord(
                id=generate_job_id(),
                type=job_type,
                data=data or {},
                created_at=now_ms(),
                max_attempts=queue.settings.default_max_attempts,
            )
            self._indexed_state: JobState | None = None
        else:
            self._indexed_state = record.state

        self.record = record

    def __repr__(self) -> str:
        return f"<Job {self.id} type={self.type} state={self.state.value}>"

    @classmethod
    async def load(cls, queue: "Queue", job_id: str) -> "Job | None":
        """
        Rebuild a job from its hash.

        Args:
            queue: The queue to bind the job to.
            job_id: The job id.

        Returns:
            The Job, or None if no record exists.
        """
        mapping = await queue.client.hgetall(queue.keys.job(job_id))
        if not mapping or "type" not in mapping:
            return None

        mapping.setdefault("id", job_id)
        record = JobRecord.from_redis(mapping)
        return cls(queue, record.type, record=record)

    # ------------------------------------------------------------------
    # Read views
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def type(self) -> str:
        return self.record.type

    @property
    def data(self) -> dict[str, Any]:
        return self.record.data

    @property
    def state(self) -> JobState:
        return self.record.state

    @property
    def result(self) -> Any:
        return self.record.result

    @property
    def error(self) -> str | None:
        return self.record.error

    @property
    def score(self) -> int:
        """Ready-time score used in every sorted-set index."""
        return self.record.timing + self.record.priority

    # ------------------------------------------------------------------
    # Configuration, in memory until saved
    # ------------------------------------------------------------------

    def with_priority(self, level: int | str) -> "Job":
        """
        Set the priority offset.

        Named levels map through the priority table; numbers are used as is.
        Unknown names leave the priority unchanged.
        """
        if isinstance(level, (int, float)) and not isinstance(level, bool):
            self.record.priority = int(level)
        elif isinstance(level, str) and level.lstrip("+-").isdigit():
            self.record.priority = int(level)
        else:
            try:
                self.record.priority = PRIORITY_OFFSETS[JobPriority(level)]
            except (ValueError, TypeError):
                logger.debug(
                    "Ignoring unknown priority",
                    extra={"job_id": self.id, "priority": repr(level)},
                )
        return self

    def with_attempts(self, max_attempts: int) -> "Job":
        """Set how many attempts the job gets."""
        self.record.max_attempts = max_attempts
        return self

    def with_backoff(self, policy: Any) -> "Job":
        """Set the retry backoff policy. Malformed policies are ignored."""
        parsed = parse_policy(policy)
        if parsed is not None:
            self.record.backoff = parsed
        return self

    def with_delay(self, delay_ms: int) -> "Job":
        """Make the job eligible `delay_ms` milliseconds from now."""
        self.queue.scheduling.delay(self, int(delay_ms))
        return self

    def at(self, when: Any) -> "Job":
        """
        Make the job eligible at an absolute time.

        Accepts a datetime, epoch seconds or an ISO-8601 string. Naive
        datetimes and strings without an offset are read as UTC, not local
        time; pass an aware datetime or an explicit offset for wall-clock times.
        """
        self.queue.scheduling.schedule(self, to_epoch_ms(when))
        return self

    # ------------------------------------------------------------------
    # Field access
    # ------------------------------------------------------------------

    async def get(self, field: str) -> Any:
        """Read one field from the store, decoded to its field type."""
        raw = await self.client.hget(self.keys.job(self.id), field)
        if raw is None:
            return None
        value = decode_field(field, raw)
        if field in JobRecord.model_fields:
            return _field_adapter(field).validate_python(value)
        return value

    async def set(self, field: str, value: Any) -> "Job":
        """Update one field in memory and in the store."""
        if field in JobRecord.model_fields:
            setattr(self.record, field, value)

        key = self.keys.job(self.id)
        if value is None:
            await self.client.hdel(key, field)
        else:
            await self.client.hset(key, field, encode_field(field, value))
        return self

    async def set_progress(self, progress: float) -> "Job":
        """
        Record progress.

        Values below 1 are fractions; the stored value is an integer
        percentage capped at 100.
        """
        value = progress * 100 if progress < 1 else progress
        value = int(max(0, min(100, value)))

        await self.set("progress", value)
        await self.set("updated_at", now_ms())
        self.emit(EVENT_PROGRESS, progress=value)
        return self

    async def set_error(self, error: BaseException | str) -> "Job":
        """Record the last failure and stamp `failed_at`."""
        self.emit(EVENT_ERROR, error=str(error))

        if isinstance(error, BaseException):
            message = f"{error}\n{type(error).__name__}\n"
            message += "".join(traceback.format_exception(error))
        else:
            message = str(error)

        await self.set("error", message)
        await self.set("failed_at", now_ms())
        return self

    # ------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------

    async def attempt(
        self,
        fn: Callable[[int, int, int], Any] | None = None,
    ) -> AttemptInfo:
        """
        Consume one attempt.

        The counter is incremented with HINCRBY so concurrent workers never
        see the same value.

        Args:
            fn: Optional callback receiving (remaining, attempt_number, max_attempts).

        Returns:
            AttemptInfo for the consumed attempt.
        """
        max_attempts = self.record.max_attempts
        attempts = await self.client.hincrby(self.keys.job(self.id), "attempts", 1)
        self.record.attempts = attempts

        info = AttemptInfo(
            remaining=max(0, max_attempts - attempts + 1),
            attempt_number=attempts - 1,
            max_attempts=max_attempts,
        )

        if fn is not None:
            outcome = fn(info.remaining, info.attempt_number, info.max_attempts)
            if inspect.isawaitable(outcome):
                await outcome

        return info

    async def reattempt(self, remaining: int, attempt_number: int) -> "Job":
        """
        Decide what happens after a failed attempt.

        No attempts left fails the job. Otherwise the job is retried, right
        away without a backoff policy, or after the policy's delay.
        """
        if remaining <= 0:
            return await self.failed()

        backoff = self.record.backoff
        if backoff is None:
            return await self.inactive()

        delay = compute_delay(backoff, attempt_number, default_delay=self.record.delay)
        self.queue.scheduling.delay(self, delay)
        for field in SCHEDULED_FIELDS:
            await self.set(field, getattr(self.record, field))

        logger.info(
            "Job retry deferred",
            extra={"job_id": self.id, "delay_ms": delay, "attempt": attempt_number},
        )
        return await self.set_state(self.record.state)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def set_state(self, state: JobState | str) -> "Job":
        """Move the job to `state` and re-index it."""
        state = JobState(state)

        await self.remove_state()

        score = self.score
        await self.set("state", state)
        for key in self.keys.index_keys(self.type, state):
            await self.client.zadd(key, {self.id: score})
        self._indexed_state = state

        await self.queue.scheduling.on_state(self, state)
        await self.set("updated_at", now_ms())

        self.emit(state.value)
        return self

    async def complete(self, result: Any = None) -> "Job":
        """Mark the job complete, storing its result."""
        if result is not None:
            await self.set("result", result)
        await self.set("progress", 100)
        return await self.set_state(JobState.COMPLETE)

    async def failed(self) -> "Job":
        return await self.set_state(JobState.FAILED)

    async def inactive(self) -> "Job":
        return await self.set_state(JobState.INACTIVE)

    async def active(self) -> "Job":
        return await self.set_state(JobState.ACTIVE)

    async def delayed(self) -> "Job":
        return await self.set_state(JobState.DELAYED)

    async def remove_state(self) -> "Job":
        """Drop the job from the sorted sets of its current state."""
        states = {self.record.state, self._indexed_state} - {None}
        for state in states:
            for key in self.keys.index_keys(self.type, state):
                await self.client.zrem(key, self.id)
        self._indexed_state = None
        return self

    async def remove(self) -> "Job":
        """Erase the job: index memberships, hash and log."""
        await self.remove_state()
        await self.client.delete(self.keys.job(self.id), self.keys.job_log(self.id))
        self.emit(EVENT_REMOVE)
        return self

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def update(self) -> "Job":
        """Write every field and re-apply the current state."""
        self.emit(EVENT_UPDATE)
        self.record.updated_at = now_ms()

        await self.client.hset(self.keys.job(self.id), mapping=self.record.to_redis())
        return await self.set_state(self.record.state)

    async def save(self) -> "Job":
        """Persist the job and register its type."""
        self.emit(EVENT_SAVE)
        await self.update()
        await self.client.sadd(self.keys.types(), self.type)
        return self

    async def log(self, message: str) -> "Job":
        """Append a line to the job's log."""
        self.emit(EVENT_LOG, message=message)
        await self.client.rpush(self.keys.job_log(self.id), message)
        await self.set("updated_at", now_ms())
        return self

    async def logs(self) -> list[str]:
        """All log lines, oldest first."""
        return await self.client.lrange(self.keys.job_log(self.id), 0, -1)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def emit(self, event_type: str, **data: Any) -> None:
        """Notify job observers, then queue-level job observers."""
        event = JobEvent(
            event_type=event_type,
            job_id=self.id,
            job_type=self.type,
            state=self.state,
            data=data or None,
        )
        self.events.emit(event)
        self.queue.job_events.emit(event)
