"""
Scheduling strategies.

A strategy decides how "run this job later" is represented in the store.
The queue picks one when it is built (or when compatibility mode is toggled):

- `ScoreDeferral` pushes the job's `timing` into the future. The job stays
  `inactive`; dequeue only sees members scored at or below now, so it becomes
  eligible on its own once the time passes.
- `DelayedState` keeps the literal `delayed` state with `delay`/`promote_at`
  fields and pushes a wake-up marker on `q:<type>:jobs` whenever a job becomes
  inactive. Moving delayed jobs back is left to an external promoter.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from redis.asyncio import Redis

from kue.constants import JobState
from kue.store.keys import KeySchema
from kue.utils import now_ms

if TYPE_CHECKING:
    from kue.jobs.job import Job

# Job fields a strategy may change
SCHEDULED_FIELDS = ("timing", "delay", "promote_at")


class SchedulingStrategy(ABC):
    """How delays and absolute run times are applied to a job."""

    name: str

    @abstractmethod
    def delay(self, job: "Job", delay_ms: int) -> None:
        """Configure the job in memory to run `delay_ms` from now."""

    @abstractmethod
    def schedule(self, job: "Job", when_ms: int) -> None:
        """Configure the job in memory to run at epoch `when_ms`."""

    async def on_state(self, job: "Job", state: JobState) -> None:
        """Hook called after the job has been indexed under `state`."""


class ScoreDeferral(SchedulingStrategy):
    """Defer by score: the job stays inactive with a future timing."""

    name = "score"

    def delay(self, job: "Job", delay_ms: int) -> None:
        self.schedule(job, now_ms() + delay_ms)

    def schedule(self, job: "Job", when_ms: int) -> None:
        job.record.timing = when_ms
        job.record.state = JobState.INACTIVE


class DelayedState(SchedulingStrategy):
    """Compatibility mode: literal `delayed` state plus wake-up markers."""

    name = "original"

    def __init__(self, client: Redis, keys: KeySchema):
        self._client = client
        self._keys = keys

    def delay(self, job: "Job", delay_ms: int) -> None:
        job.record.delay = delay_ms
        job.record.promote_at = now_ms() + delay_ms
        job.record.state = JobState.DELAYED

    def schedule(self, job: "Job", when_ms: int) -> None:
        self.delay(job, max(0, when_ms - now_ms()))

    async def on_state(self, job: "Job", state: JobState) -> None:
        if state == JobState.INACTIVE:
            await self._client.lpush(self._keys.wakeup(job.type), 1)
