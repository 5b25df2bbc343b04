"""
Queue: the entry point producers and workers share.

A queue binds one Redis client, the key schema, the handler registry, the
event registries and the scheduling strategy. Jobs and workers built from a
queue share its client.

`create_queue` keeps one queue per process: the first call builds it from the
settings it is given and later calls return that same instance.
"""

import logging
from collections.abc import Callable
from typing import Any

from redis.asyncio import Redis

from kue.config import Settings, get_settings
from kue.constants import EVENT_CREATE, EVENT_PROCESS, JobState
from kue.events import EventRegistry
from kue.exceptions import QueueNotCreated
from kue.jobs.job import Job
from kue.jobs.scheduling import DelayedState, SchedulingStrategy, ScoreDeferral
from kue.observability.metrics import get_metrics
from kue.store.connection import close_client, create_client
from kue.store.keys import KeySchema
from kue.types.events import JobEvent, QueueEvent
from kue.worker.handlers import HandlerRegistry, JobHandler

logger = logging.getLogger(__name__)

# Process-wide queue instance
_queue: "Queue | None" = None


class Queue:
    """
    Job factory, aggregate views over the store, and worker launcher.
    """

    def __init__(
        self,
        client: Redis | None = None,
        settings: Settings | None = None,
    ):
        """
        Initialize the queue.

        Args:
            client: Redis client to use. Built from settings when omitted.
            settings: Settings to use. Defaults to the cached settings.
        """
        self.settings = settings or get_settings()
        self.client = client or create_client(self.settings)
        self.keys = KeySchema(self.settings.key_prefix)

        self.handlers = HandlerRegistry()
        self.events: EventRegistry[QueueEvent] = EventRegistry()
        self.job_events: EventRegistry[JobEvent] = EventRegistry()

        self.scheduling: SchedulingStrategy = self._build_scheduling(self.settings.original_mode)

    def _build_scheduling(self, original: bool) -> SchedulingStrategy:
        if original:
            return DelayedState(self.client, self.keys)
        return ScoreDeferral()

    def original_mode(self, use: bool | None = None) -> bool:
        """
        Get or set compatibility mode.

        In compatibility mode delays put jobs in the literal `delayed` state
        and inactive jobs push a wake-up marker on `q:<type>:jobs`.

        Args:
            use: New value, or None to only read it.

        Returns:
            Whether compatibility mode is on.
        """
        if use is not None:
            self.scheduling = self._build_scheduling(use)
            logger.info("Scheduling strategy selected", extra={"strategy": self.scheduling.name})
        return isinstance(self.scheduling, DelayedState)

    def create(self, job_type: str, data: dict[str, Any] | None = None) -> Job:
        """
        Build a new, unsaved job.

        Args:
            job_type: Handler routing key.
            data: Job payload.

        Returns:
            The Job. Call `save()` to enqueue it.
        """
        job = Job(self, job_type, data)

        self.events.emit(QueueEvent(event_type=EVENT_CREATE, job_type=job_type, data={"job_id": job.id}))
        job.emit(EVENT_CREATE)
        get_metrics().record_job_created(job_type)

        return job

    async def get(self, job_id: str) -> Job | None:
        """Load a job by id, or None if it does not exist."""
        return await Job.load(self, job_id)

    async def process(
        self,
        job_type: str | Callable | None = None,
        handler: JobHandler | None = None,
    ) -> None:
        """
        Register a handler and run a worker for it.

        Does not return while the worker runs.

        Args:
            job_type: Job type to process, or None for all types. A callable
                here is taken as the handler for all types.
            handler: The handler function.
        """
        from kue.worker.main import Worker

        if callable(job_type) and handler is None:
            job_type, handler = None, job_type

        if handler is not None:
            self.handlers.register(job_type, handler)

        self.events.emit(QueueEvent(event_type=EVENT_PROCESS, job_type=job_type))

        worker = Worker(self, job_type)
        await worker.start()

    async def setting(self, name: str, value: Any = None) -> Any:
        """
        Get or set an operator setting.

        Args:
            name: Setting name.
            value: New value, or None to read.

        Returns:
            The stored value (None when unset), or the value just written.
        """
        if value is None:
            return await self.client.hget(self.keys.settings(), name)

        await self.client.hset(self.keys.settings(), name, value)
        return value

    async def types(self) -> list[str]:
        """All job types ever saved."""
        return sorted(await self.client.smembers(self.keys.types()))

    async def state(self, state: JobState | str) -> list[str]:
        """Ids of the jobs indexed under a state, lowest score first."""
        return await self.client.zrange(self.keys.state(JobState(state)), 0, -1)

    async def card(self, state: JobState | str) -> int:
        """Number of jobs indexed under a state."""
        count = await self.client.zcard(self.keys.state(JobState(state)))
        get_metrics().update_queue_depth(str(JobState(state)), count)
        return count

    async def complete(self) -> list[str]:
        return await self.state(JobState.COMPLETE)

    async def failed(self) -> list[str]:
        return await self.state(JobState.FAILED)

    async def inactive(self) -> list[str]:
        return await self.state(JobState.INACTIVE)

    async def active(self) -> list[str]:
        return await self.state(JobState.ACTIVE)

    async def delayed(self) -> list[str]:
        return await self.state(JobState.DELAYED)

    async def close(self) -> None:
        """Close the Redis client."""
        await close_client(self.client)


def create_queue(
    settings: Settings | None = None,
    client: Redis | None = None,
) -> Queue:
    """
    Get or create the process-wide queue.

    The first call wins; arguments to later calls are ignored.

    Args:
        settings: Settings for the queue.
        client: Redis client for the queue.

    Returns:
        Queue: The shared queue.
    """
    global _queue
    if _queue is None:
        _queue = Queue(client=client, settings=settings)
        logger.info(
            "Queue created",
            extra={"key_prefix": _queue.keys.prefix, "original_mode": _queue.original_mode()},
        )
    return _queue


def get_queue() -> Queue:
    """
    Get the process-wide queue.

    Raises:
        QueueNotCreated: If `create_queue` has not been called.
    """
    if _queue is None:
        raise QueueNotCreated("create_queue() must be called first")
    return _queue


def reset_queue() -> None:
    """Forget the process-wide queue (tests)."""
    global _queue
    _queue = None
