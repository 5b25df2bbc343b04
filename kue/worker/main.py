"""
Worker process for executing jobs.

The worker polls the inactive index, claims one job at a time with the
select-then-remove protocol, runs its handler and applies the retry policy
on failure. Workers only coordinate through Redis; run more processes to
scale out.
"""

import asyncio
import importlib
import logging
import os
import signal
import socket

from kue.config import get_settings
from kue.constants import SETTING_POLL_INTERVAL, SPAN_DEQUEUE, SPAN_EXECUTE_JOB, JobState
from kue.jobs.job import Job
from kue.observability.logging import bind_context, clear_context, setup_logging
from kue.observability.metrics import get_metrics, setup_metrics
from kue.observability.tracing import create_span, setup_tracing
from kue.queue.registry import Queue, create_queue
from kue.utils import now_ms

logger = logging.getLogger(__name__)


def build_worker_id(job_type: str | None = None) -> str:
    """Worker id: "<host>:<pid>", plus ":<type>" for filtered workers."""
    worker_id = f"{socket.gethostname()}:{os.getpid()}"
    if job_type:
        worker_id += f":{job_type}"
    return worker_id


class Worker:
    """
    Job worker that polls for and executes jobs.

    Features:
    - Race-safe claim: ZREVRANGEBYSCORE then ZREM, losing the ZREM means another
      worker has the job
    - One job in flight at a time
    - Retry with optional backoff, terminal failure when attempts run out
    - Graceful shutdown on SIGTERM/SIGINT
    """

    def __init__(
        self,
        queue: Queue,
        job_type: str | None = None,
        worker_id: str | None = None,
        poll_interval: float | None = None,
    ):
        """
        Initialize the worker.

        Args:
            queue: The queue to work for.
            job_type: Only process jobs of this type. None processes all types.
            worker_id: Worker identifier. Defaults to host:pid[:type].
            poll_interval: Seconds between polls when no job is ready. Defaults
                to the "poll_interval" queue setting, then to configuration.
        """
        settings = queue.settings

        self.queue = queue
        self.job_type = job_type
        self.client = queue.client
        self.id = worker_id or settings.worker_id or build_worker_id(job_type)

        self._poll_interval_fixed = poll_interval is not None
        self.poll_interval = poll_interval if poll_interval is not None else settings.worker_poll_interval_seconds

        self._running = False
        self._metrics = get_metrics()

    @property
    def inactive_key(self) -> str:
        """Sorted set this worker claims from."""
        if self.job_type:
            return self.queue.keys.type_state(self.job_type, JobState.INACTIVE)
        return self.queue.keys.state(JobState.INACTIVE)

    async def start(self) -> None:
        """Start the worker loop. Returns once `stop()` has been called."""
        await self._load_poll_interval()

        logger.info(
            "Worker starting",
            extra={"worker_id": self.id, "job_type": self.job_type, "poll_interval": self.poll_interval}
        )

        self._running = True

        while self._running:
            try:
                processed = await self.run_once()

                if not processed:
                    await asyncio.sleep(self.poll_interval)

            except Exception as e:
                logger.exception(
                    f"Error in worker loop: {e}",
                    extra={"worker_id": self.id}
                )
                await asyncio.sleep(self.poll_interval)

        logger.info("Worker stopped", extra={"worker_id": self.id})

    async def stop(self) -> None:
        """Stop the worker after the job in flight, if any."""
        logger.info("Worker stopping", extra={"worker_id": self.id})
        self._running = False

    async def _load_poll_interval(self) -> None:
        if self._poll_interval_fixed:
            return

        stored = await self.queue.setting(SETTING_POLL_INTERVAL)
        if stored is None:
            return
        try:
            self.poll_interval = float(stored)
        except ValueError:
            logger.debug("Ignoring invalid poll_interval setting", extra={"value": stored})

    async def run_once(self) -> bool:
        """
        Claim and process at most one job.

        Returns:
            True if a job was processed.
        """
        job = await self.get_job()
        if job is None:
            return False

        bind_context(job_id=job.id, job_type=job.type, worker_id=self.id)
        try:
            await self.process(job)
        finally:
            clear_context()
        return True

    async def pop(self, key: str) -> str | None:
        """
        Claim the highest-scored member of `key` that is ready now.

        The select and the remove are separate commands. Only the worker
        whose ZREM removes the member owns it; the others report no job for
        this poll.

        Args:
            key: Sorted set to claim from.

        Returns:
            The claimed job id, or None.
        """
        with create_span(SPAN_DEQUEUE, worker_id=self.id, key=key):
            ids = await self.client.zrevrangebyscore(key, now_ms(), "-inf", start=0, num=1)
            if not ids:
                self._metrics.record_dequeue(self.id, "empty")
                return None

            job_id = ids[0]
            if not await self.client.zrem(key, job_id):
                logger.debug("Lost dequeue race", extra={"worker_id": self.id, "job_id": job_id})
                self._metrics.record_dequeue(self.id, "lost_race")
                return None

        self._metrics.record_dequeue(self.id, "claimed")
        return job_id

    async def get_job(self) -> Job | None:
        """Claim and load the next ready job."""
        job_id = await self.pop(self.inactive_key)
        if job_id is None:
            return None

        job = await Job.load(self.queue, job_id)
        if job is None:
            logger.warning(
                "Claimed job has no record",
                extra={"worker_id": self.id, "job_id": job_id}
            )
        return job

    async def process(self, job: Job) -> None:
        """
        Execute a claimed job.

        Handles the full lifecycle:
        1. Mark ACTIVE and stamp the worker id
        2. Run the handler
        3. Complete, or record the error and apply the retry policy

        Args:
            job: The job to execute.
        """
        start = now_ms()

        await job.active()
        await job.set("worker", self.id)

        logger.info(
            "Executing job",
            extra={"job_id": job.id, "job_type": job.type, "worker_id": self.id}
        )

        with create_span(SPAN_EXECUTE_JOB, job_id=job.id, job_type=job.type, worker_id=self.id):
            outcome = await self.queue.handlers.execute(job)

        duration = now_ms() - start

        if outcome.success and job.state != JobState.FAILED:
            await job.complete(outcome.result)
            await job.set("duration", duration)

            logger.info(
                "Job completed successfully",
                extra={"job_id": job.id, "duration_ms": duration}
            )
            self._metrics.record_job_finished(job.type, "complete", duration / 1000)
            return

        await self.failed(job, outcome.error)
        status = "failed" if job.state == JobState.FAILED else "retried"
        self._metrics.record_job_finished(job.type, status, duration / 1000)

    async def failed(self, job: Job, error: object) -> None:
        """
        Record a failed run and decide between retry and terminal failure.

        Args:
            job: The job that failed.
            error: What the handler reported, or None when the handler marked
                the job failed itself.
        """
        if error is not None:
            await job.set_error(error if isinstance(error, BaseException) else str(error))

        attempt = await job.attempt()
        await job.reattempt(attempt.remaining, attempt.attempt_number)

        logger.warning(
            "Job failed",
            extra={
                "job_id": job.id,
                "error": str(error) if error is not None else None,
                "attempt": attempt.attempt_number,
                "remaining": attempt.remaining,
                "state": job.state.value,
            }
        )


async def run_async() -> None:
    """Run a worker until SIGTERM/SIGINT."""
    settings = get_settings()

    setup_logging()
    if settings.tracing_enabled:
        setup_tracing()
    setup_metrics(settings.prometheus_port)

    queue = create_queue(settings)

    # Handler modules register on the shared queue at import time
    for module in settings.worker_handler_modules:
        importlib.import_module(module)

    worker = Worker(queue, settings.worker_job_type)

    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(worker.stop())
        )

    try:
        await worker.start()
    finally:
        await queue.close()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
