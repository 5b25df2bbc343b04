"""
Job handler registry and execution.

A handler is called as `handler(job, done)` and may be a plain function or a
coroutine function. It reports its outcome by calling `done(error, result)`
or by raising; both end up in one `HandlerOutcome`. A result that cannot be
stored as JSON is reported as the error. A handler that returns
without calling `done` succeeded with no result.
"""

import inspect
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from kue.constants import WILDCARD_JOB_TYPE
from kue.types.job import HandlerOutcome, encode_field

if TYPE_CHECKING:
    from kue.jobs.job import Job

logger = logging.getLogger(__name__)

# done(error=None, result=None)
DoneCallback = Callable[..., None]
JobHandler = Callable[["Job", DoneCallback], Any]


class HandlerRegistry:
    """Maps job types to handlers, with "*" as the catch-all."""

    def __init__(self):
        self._handlers: dict[str, JobHandler] = {}

    def register(self, job_type: str | None, handler: JobHandler) -> JobHandler:
        """
        Register a handler.

        Args:
            job_type: The job type this handler processes. None means all types.
            handler: The handler function.

        Returns:
            The handler.
        """
        key = job_type or WILDCARD_JOB_TYPE
        self._handlers[key] = handler
        logger.info(f"Registered handler for job type: {key}")
        return handler

    def handler(self, job_type: str | None = None) -> Callable[[JobHandler], JobHandler]:
        """
        Decorator form of `register`.

        Example:
            @queue.handlers.handler("email")
            async def send_email(job, done):
                ...
        """
        def decorator(handler: JobHandler) -> JobHandler:
            return self.register(job_type, handler)
        return decorator

    def get(self, job_type: str) -> JobHandler | None:
        """Handler for a job type, falling back to the catch-all."""
        return self._handlers.get(job_type) or self._handlers.get(WILDCARD_JOB_TYPE)

    def list_handlers(self) -> list[str]:
        """List all registered job types."""
        return list(self._handlers.keys())

    async def execute(self, job: "Job") -> HandlerOutcome:
        """
        Run the handler for a job.

        Exceptions raised by the handler are caught and reported as the
        outcome's error; they never propagate.

        Args:
            job: The job to run.

        Returns:
            HandlerOutcome with the reported error and result.
        """
        handler = self.get(job.type)

        if handler is None:
            logger.error(
                f"No handler for job type: {job.type}",
                extra={"job_id": job.id}
            )
            return HandlerOutcome(error=f"No handler registered for job type: {job.type}")

        outcome = HandlerOutcome()
        called = False

        def done(error: Any = None, result: Any = None) -> None:
            nonlocal called
            if called:
                logger.warning("done() called more than once", extra={"job_id": job.id})
                return
            called = True
            outcome.error = error or None
            outcome.result = result

        try:
            returned = handler(job, done)
            if inspect.isawaitable(returned):
                await returned
        except Exception as e:
            logger.exception(
                "Handler raised exception",
                extra={"job_id": job.id, "error": str(e)}
            )
            return HandlerOutcome(error=e)

        if outcome.success and outcome.result is not None:
            try:
                encode_field("result", outcome.result)
            except (TypeError, ValueError) as e:
                logger.error(
                    "Handler result is not JSON serializable",
                    extra={"job_id": job.id, "error": str(e)}
                )
                return HandlerOutcome(error=e)

        return outcome
