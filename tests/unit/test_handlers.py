"""
Unit tests for the handler registry.
"""

import pytest

from kue.queue.registry import Queue
from kue.worker.handlers import HandlerRegistry


class TestHandlerRegistry:
    """Tests for handler lookup."""

    def test_register_and_get(self):
        """Handlers are found by job type."""
        registry = HandlerRegistry()

        def handle_email(job, done):
            done()

        registry.register("email", handle_email)

        assert registry.get("email") is handle_email
        assert registry.get("sms") is None

    def test_wildcard_fallback(self):
        """The catch-all handler serves unknown types."""
        registry = HandlerRegistry()

        def handle_any(job, done):
            done()

        def handle_email(job, done):
            done()

        registry.register(None, handle_any)
        registry.register("email", handle_email)

        assert registry.get("email") is handle_email
        assert registry.get("sms") is handle_any
        assert sorted(registry.list_handlers()) == ["*", "email"]

    def test_decorator(self):
        """The decorator registers and returns the function."""
        registry = HandlerRegistry()

        @registry.handler("email")
        def handle_email(job, done):
            done()

        assert registry.get("email") is handle_email


class TestHandlerExecution:
    """Tests for running handlers."""

    @pytest.fixture
    def registry(self, queue: Queue) -> HandlerRegistry:
        return queue.handlers

    async def test_done_with_result(self, queue: Queue, registry: HandlerRegistry):
        """done(None, result) is a success carrying the result."""
        registry.register("email", lambda job, done: done(None, {"echo": job.data}))
        job = queue.create("email", {"msg": "hi"})

        outcome = await registry.execute(job)

        assert outcome.success is True
        assert outcome.result == {"echo": {"msg": "hi"}}

    async def test_async_handler(self, queue: Queue, registry: HandlerRegistry):
        """Coroutine handlers are awaited."""
        async def handle(job, done):
            await job.save()
            done(result="saved")

        registry.register("email", handle)

        outcome = await registry.execute(queue.create("email"))

        assert outcome.result == "saved"

    async def test_done_with_error(self, queue: Queue, registry: HandlerRegistry):
        """An error passed to done is a failure."""
        registry.register("email", lambda job, done: done("mailbox full"))

        outcome = await registry.execute(queue.create("email"))

        assert outcome.success is False
        assert outcome.error == "mailbox full"

    async def test_raising_handler(self, queue: Queue, registry: HandlerRegistry):
        """Exceptions become the outcome's error."""
        def handle(job, done):
            raise ValueError("bad payload")

        registry.register("email", handle)

        outcome = await registry.execute(queue.create("email"))

        assert isinstance(outcome.error, ValueError)

    async def test_missing_handler(self, queue: Queue, registry: HandlerRegistry):
        """Jobs without a handler fail."""
        outcome = await registry.execute(queue.create("nobody"))

        assert outcome.success is False
        assert "No handler registered" in outcome.error

    async def test_done_twice_keeps_first_call(self, queue: Queue, registry: HandlerRegistry):
        """Only the first done() counts."""
        def handle(job, done):
            done(None, 1)
            done("late error", 2)

        registry.register("email", handle)

        outcome = await registry.execute(queue.create("email"))

        assert outcome.success is True
        assert outcome.result == 1

    async def test_handler_without_done_succeeds(self, queue: Queue, registry: HandlerRegistry):
        """Returning without calling done is a success with no result."""
        registry.register("email", lambda job, done: None)

        outcome = await registry.execute(queue.create("email"))

        assert outcome.success is True
        assert outcome.result is None

    async def test_unserializable_result_is_error(self, queue: Queue, registry: HandlerRegistry):
        """A result that cannot be stored as JSON fails the run."""
        registry.register("email", lambda job, done: done(None, {"tags": {"a", "b"}}))

        outcome = await registry.execute(queue.create("email"))

        assert outcome.success is False
        assert isinstance(outcome.error, TypeError)
