"""
Unit tests for the job entity.
"""

import asyncio
from datetime import datetime, timezone

import pytest
from redis.asyncio import Redis

from kue.constants import JobState
from kue.jobs.job import Job
from kue.queue.registry import Queue
from kue.types.job import ExponentialBackoff, FixedBackoff
from kue.utils import now_ms


async def indexed_states(client: Redis, queue: Queue, job: Job) -> list[str]:
    """States whose sorted sets hold the job."""
    found = []
    for state in JobState:
        if await client.zscore(queue.keys.state(state), job.id) is not None:
            found.append(state.value)
    return found


class TestJobConfiguration:
    """Tests for in-memory configuration."""

    async def test_new_job_defaults(self, queue: Queue):
        """A new job is inactive with a fresh id."""
        job = queue.create("email", {"to": "a@b.c"})

        assert job.state == JobState.INACTIVE
        assert job.type == "email"
        assert job.data == {"to": "a@b.c"}
        assert len(job.id) == 40
        assert job.id != queue.create("email").id
        assert job.record.max_attempts == 1
        assert job.record.timing == 0

    @pytest.mark.parametrize(
        ("level", "expected"),
        [("low", 10), ("normal", 0), ("medium", -5), ("high", -10), ("critical", -15)],
    )
    async def test_named_priority(self, queue: Queue, level: str, expected: int):
        """Named levels map to fixed offsets."""
        job = queue.create("email").with_priority(level)
        assert job.record.priority == expected

    async def test_numeric_priority_bypasses_table(self, queue: Queue):
        """Numbers are used as the offset directly."""
        assert queue.create("email").with_priority(7).record.priority == 7
        assert queue.create("email").with_priority("-3").record.priority == -3

    async def test_unknown_priority_keeps_prior_value(self, queue: Queue):
        """Unknown names are ignored."""
        job = queue.create("email").with_priority("high").with_priority("urgent")
        assert job.record.priority == -10

    async def test_backoff_configuration(self, queue: Queue):
        """Valid policies are set, malformed ones ignored."""
        job = queue.create("email").with_backoff({"type": "fixed", "delay": 5000})
        assert job.record.backoff == FixedBackoff(delay=5000)

        job.with_backoff({"type": "nope"})
        assert job.record.backoff == FixedBackoff(delay=5000)

    async def test_delay_defers_timing(self, queue: Queue):
        """A delay pushes timing into the future and keeps the job inactive."""
        before = now_ms()
        job = queue.create("email").with_delay(60_000)

        assert job.state == JobState.INACTIVE
        assert job.record.timing >= before + 60_000

    async def test_at_accepts_epoch_seconds_and_iso(self, queue: Queue):
        """Absolute times are converted to epoch milliseconds."""
        assert queue.create("email").at(1_900_000_000).record.timing == 1_900_000_000_000
        assert queue.create("email").at("2030-01-01T00:00:00+00:00").record.timing == 1_893_456_000_000

    async def test_at_reads_naive_times_as_utc(self, queue: Queue):
        """Naive datetimes and offset-less strings are UTC."""
        aware = datetime(2030, 1, 1, tzinfo=timezone.utc)

        assert queue.create("email").at(datetime(2030, 1, 1)).record.timing == queue.create("email").at(aware).record.timing
        assert queue.create("email").at("2030-01-01T00:00:00").record.timing == 1_893_456_000_000
        assert queue.create("email").at("2030-01-01T02:00:00+02:00").record.timing == 1_893_456_000_000


class TestJobPersistence:
    """Tests for save, load and field writes."""

    async def test_save_indexes_job(self, queue: Queue, redis_client: Redis):
        """Saving writes the hash, the type and the three indexes."""
        job = queue.create("email", {"to": "a@b.c"}).with_priority("high")
        await job.save()

        assert await redis_client.exists(queue.keys.job(job.id))
        assert await queue.types() == ["email"]
        for key in queue.keys.index_keys("email", "inactive"):
            assert await redis_client.zscore(key, job.id) == -10

    async def test_save_then_load_round_trip(self, queue: Queue, sample_job_data):
        """A loaded job reproduces every saved field."""
        job = (
            queue.create("email", sample_job_data)
            .with_priority("critical")
            .with_attempts(4)
            .with_backoff({"type": "exponential", "delay": 1000})
        )
        await job.save()
        await job.complete({"message_id": "m-1", "recipients": ["a", "b"]})

        loaded = await queue.get(job.id)

        assert loaded is not None
        assert loaded.record == job.record
        assert loaded.data == sample_job_data
        assert loaded.result == {"message_id": "m-1", "recipients": ["a", "b"]}
        assert loaded.record.backoff == ExponentialBackoff(delay=1000)

    async def test_load_missing_returns_none(self, queue: Queue):
        """Unknown ids are reported as not found."""
        assert await Job.load(queue, "does-not-exist") is None

    async def test_set_writes_single_field(self, queue: Queue, redis_client: Redis):
        """Field writes hit memory and the store immediately."""
        job = queue.create("email")
        await job.save()

        await job.set("worker", "host:1")

        assert job.record.worker == "host:1"
        assert await redis_client.hget(queue.keys.job(job.id), "worker") == "host:1"

        await job.set("worker", None)
        assert await redis_client.hget(queue.keys.job(job.id), "worker") is None

    async def test_get_decodes_field_types(self, queue: Queue):
        """Single-field reads come back typed."""
        job = queue.create("email", {"a": [1, 2]}).with_priority("medium")
        await job.save()

        assert await job.get("priority") == -5
        assert await job.get("state") == JobState.INACTIVE
        assert await job.get("data") == {"a": [1, 2]}
        assert await job.get("result") is None

    @pytest.mark.parametrize(("progress", "stored"), [(0.5, 50), (50, 50), (150, 100), (0, 0)])
    async def test_progress_normalization(self, queue: Queue, redis_client: Redis, progress, stored):
        """Fractions become percentages and values cap at 100."""
        job = queue.create("email")
        await job.save()

        await job.set_progress(progress)

        assert job.record.progress == stored
        assert await redis_client.hget(queue.keys.job(job.id), "progress") == str(stored)

    async def test_log(self, queue: Queue):
        """Log lines are appended in order."""
        job = queue.create("email")
        await job.save()

        await job.log("connecting")
        await job.log("sent")

        assert await job.logs() == ["connecting", "sent"]

    async def test_set_error_from_exception(self, queue: Queue):
        """Exceptions are stored with their class and traceback."""
        job = queue.create("email")
        await job.save()

        try:
            raise ConnectionError("smtp down")
        except ConnectionError as e:
            await job.set_error(e)

        assert "smtp down" in job.error
        assert "ConnectionError" in job.error
        assert "Traceback" in job.error
        assert job.record.failed_at is not None
        assert await job.get("error") == job.error


class TestJobStateMachine:
    """Tests for state transitions and indexing."""

    async def test_transition_moves_index_membership(self, queue: Queue, redis_client: Redis):
        """A job sits in exactly one state set at a time."""
        job = queue.create("email")
        await job.save()
        assert await indexed_states(redis_client, queue, job) == ["inactive"]

        await job.active()
        assert await indexed_states(redis_client, queue, job) == ["active"]
        assert await redis_client.zscore(queue.keys.type_state("email", "inactive"), job.id) is None
        assert await redis_client.zscore(queue.keys.type_state("email", "active"), job.id) == 0

        await job.complete()
        assert await indexed_states(redis_client, queue, job) == ["complete"]
        assert job.record.progress == 100

    async def test_delay_after_save_reindexes(self, queue: Queue, redis_client: Redis):
        """Re-saving a delayed job moves its score."""
        job = queue.create("email")
        await job.save()

        job.with_delay(10_000)
        await job.save()

        score = await redis_client.zscore(queue.keys.state("inactive"), job.id)
        assert score == job.record.timing
        assert await indexed_states(redis_client, queue, job) == ["inactive"]

    async def test_remove(self, queue: Queue, redis_client: Redis):
        """Removal erases the record, the log and all index memberships."""
        job = queue.create("email")
        await job.save()
        await job.log("hello")

        await job.remove()

        assert not await redis_client.exists(queue.keys.job(job.id))
        assert not await redis_client.exists(queue.keys.job_log(job.id))
        assert await redis_client.zscore(queue.keys.jobs(), job.id) is None
        assert await indexed_states(redis_client, queue, job) == []
        assert await queue.get(job.id) is None

    async def test_remove_twice_is_safe(self, queue: Queue):
        """Removing an already removed job is a no-op."""
        job = queue.create("email")
        await job.save()

        await job.remove()
        await job.remove()

        assert await queue.card("inactive") == 0


class TestJobAttempts:
    """Tests for attempt accounting and the retry decision."""

    async def test_attempt_accounting(self, queue: Queue):
        """Remaining attempts count down to zero."""
        job = queue.create("email").with_attempts(3)
        await job.save()

        infos = [await job.attempt() for _ in range(4)]

        assert [i.remaining for i in infos] == [3, 2, 1, 0]
        assert [i.attempt_number for i in infos] == [0, 1, 2, 3]
        assert all(i.max_attempts == 3 for i in infos)
        assert job.record.attempts == 4

    async def test_attempt_callback(self, queue: Queue):
        """The callback receives remaining, attempt number and max."""
        job = queue.create("email").with_attempts(2)
        await job.save()
        seen = []

        await job.attempt(lambda remaining, number, maximum: seen.append((remaining, number, maximum)))

        assert seen == [(2, 0, 2)]

    async def test_concurrent_attempts_are_sequential(self, queue: Queue):
        """Concurrent increments on one job never collide."""
        job = queue.create("email").with_attempts(100)
        await job.save()
        copies = [await queue.get(job.id) for _ in range(20)]

        infos = await asyncio.gather(*(copy.attempt() for copy in copies))

        assert sorted(i.attempt_number + 1 for i in infos) == list(range(1, 21))

    async def test_reattempt_without_attempts_fails(self, queue: Queue, redis_client: Redis):
        """No remaining attempts is terminal."""
        job = queue.create("email")
        await job.save()
        await job.active()

        await job.reattempt(0, 1)

        assert job.state == JobState.FAILED
        assert await indexed_states(redis_client, queue, job) == ["failed"]

    async def test_reattempt_without_backoff_is_immediate(self, queue: Queue, redis_client: Redis):
        """Without a policy the job is ready again right away."""
        job = queue.create("email").with_attempts(3)
        await job.save()
        await job.active()

        await job.reattempt(2, 0)

        assert job.state == JobState.INACTIVE
        assert await redis_client.zscore(queue.keys.state("inactive"), job.id) == 0

    async def test_reattempt_with_backoff_defers_score(self, queue: Queue, redis_client: Redis):
        """With a policy the job is inactive but scored in the future."""
        job = queue.create("email").with_attempts(3).with_backoff({"type": "fixed", "delay": 5000})
        await job.save()
        await job.active()
        before = now_ms()

        await job.reattempt(2, 0)

        assert job.state == JobState.INACTIVE
        assert job.record.timing >= before + 5000
        assert await redis_client.zscore(queue.keys.state("inactive"), job.id) == job.record.timing
        assert await indexed_states(redis_client, queue, job) == ["inactive"]
        assert await job.get("timing") == job.record.timing


class TestJobEvents:
    """Tests for job observers."""

    async def test_state_events_reach_job_and_queue_observers(self, queue: Queue):
        """State changes are emitted under the state name."""
        job = queue.create("email")
        job_seen, queue_seen = [], []
        job.events.on("complete", lambda event: job_seen.append(event))
        queue.job_events.on("*", lambda event: queue_seen.append(event.event_type))

        await job.save()
        await job.complete()

        assert [e.state for e in job_seen] == [JobState.COMPLETE]
        assert job_seen[0].job_id == job.id
        assert queue_seen == ["save", "update", "inactive", "complete"]

    async def test_failing_observer_does_not_abort(self, queue: Queue):
        """Observer errors are swallowed."""
        job = queue.create("email")

        def explode(event):
            raise RuntimeError("observer bug")

        job.events.on("save", explode)

        await job.save()

        assert await queue.card("inactive") == 1
