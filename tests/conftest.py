"""
Pytest configuration and shared fixtures.
"""

import os
from collections.abc import AsyncGenerator, Generator
from typing import Any

import fakeredis
import pytest
import pytest_asyncio
from redis.asyncio import Redis

from kue.config import Settings
from kue.queue.registry import Queue, reset_queue

# Set TEST_REDIS_URL to run against a real server instead of fakeredis
TEST_REDIS_URL = os.getenv("TEST_REDIS_URL")

# Keys under this prefix are wiped before and after each test
TEST_KEY_PREFIX = "kuetest"


async def _flush_prefix(client: Redis) -> None:
    keys = await client.keys(f"{TEST_KEY_PREFIX}:*")
    if keys:
        await client.delete(*keys)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        redis_url=TEST_REDIS_URL,
        key_prefix=TEST_KEY_PREFIX,
        log_level="DEBUG",
        log_format="console",
        worker_poll_interval_seconds=0.01,
        default_max_attempts=1,
    )


@pytest_asyncio.fixture
async def redis_client() -> AsyncGenerator[Redis]:
    """Redis client with a clean key space for the test."""
    if TEST_REDIS_URL:
        client = Redis.from_url(TEST_REDIS_URL, decode_responses=True)
    else:
        client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)

    await _flush_prefix(client)

    yield client

    await _flush_prefix(client)
    await client.aclose()


@pytest.fixture
def queue(redis_client: Redis, test_settings: Settings) -> Queue:
    """Queue bound to the test client."""
    return Queue(client=redis_client, settings=test_settings)


@pytest.fixture(autouse=True)
def reset_queue_registry() -> Generator[None]:
    """Each test starts without a process-wide queue."""
    reset_queue()
    yield
    reset_queue()


@pytest.fixture
def sample_job_data() -> dict[str, Any]:
    """A payload with nested structures."""
    return {
        "to": "user@example.com",
        "subject": "Welcome",
        "tags": ["signup", "email"],
        "meta": {"attempt_budget": 3, "ratio": 1.5, "urgent": True, "note": None},
    }
