"""Pytest fixtures for reliable-topic tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable

import pytest
import pytest_asyncio

from reliable_topic import (
    ClientConfig,
    InMemoryRingbufferStore,
    ReliableTopicClient,
    ReliableTopicConfig,
    RetryPolicy,
    RingbufferConfig,
    TopicOverloadPolicy,
)

CAPACITY = 10
BLOCK_TTL = 0.5

WaitUntil = Callable[..., Awaitable[None]]


@pytest.fixture
def wait_until() -> WaitUntil:
    """Poll *predicate* until it holds, failing after *timeout* seconds."""

    async def _wait_until(
        predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01
    ) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError(f"condition not met within {timeout}s")
            await asyncio.sleep(interval)

    return _wait_until


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0.01, max_delay=0.05, jitter=False)


@pytest.fixture
def store() -> InMemoryRingbufferStore:
    return InMemoryRingbufferStore(
        {
            "discard": RingbufferConfig(capacity=CAPACITY, time_to_live_seconds=60),
            "overwrite": RingbufferConfig(capacity=CAPACITY, time_to_live_seconds=60),
            "error": RingbufferConfig(capacity=CAPACITY, time_to_live_seconds=60),
            "block": RingbufferConfig(
                capacity=CAPACITY, time_to_live_seconds=BLOCK_TTL
            ),
            "block-saturated": RingbufferConfig(
                capacity=CAPACITY, time_to_live_seconds=60
            ),
            "stale*": RingbufferConfig(capacity=CAPACITY),
            "default": RingbufferConfig(capacity=1000),
        }
    )


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(
        publisher_address="127.0.0.1:5701",
        reliable_topics={
            "discard": ReliableTopicConfig(
                overload_policy=TopicOverloadPolicy.DISCARD_NEWEST
            ),
            "overwrite": ReliableTopicConfig(
                overload_policy=TopicOverloadPolicy.DISCARD_OLDEST
            ),
            "error": ReliableTopicConfig(overload_policy=TopicOverloadPolicy.ERROR),
            "block": ReliableTopicConfig(
                overload_policy=TopicOverloadPolicy.BLOCK,
                block_initial_backoff=0.05,
                block_max_backoff=0.2,
                block_timeout=5.0,
            ),
            "block-saturated": ReliableTopicConfig(
                overload_policy=TopicOverloadPolicy.BLOCK,
                block_initial_backoff=0.05,
                block_max_backoff=0.1,
                block_timeout=0.3,
            ),
            "stale": ReliableTopicConfig(
                overload_policy=TopicOverloadPolicy.DISCARD_OLDEST,
                loss_tolerant=True,
            ),
            "stale-strict": ReliableTopicConfig(
                overload_policy=TopicOverloadPolicy.DISCARD_OLDEST,
                loss_tolerant=False,
            ),
        },
    )


@pytest_asyncio.fixture
async def client(
    store: InMemoryRingbufferStore,
    client_config: ClientConfig,
    fast_retry: RetryPolicy,
) -> AsyncIterator[ReliableTopicClient]:
    client = ReliableTopicClient(store, client_config, retry_policy=fast_retry)
    yield client
    await client.shutdown()
