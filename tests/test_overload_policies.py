"""Overload policy behavior of ReliableTopicProxy.publish / publish_all."""

from __future__ import annotations

import time
from collections.abc import Sequence
from typing import Any

import pytest

from reliable_topic import (
    InMemoryRingbuffer,
    JsonPayloadSerializer,
    OverflowPolicy,
    OverloadPolicyEnforcer,
    ReliableTopicClient,
    ReliableTopicConfig,
    ReliableTopicMessage,
    ReliableTopicProxy,
    RetryPolicy,
    RingbufferConfig,
    RingbufferConnectionError,
    TopicOverloadError,
    TopicOverloadPolicy,
    TopicPublishTimeoutError,
)

CAPACITY = 10

_serializer = JsonPayloadSerializer()


def _envelopes(values: range) -> list[ReliableTopicMessage]:
    return [
        ReliableTopicMessage(payload=_serializer.to_data(v), publisher_address="test")
        for v in values
    ]


async def _tail_object(client: ReliableTopicClient, name: str) -> Any:
    ringbuffer = client.get_reliable_topic(name).get_ringbuffer()
    envelope = await ringbuffer.read_one(await ringbuffer.tail_sequence())
    return _serializer.to_object(envelope.payload)


async def _stored_objects(client: ReliableTopicClient, name: str) -> list[Any]:
    ringbuffer = client.get_reliable_topic(name).get_ringbuffer()
    head = await ringbuffer.head_sequence()
    result = await ringbuffer.read_many(head, CAPACITY, 2 * CAPACITY)
    return [_serializer.to_object(e.payload) for e in result.items]


ITEMS_1 = list(range(1, CAPACITY + 1))
ITEMS_2 = list(range(CAPACITY + 1, 2 * CAPACITY + 1))


# ============================================================================
# DISCARD_NEWEST
# ============================================================================


@pytest.mark.asyncio
async def test_discard_newest_drops_single_message(client: ReliableTopicClient) -> None:
    ringbuffer = client.get_reliable_topic("discard").get_ringbuffer()
    await ringbuffer.add_all(_envelopes(range(1, 11)), OverflowPolicy.OVERWRITE)

    await client.get_reliable_topic("discard").publish(11)

    assert await _tail_object(client, "discard") == 10


@pytest.mark.asyncio
async def test_discard_newest_drops_whole_batch(client: ReliableTopicClient) -> None:
    topic = client.get_reliable_topic("discard")

    await topic.publish_all(ITEMS_1)
    await topic.publish_all(ITEMS_2)

    assert await _tail_object(client, "discard") == CAPACITY
    assert await topic.get_ringbuffer().size() == CAPACITY
    assert await _stored_objects(client, "discard") == ITEMS_1


# ============================================================================
# DISCARD_OLDEST
# ============================================================================


@pytest.mark.asyncio
async def test_discard_oldest_overwrites_single_message(
    client: ReliableTopicClient,
) -> None:
    ringbuffer = client.get_reliable_topic("overwrite").get_ringbuffer()
    await ringbuffer.add_all(_envelopes(range(1, 11)), OverflowPolicy.OVERWRITE)

    await client.get_reliable_topic("overwrite").publish(11)

    assert await _tail_object(client, "overwrite") == 11


@pytest.mark.asyncio
async def test_discard_oldest_overwrites_whole_batch(
    client: ReliableTopicClient,
) -> None:
    topic = client.get_reliable_topic("overwrite")

    await topic.publish_all(ITEMS_1)
    await topic.publish_all(ITEMS_2)

    assert await _tail_object(client, "overwrite") == 2 * CAPACITY
    assert await topic.get_ringbuffer().size() == CAPACITY
    assert await _stored_objects(client, "overwrite") == ITEMS_2


# ============================================================================
# ERROR
# ============================================================================


@pytest.mark.asyncio
async def test_error_policy_rejects_batch_and_keeps_log(
    client: ReliableTopicClient,
) -> None:
    topic = client.get_reliable_topic("error")
    await topic.publish_all(ITEMS_1)

    with pytest.raises(TopicOverloadError) as exc_info:
        await topic.publish_all(ITEMS_2)

    assert exc_info.value.item_count == CAPACITY
    assert exc_info.value.topic == "error"
    assert await topic.get_ringbuffer().size() == CAPACITY
    assert await _stored_objects(client, "error") == ITEMS_1


@pytest.mark.asyncio
async def test_error_policy_rejects_single_message(client: ReliableTopicClient) -> None:
    topic = client.get_reliable_topic("error")
    await topic.publish_all(ITEMS_1)

    with pytest.raises(TopicOverloadError) as exc_info:
        await topic.publish(99)

    assert exc_info.value.item_count == 1
    assert await _tail_object(client, "error") == CAPACITY


# ============================================================================
# BLOCK
# ============================================================================


@pytest.mark.asyncio
async def test_block_waits_for_expiry_then_appends_batch(
    client: ReliableTopicClient,
) -> None:
    topic = client.get_reliable_topic("block")
    ttl = topic.get_ringbuffer().config.time_to_live_seconds
    started = time.monotonic()
    await topic.publish_all(ITEMS_1)

    begin = time.monotonic()
    await topic.publish_all(ITEMS_2)
    finished = time.monotonic()

    assert finished - started >= ttl
    assert finished - begin >= ttl * 0.9
    assert await topic.get_ringbuffer().size() == CAPACITY
    assert await _stored_objects(client, "block") == ITEMS_2


@pytest.mark.asyncio
async def test_block_single_publish_waits_for_expiry(
    client: ReliableTopicClient,
) -> None:
    topic = client.get_reliable_topic("block")
    ringbuffer = topic.get_ringbuffer()
    started = time.monotonic()
    await ringbuffer.add_all(_envelopes(range(CAPACITY + 1)), OverflowPolicy.OVERWRITE)

    await topic.publish(-50)

    assert time.monotonic() - started >= ringbuffer.config.time_to_live_seconds
    assert await _tail_object(client, "block") == -50


@pytest.mark.asyncio
async def test_block_times_out_on_saturated_log(client: ReliableTopicClient) -> None:
    topic = client.get_reliable_topic("block-saturated")
    await topic.publish_all(ITEMS_1)

    begin = time.monotonic()
    with pytest.raises(TopicPublishTimeoutError) as exc_info:
        await topic.publish(99)

    assert time.monotonic() - begin >= topic.config.block_timeout * 0.9
    assert exc_info.value.timeout == topic.config.block_timeout
    assert isinstance(exc_info.value, TimeoutError)
    assert await _stored_objects(client, "block-saturated") == ITEMS_1


class CountingRingbuffer(InMemoryRingbuffer[Any]):
    def __init__(self) -> None:
        super().__init__(
            "counting", RingbufferConfig(capacity=2, time_to_live_seconds=60)
        )
        self.capacity_checks = 0
        self.appends = 0

    async def remaining_capacity(self) -> int:
        self.capacity_checks += 1
        return await super().remaining_capacity()

    async def add_all(
        self, items: Sequence[Any], overflow_policy: OverflowPolicy
    ) -> int:
        self.appends += 1
        return await super().add_all(items, overflow_policy)


@pytest.mark.asyncio
async def test_block_checks_remaining_capacity_before_appending() -> None:
    ringbuffer = CountingRingbuffer()
    enforcer = OverloadPolicyEnforcer(
        "counting",
        ringbuffer,
        ReliableTopicConfig(
            overload_policy=TopicOverloadPolicy.BLOCK,
            block_timeout=0.05,
            block_initial_backoff=0.01,
            block_max_backoff=0.02,
        ),
    )
    assert await enforcer.add_all(_envelopes(range(2))) == 1
    assert ringbuffer.appends == 1

    with pytest.raises(TopicPublishTimeoutError):
        await enforcer.add(_envelopes(range(1))[0])

    assert ringbuffer.appends == 1
    assert ringbuffer.capacity_checks >= 3
    assert await ringbuffer.size() == 2


@pytest.mark.asyncio
async def test_block_rejects_batch_larger_than_capacity(
    client: ReliableTopicClient,
) -> None:
    topic = client.get_reliable_topic("block")

    with pytest.raises(TopicOverloadError):
        await topic.publish_all(range(CAPACITY + 1))

    assert await topic.get_ringbuffer().size() == 0


# ============================================================================
# Headroom
# ============================================================================


@pytest.mark.parametrize("name", ["discard", "overwrite", "error", "block"])
@pytest.mark.asyncio
async def test_publish_with_headroom_is_readable_at_tail(
    client: ReliableTopicClient, name: str
) -> None:
    topic = client.get_reliable_topic(name)

    await topic.publish({"value": "foo"})

    ringbuffer = topic.get_ringbuffer()
    envelope = await ringbuffer.read_one(await ringbuffer.tail_sequence())
    assert _serializer.to_object(envelope.payload) == {"value": "foo"}
    assert envelope.publisher_address == "127.0.0.1:5701"


# ============================================================================
# Transient append failures
# ============================================================================


class FlakyAppendRingbuffer(InMemoryRingbuffer[Any]):
    def __init__(self, failures: int) -> None:
        super().__init__("flaky")
        self.failures = failures
        self.attempts = 0

    async def add_all(
        self, items: Sequence[Any], overflow_policy: OverflowPolicy
    ) -> int:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise RingbufferConnectionError("ringbuffer unreachable")
        return await super().add_all(items, overflow_policy)


@pytest.mark.asyncio
async def test_transient_append_failure_is_retried(fast_retry: RetryPolicy) -> None:
    ringbuffer = FlakyAppendRingbuffer(failures=2)
    enforcer = OverloadPolicyEnforcer(
        "flaky",
        ringbuffer,
        ReliableTopicConfig(overload_policy=TopicOverloadPolicy.DISCARD_OLDEST),
        retry_policy=fast_retry,
    )

    assert await enforcer.add_all(_envelopes(range(3))) == 2
    assert ringbuffer.attempts == 3
    assert enforcer.policy is TopicOverloadPolicy.DISCARD_OLDEST


@pytest.mark.asyncio
async def test_append_failure_propagates_when_retries_run_out(
    fast_retry: RetryPolicy,
) -> None:
    ringbuffer = FlakyAppendRingbuffer(failures=100)
    topic = ReliableTopicProxy(
        "flaky",
        ringbuffer,
        ReliableTopicConfig(overload_policy=TopicOverloadPolicy.ERROR),
        retry_policy=fast_retry,
    )

    with pytest.raises(RingbufferConnectionError):
        await topic.publish("lost")

    assert ringbuffer.attempts == fast_retry.max_attempts
    assert await ringbuffer.size() == 0
