"""OverloadPolicyEnforcer — apply the topic overload policy to appends."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from .config import ReliableTopicConfig, TopicOverloadPolicy
from .exceptions import TopicOverloadError, TopicPublishTimeoutError
from .ports.ringbuffer import NO_SPACE, OverflowPolicy
from .retry import RetryPolicy

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from .envelope import ReliableTopicMessage
    from .exceptions import RingbufferConnectionError
    from .ports.ringbuffer import IRingbuffer

logger = logging.getLogger("reliable_topic.overload")


class OverloadPolicyEnforcer:
    """Decides how an append behaves when the ringbuffer has no free capacity.

    A single message and a batch are treated the same way: the batch is one
    unit that is accepted, discarded, blocked or refused as a whole.

    - ``ERROR``: ``TopicOverloadError`` with the number of refused items.
    - ``DISCARD_NEWEST``: the items are dropped, the publish succeeds.
    - ``DISCARD_OLDEST``: the oldest entries are overwritten.
    - ``BLOCK``: waits with exponential backoff until ``remaining_capacity``
      fits the items, then appends; ``TopicPublishTimeoutError`` once
      ``block_timeout`` elapses.

    Transient ``RingbufferConnectionError`` failures are retried with
    *retry_policy* before they propagate.
    """

    def __init__(
        self,
        topic: str,
        ringbuffer: IRingbuffer[ReliableTopicMessage],
        config: ReliableTopicConfig,
        *,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._topic = topic
        self._ringbuffer = ringbuffer
        self._config = config
        self._retry_policy = retry_policy or RetryPolicy()
        self._clock = clock

    @property
    def policy(self) -> TopicOverloadPolicy:
        return self._config.overload_policy

    async def add(self, message: ReliableTopicMessage) -> int:
        """Append one message. Returns its sequence, or ``NO_SPACE`` if discarded."""
        return await self._apply([message])

    async def add_all(self, messages: Sequence[ReliableTopicMessage]) -> int:
        """Append a batch as one unit. Returns the last sequence, or ``NO_SPACE``."""
        return await self._apply(messages)

    async def _apply(self, items: Sequence[ReliableTopicMessage]) -> int:
        policy = self._config.overload_policy
        if policy is TopicOverloadPolicy.DISCARD_OLDEST:
            return await self._append(items, OverflowPolicy.OVERWRITE)
        if policy is TopicOverloadPolicy.BLOCK:
            return await self._append_with_backoff(items)

        sequence = await self._append(items, OverflowPolicy.FAIL)
        if sequence != NO_SPACE:
            return sequence
        if policy is TopicOverloadPolicy.ERROR:
            raise TopicOverloadError(self._topic, len(items))
        logger.debug(
            "Discarded %d message(s) on topic %s: ringbuffer is full",
            len(items),
            self._topic,
        )
        return NO_SPACE

    async def _append_with_backoff(self, items: Sequence[ReliableTopicMessage]) -> int:
        # A batch larger than the whole ringbuffer can never fit.
        if len(items) > await self._ringbuffer.capacity():
            raise TopicOverloadError(self._topic, len(items))

        timeout = self._config.block_timeout
        deadline = self._clock() + timeout
        backoff = self._config.block_initial_backoff
        while True:
            if await self._remaining_capacity() >= len(items):
                sequence = await self._append(items, OverflowPolicy.FAIL)
                if sequence != NO_SPACE:
                    return sequence
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise TopicPublishTimeoutError(self._topic, len(items), timeout)
            logger.debug(
                "Topic %s is full, retrying %d message(s) in %.3fs",
                self._topic,
                len(items),
                min(backoff, remaining),
            )
            await asyncio.sleep(min(backoff, remaining))
            backoff = min(backoff * 2, self._config.block_max_backoff)

    async def _remaining_capacity(self) -> int:
        return await self._retry_policy.run(
            self._ringbuffer.remaining_capacity, on_retry=self._log_retry
        )

    async def _append(
        self, items: Sequence[ReliableTopicMessage], overflow_policy: OverflowPolicy
    ) -> int:
        if len(items) == 1:
            return await self._retry_policy.run(
                lambda: self._ringbuffer.add(items[0], overflow_policy),
                on_retry=self._log_retry,
            )
        return await self._retry_policy.run(
            lambda: self._ringbuffer.add_all(items, overflow_policy),
            on_retry=self._log_retry,
        )

    def _log_retry(self, attempt: int, error: RingbufferConnectionError) -> None:
        logger.warning(
            "Append to topic %s failed (attempt %d/%d): %s",
            self._topic,
            attempt,
            self._retry_policy.max_attempts,
            error,
        )
