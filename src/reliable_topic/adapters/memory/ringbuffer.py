"""InMemoryRingbuffer — deque-backed, capacity and TTL bounded ringbuffer."""

from __future__ import annotations

import asyncio
import itertools
import time
from collections import deque
from typing import TYPE_CHECKING, Any, NamedTuple, TypeVar

from ...config import RingbufferConfig
from ...exceptions import InvalidArgumentError, StaleSequenceError
from ...ports.ringbuffer import NO_SPACE, IRingbuffer, OverflowPolicy, ReadResultSet

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

T = TypeVar("T")


class _Slot(NamedTuple):
    sequence: int
    stored_at: float
    item: Any


class InMemoryRingbuffer(IRingbuffer[T]):
    """In-memory implementation of ``IRingbuffer``.

    Entries older than ``time_to_live_seconds`` are expired lazily from the
    head whenever the ringbuffer is accessed. The capacity check and the
    append of a batch run without suspending, so a batch is never interleaved
    with another publisher's items.
    """

    def __init__(
        self,
        name: str,
        config: RingbufferConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._name = name
        self._config = config or RingbufferConfig()
        self._clock = clock
        self._slots: deque[_Slot] = deque()
        self._head = 0
        self._tail = -1
        self._appended = asyncio.Condition()

    @property
    def name(self) -> str:
        return self._name

    @property
    def config(self) -> RingbufferConfig:
        return self._config

    async def capacity(self) -> int:
        return self._config.capacity

    async def size(self) -> int:
        self._expire()
        return len(self._slots)

    async def head_sequence(self) -> int:
        self._expire()
        return self._head

    async def tail_sequence(self) -> int:
        return self._tail

    async def remaining_capacity(self) -> int:
        self._expire()
        return self._remaining()

    async def add(self, item: T, overflow_policy: OverflowPolicy) -> int:
        return await self.add_all([item], overflow_policy)

    async def add_all(self, items: Sequence[T], overflow_policy: OverflowPolicy) -> int:
        if not items:
            raise InvalidArgumentError("items must not be empty")
        self._expire()
        if overflow_policy is OverflowPolicy.FAIL and self._remaining() < len(items):
            return NO_SPACE
        now = self._clock()
        for item in items:
            self._tail += 1
            self._slots.append(_Slot(self._tail, now, item))
        while len(self._slots) > self._config.capacity:
            self._evict_head()
        async with self._appended:
            self._appended.notify_all()
        return self._tail

    async def read_one(self, sequence: int) -> T:
        self._expire()
        if sequence < self._head:
            raise StaleSequenceError(sequence, self._head)
        if sequence > self._tail:
            raise InvalidArgumentError(
                f"Sequence {sequence} is bigger than tail sequence {self._tail}"
            )
        return self._slots[sequence - self._head].item

    async def read_many(
        self, start_sequence: int, min_count: int, max_count: int
    ) -> ReadResultSet[T]:
        if min_count < 0:
            raise InvalidArgumentError("min_count must be >= 0")
        if max_count < min_count:
            raise InvalidArgumentError("max_count must be >= min_count")
        if min_count > self._config.capacity:
            raise InvalidArgumentError("min_count must be <= capacity")

        async with self._appended:
            while True:
                self._expire()
                if start_sequence < self._head:
                    raise StaleSequenceError(start_sequence, self._head)
                if start_sequence > self._tail + 1:
                    raise InvalidArgumentError(
                        f"Sequence {start_sequence} is bigger than "
                        f"tail sequence + 1 ({self._tail + 1})"
                    )
                if self._tail - start_sequence + 1 >= min_count:
                    break
                await self._appended.wait()

            offset = start_sequence - self._head
            slots = list(
                itertools.islice(self._slots, offset, offset + max_count)
            )

        return ReadResultSet(
            items=[s.item for s in slots],
            sequences=[s.sequence for s in slots],
            next_sequence_to_read_from=start_sequence + len(slots),
        )

    def _remaining(self) -> int:
        if self._config.time_to_live_seconds <= 0:
            return self._config.capacity
        return self._config.capacity - len(self._slots)

    def _expire(self) -> None:
        ttl = self._config.time_to_live_seconds
        if ttl <= 0:
            return
        deadline = self._clock() - ttl
        while self._slots and self._slots[0].stored_at <= deadline:
            self._evict_head()

    def _evict_head(self) -> None:
        slot = self._slots.popleft()
        self._head = slot.sequence + 1
