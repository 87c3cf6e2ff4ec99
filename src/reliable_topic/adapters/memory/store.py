"""InMemoryRingbufferStore — named in-memory ringbuffers for a single process."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from ...config import RingbufferConfig, lookup_by_pattern
from ...ports.ringbuffer import IRingbufferProvider
from .ringbuffer import InMemoryRingbuffer

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping


class InMemoryRingbufferStore(IRingbufferProvider[Any]):
    """Creates and caches ``InMemoryRingbuffer`` instances by name.

    Ringbuffer configuration is resolved like topic configuration: exact
    name, then wildcard pattern, then ``"default"``.

    Usage::

        store = InMemoryRingbufferStore(
            {"orders": RingbufferConfig(capacity=10, time_to_live_seconds=2)}
        )
        client = ReliableTopicClient(store)
    """

    def __init__(
        self,
        configs: Mapping[str, RingbufferConfig] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._configs = dict(configs or {})
        self._clock = clock
        self._ringbuffers: dict[str, InMemoryRingbuffer[Any]] = {}

    def get_ringbuffer(self, name: str) -> InMemoryRingbuffer[Any]:
        ringbuffer = self._ringbuffers.get(name)
        if ringbuffer is None:
            config = lookup_by_pattern(self._configs, name) or RingbufferConfig()
            ringbuffer = InMemoryRingbuffer(name, config, clock=self._clock)
            self._ringbuffers[name] = ringbuffer
        return ringbuffer

    def destroy_ringbuffer(self, name: str) -> bool:
        """Drop the ringbuffer called *name*. Returns False if it did not exist."""
        return self._ringbuffers.pop(name, None) is not None

    def names(self) -> list[str]:
        return list(self._ringbuffers)
