"""In-memory ringbuffer adapters."""

from __future__ import annotations

from .ringbuffer import InMemoryRingbuffer
from .store import InMemoryRingbufferStore

__all__ = [
    "InMemoryRingbuffer",
    "InMemoryRingbufferStore",
]
