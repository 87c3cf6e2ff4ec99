"""IRingbuffer protocol + ReadResultSet dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Generic, Protocol, TypeVar, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

T = TypeVar("T")

# Returned by ``add``/``add_all`` with ``OverflowPolicy.FAIL`` when there is no space.
NO_SPACE = -1


class OverflowPolicy(str, Enum):
    """How an append behaves when the ringbuffer is full."""

    OVERWRITE = "OVERWRITE"
    """Evict the oldest entries, even if they are still inside their TTL."""

    FAIL = "FAIL"
    """Refuse the append and return ``NO_SPACE``."""


@dataclass(frozen=True)
class ReadResultSet(Generic[T]):
    """Result of a range read.

    - ``items[i]`` was stored at ``sequences[i]``.
    - ``next_sequence_to_read_from``: first sequence after the last item read.
    """

    items: list[T] = field(default_factory=list)
    sequences: list[int] = field(default_factory=list)
    next_sequence_to_read_from: int = 0

    def __len__(self) -> int:
        return len(self.items)


@runtime_checkable
class IRingbuffer(Protocol[T]):
    """Capacity- and TTL-bounded, sequence-addressed append log.

    The valid sequence range is ``[head_sequence, tail_sequence]``; an empty
    ringbuffer reports ``head_sequence == tail_sequence + 1``.
    Transient connectivity failures surface as ``RingbufferConnectionError``.
    """

    @property
    def name(self) -> str: ...

    async def capacity(self) -> int:
        """Maximum number of retained items."""
        ...

    async def size(self) -> int:
        """Number of items currently retained."""
        ...

    async def head_sequence(self) -> int:
        """Sequence of the oldest retained item."""
        ...

    async def tail_sequence(self) -> int:
        """Sequence of the newest item, ``-1`` if nothing was ever added."""
        ...

    async def remaining_capacity(self) -> int:
        """Number of items that can be added with ``OverflowPolicy.FAIL``."""
        ...

    async def add(self, item: T, overflow_policy: OverflowPolicy) -> int:
        """Append one item; return its sequence or ``NO_SPACE``."""
        ...

    async def add_all(self, items: Sequence[T], overflow_policy: OverflowPolicy) -> int:
        """Append all items as one unit; return the last sequence or ``NO_SPACE``."""
        ...

    async def read_one(self, sequence: int) -> T:
        """Read the item at *sequence*.

        Raises ``StaleSequenceError`` if it was evicted.
        """
        ...

    async def read_many(
        self, start_sequence: int, min_count: int, max_count: int
    ) -> ReadResultSet[T]:
        """Read up to *max_count* items from *start_sequence*.

        Suspends until at least *min_count* items are available. Raises
        ``StaleSequenceError`` carrying the current head when
        ``start_sequence < head_sequence``.
        """
        ...


@runtime_checkable
class IRingbufferProvider(Protocol[T]):
    """Resolves ringbuffers by name."""

    def get_ringbuffer(self, name: str) -> IRingbuffer[T]:
        """Return the ringbuffer called *name*, creating it if needed."""
        ...
