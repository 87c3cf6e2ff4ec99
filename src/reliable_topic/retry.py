"""RetryPolicy — bounded exponential backoff for transient ringbuffer failures."""

from __future__ import annotations

import asyncio
import random
from typing import TYPE_CHECKING, TypeVar

from .exceptions import RingbufferConnectionError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

R = TypeVar("R")


class RetryPolicy:
    """How often, and how patiently, a failed ringbuffer call is repeated.

    Only ``RingbufferConnectionError`` is considered transient. Listener
    runners use the policy for their reads and the overload enforcer for
    appends; :meth:`run` covers the common one-call case.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 5,
        base_delay: float = 0.1,
        max_delay: float = 5.0,
        jitter: bool = True,
    ) -> None:
        """Configure retry behavior.

        Args:
            max_attempts: Total attempts, the first one included.
            base_delay: Seconds to wait after the first failure.
            max_delay: Upper bound for any single wait.
            jitter: Scale each wait by a random factor in [0.5, 1.5].
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if base_delay < 0 or max_delay < 0:
            raise ValueError("base_delay and max_delay must be >= 0")
        if base_delay > max_delay:
            raise ValueError("base_delay must be <= max_delay")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter

    def should_retry(self, attempt: int) -> bool:
        """True while failed *attempt* (1-based) leaves attempts to spare."""
        return 1 <= attempt < self.max_attempts

    def delay_for_attempt(self, attempt: int) -> float:
        """Seconds to wait after failed *attempt*: ``base_delay * 2**(attempt-1)``."""
        if attempt < 1:
            return 0.0
        delay = min(self.base_delay * 2 ** (attempt - 1), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random()  # noqa: S311
        return max(0.0, float(delay))

    async def wait_before_retry(self, attempt: int) -> None:
        delay = self.delay_for_attempt(attempt)
        if delay > 0:
            await asyncio.sleep(delay)

    async def run(
        self,
        call: Callable[[], Awaitable[R]],
        *,
        on_retry: Callable[[int, RingbufferConnectionError], None] | None = None,
    ) -> R:
        """Await *call*, repeating it while it raises ``RingbufferConnectionError``.

        *on_retry* is told about every failure that will be retried. The last
        failure propagates once the attempts are used up.
        """
        attempt = 1
        while True:
            try:
                return await call()
            except RingbufferConnectionError as e:
                if not self.should_retry(attempt):
                    raise
                if on_retry is not None:
                    on_retry(attempt, e)
                await self.wait_before_retry(attempt)
                attempt += 1
