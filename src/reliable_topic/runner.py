"""ListenerRunner — per-registration consume loop over the topic ringbuffer."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import TYPE_CHECKING

from .envelope import Message
from .exceptions import RingbufferConnectionError, StaleSequenceError
from .instrumentation import get_hook_registry
from .listener import maybe_await
from .retry import RetryPolicy

if TYPE_CHECKING:
    from collections.abc import Callable

    from .config import ReliableTopicConfig
    from .envelope import ReliableTopicMessage
    from .listener import ReliableMessageListener
    from .ports.ringbuffer import IRingbuffer, ReadResultSet
    from .ports.serialization import IPayloadSerializer

logger = logging.getLogger("reliable_topic.runner")


class RunnerState(str, Enum):
    INITIALIZING = "INITIALIZING"
    RUNNING = "RUNNING"
    CANCELLED = "CANCELLED"
    TERMINATED_ERROR = "TERMINATED_ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in (RunnerState.CANCELLED, RunnerState.TERMINATED_ERROR)


class ListenerRunner:
    """Drives one listener registration.

    Owns a private cursor (the next sequence to read) and runs an iterative
    loop in its own ``asyncio.Task``:

    1. ``read_many(cursor, 1, read_batch_size)``, raced against cancellation.
    2. Each envelope is decoded and dispatched in sequence order; the cursor
       moves past it.
    3. ``StaleSequenceError``: a loss tolerant listener jumps to the head
       sequence, any other listener terminates.
    4. ``RingbufferConnectionError``: retried with backoff; terminal once the
       retry policy is exhausted.
    5. Listener exceptions are logged and skipped unless the listener reports
       them as terminal.

    Cancellation is cooperative: :meth:`cancel` sets a token that the loop
    checks at every iteration and before every dispatch. A read in flight when
    the token fires is abandoned and its result discarded.
    """

    def __init__(
        self,
        registration_id: str,
        topic: str,
        ringbuffer: IRingbuffer[ReliableTopicMessage],
        listener: ReliableMessageListener,
        serializer: IPayloadSerializer,
        config: ReliableTopicConfig,
        *,
        retry_policy: RetryPolicy | None = None,
        on_finished: Callable[[ListenerRunner], None] | None = None,
    ) -> None:
        self._registration_id = registration_id
        self._topic = topic
        self._ringbuffer = ringbuffer
        self._listener = listener
        self._serializer = serializer
        self._config = config
        self._retry_policy = retry_policy or RetryPolicy()
        self._on_finished = on_finished
        self._state = RunnerState.INITIALIZING
        self._cancelled = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._sequence = -1
        self._failed_reads = 0
        self._error: BaseException | None = None
        self._finished = False

    @property
    def registration_id(self) -> str:
        return self._registration_id

    @property
    def state(self) -> RunnerState:
        return self._state

    @property
    def sequence(self) -> int:
        """Next sequence this runner will read."""
        return self._sequence

    @property
    def error(self) -> BaseException | None:
        """The error that terminated the runner, if any."""
        return self._error

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    async def initialize(self) -> None:
        """Resolve the starting cursor.

        ``retrieve_initial_sequence() == -1`` starts after the current tail,
        so only messages published from now on are delivered.
        """
        initial = self._listener.retrieve_initial_sequence()
        if initial < 0:
            tail = await self._retry_policy.run(self._ringbuffer.tail_sequence)
            initial = tail + 1
        self._sequence = initial

    def start(self) -> None:
        """Schedule the consume loop. Requires a running event loop."""
        if self._task is not None:
            return
        self._state = RunnerState.RUNNING
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"reliable-topic:{self._topic}:{self._registration_id}"
        )
        logger.debug(
            "Listener %s started on topic %s at sequence %d",
            self._registration_id,
            self._topic,
            self._sequence,
        )

    def cancel(self) -> None:
        """Request cooperative cancellation."""
        self._cancelled.set()

    async def stop(self, timeout: float = 5.0) -> None:
        """Cancel and wait for the loop to finish.

        A listener callback still running after *timeout* is interrupted.
        Returns immediately when called from inside the runner's own task.
        """
        self.cancel()
        task = self._task
        if task is None:
            self._finish()
            return
        if task.done() or task is asyncio.current_task():
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self) -> None:
        try:
            while self._state is RunnerState.RUNNING and not self._cancelled.is_set():
                try:
                    result = await self._read_batch()
                except StaleSequenceError as e:
                    await self._handle_stale_sequence(e)
                    continue
                except RingbufferConnectionError as e:
                    await self._handle_read_failure(e)
                    continue
                except Exception as e:  # noqa: BLE001
                    logger.exception(
                        "Listener %s on topic %s failed to read from sequence %d",
                        self._registration_id,
                        self._topic,
                        self._sequence,
                    )
                    await self._terminate(e)
                    break

                if result is None:
                    break
                self._failed_reads = 0
                await self._dispatch_batch(result)
        finally:
            self._finish()

    async def _read_batch(self) -> ReadResultSet[ReliableTopicMessage] | None:
        """Read the next batch, or return None if cancelled first."""
        read = asyncio.ensure_future(
            self._ringbuffer.read_many(self._sequence, 1, self._config.read_batch_size)
        )
        cancelled = asyncio.ensure_future(self._cancelled.wait())
        try:
            await asyncio.wait({read, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
            if not read.done():
                read.cancel()

        if self._cancelled.is_set():
            if read.done() and not read.cancelled():
                # discarded, but retrieve the exception so it is not reported
                read.exception()
            return None
        return read.result()

    async def _dispatch_batch(self, result: ReadResultSet[ReliableTopicMessage]) -> None:
        for sequence, envelope in zip(result.sequences, result.items):
            if self._cancelled.is_set() or self._state is not RunnerState.RUNNING:
                return
            await self._deliver(sequence, envelope)
            self._sequence = sequence + 1
        self._sequence = max(self._sequence, result.next_sequence_to_read_from)

    async def _deliver(self, sequence: int, envelope: ReliableTopicMessage) -> None:
        try:
            self._listener.store_sequence(sequence)
            message = Message(
                topic=self._topic,
                message_object=self._serializer.to_object(envelope.payload),
                publishing_time=envelope.publish_time,
                publisher=envelope.publisher_address,
                sequence=sequence,
            )
            await get_hook_registry().execute_all(
                f"reliable_topic.dispatch.{self._topic}",
                {
                    "topic": self._topic,
                    "listener.id": self._registration_id,
                    "sequence": sequence,
                },
                lambda: maybe_await(self._listener.on_message(message)),
            )
        except Exception as e:  # noqa: BLE001
            logger.exception(
                "Listener %s on topic %s failed on message %d",
                self._registration_id,
                self._topic,
                sequence,
            )
            if self._is_terminal(e):
                await self._terminate(e)

    def _is_terminal(self, error: BaseException) -> bool:
        try:
            return bool(self._listener.is_terminal(error))
        except Exception:  # noqa: BLE001
            logger.exception(
                "is_terminal of listener %s raised; terminating",
                self._registration_id,
            )
            return True

    def _is_loss_tolerant(self) -> bool:
        try:
            return bool(self._listener.is_loss_tolerant())
        except Exception:  # noqa: BLE001
            logger.exception(
                "is_loss_tolerant of listener %s raised; treating it as not "
                "loss tolerant",
                self._registration_id,
            )
            return False

    async def _handle_stale_sequence(self, error: StaleSequenceError) -> None:
        if self._is_loss_tolerant():
            logger.warning(
                "Listener %s on topic %s lost %d message(s): sequence %d was "
                "evicted, continuing from head sequence %d",
                self._registration_id,
                self._topic,
                error.head_sequence - self._sequence,
                self._sequence,
                error.head_sequence,
            )
            self._sequence = error.head_sequence
            return
        logger.warning(
            "Terminating listener %s on topic %s: sequence %d was evicted "
            "(head sequence %d) and the listener is not loss tolerant",
            self._registration_id,
            self._topic,
            self._sequence,
            error.head_sequence,
        )
        await self._terminate(error)

    async def _handle_read_failure(self, error: RingbufferConnectionError) -> None:
        self._failed_reads += 1
        if not self._retry_policy.should_retry(self._failed_reads):
            logger.error(
                "Terminating listener %s on topic %s after %d failed reads: %s",
                self._registration_id,
                self._topic,
                self._failed_reads,
                error,
            )
            await self._terminate(error)
            return
        delay = self._retry_policy.delay_for_attempt(self._failed_reads)
        logger.warning(
            "Read for listener %s on topic %s failed (attempt %d/%d), "
            "retrying in %.3fs: %s",
            self._registration_id,
            self._topic,
            self._failed_reads,
            self._retry_policy.max_attempts,
            delay,
            error,
        )
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._cancelled.wait(), timeout=delay)

    async def _terminate(self, error: BaseException) -> None:
        if self._state.is_terminal:
            return
        self._state = RunnerState.TERMINATED_ERROR
        self._error = error
        try:
            await maybe_await(self._listener.on_error(error))
        except Exception:  # noqa: BLE001
            logger.exception(
                "on_error of listener %s on topic %s raised",
                self._registration_id,
                self._topic,
            )

    def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        if self._state is not RunnerState.TERMINATED_ERROR:
            self._state = RunnerState.CANCELLED
            self._cancelled.set()
        try:
            self._listener.on_cancel()
        except Exception:  # noqa: BLE001
            logger.exception("on_cancel of listener %s raised", self._registration_id)
        logger.debug(
            "Listener %s on topic %s stopped (%s)",
            self._registration_id,
            self._topic,
            self._state.value,
        )
        if self._on_finished is not None:
            self._on_finished(self)
