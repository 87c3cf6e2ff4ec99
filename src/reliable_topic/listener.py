"""Listener contract for reliable topics."""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Union

from .exceptions import InvalidArgumentError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .envelope import Message

    MessageCallback = Callable[[Message], Union[Awaitable[None], None]]
    ErrorCallback = Callable[[BaseException], Union[Awaitable[None], None]]


async def maybe_await(result: Any) -> Any:
    """Await *result* if a callback returned an awaitable."""
    if inspect.isawaitable(result):
        return await result
    return result


class ReliableMessageListener(ABC):
    """A listener with control over its own consumption.

    Every hook except :meth:`on_message` has a default. ``on_message``,
    ``on_error`` may be plain methods or coroutines.

    Usage::

        class AuditListener(ReliableMessageListener):
            def __init__(self) -> None:
                self.last_sequence = -1

            async def on_message(self, message: Message) -> None:
                await audit_log.write(message.message_object)

            def retrieve_initial_sequence(self) -> int:
                # resume after the last processed message
                return self.last_sequence + 1 if self.last_sequence >= 0 else -1

            def store_sequence(self, sequence: int) -> None:
                self.last_sequence = sequence
    """

    @abstractmethod
    def on_message(self, message: Message) -> Awaitable[None] | None:
        """Handle one message."""

    def retrieve_initial_sequence(self) -> int:
        """Sequence to start reading from; ``-1`` means only new messages."""
        return -1

    def store_sequence(self, sequence: int) -> None:
        """Called with each sequence just before its message is dispatched."""

    def is_loss_tolerant(self) -> bool:
        """If True, skip over evicted messages instead of terminating."""
        return False

    def is_terminal(self, error: BaseException) -> bool:  # noqa: ARG002
        """If True, an error raised by :meth:`on_message` stops the runner."""
        return False

    def on_error(self, error: BaseException) -> Awaitable[None] | None:  # noqa: ARG002
        """Called once when the runner terminates because of *error*."""
        return None

    def on_cancel(self) -> None:
        """Called once when the runner stops, whatever the reason."""


class CallableListener(ReliableMessageListener):
    """Adapts a plain callback (sync or async) to ``ReliableMessageListener``.

    Loss tolerance comes from the topic configuration.
    """

    def __init__(
        self,
        callback: MessageCallback,
        *,
        loss_tolerant: bool = False,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._callback = callback
        self._loss_tolerant = loss_tolerant
        self._on_error = on_error

    def on_message(self, message: Message) -> Awaitable[None] | None:
        return self._callback(message)

    def is_loss_tolerant(self) -> bool:
        return self._loss_tolerant

    def on_error(self, error: BaseException) -> Awaitable[None] | None:
        if self._on_error is None:
            return None
        return self._on_error(error)


def to_reliable_listener(
    listener: ReliableMessageListener | MessageCallback,
    *,
    loss_tolerant: bool = False,
    on_error: ErrorCallback | None = None,
) -> ReliableMessageListener:
    """Wrap *listener* unless it already is a ``ReliableMessageListener``."""
    if isinstance(listener, ReliableMessageListener):
        if on_error is not None:
            raise InvalidArgumentError(
                "on_error cannot be combined with a ReliableMessageListener; "
                "override ReliableMessageListener.on_error instead"
            )
        return listener
    if not callable(listener):
        raise TypeError(
            f"listener must be callable, got {type(listener).__name__}"
        )
    return CallableListener(listener, loss_tolerant=loss_tolerant, on_error=on_error)
