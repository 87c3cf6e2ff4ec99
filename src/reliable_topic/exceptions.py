"""Exceptions for reliable-topic."""

from __future__ import annotations


class ReliableTopicError(Exception):
    """Root exception for the reliable-topic package."""


class InvalidArgumentError(ReliableTopicError, ValueError):
    """Raised when an argument is absent or outside its valid range."""


class TopicOverloadError(ReliableTopicError):
    """Raised by the ERROR overload policy when the ringbuffer has no space.

    The ringbuffer is left unchanged.
    """

    def __init__(self, topic: str, item_count: int) -> None:
        self.topic = topic
        self.item_count = item_count
        super().__init__(
            f"Failed to publish {item_count} message(s) on topic {topic!r}: "
            "ringbuffer has no remaining capacity"
        )


class TopicPublishTimeoutError(ReliableTopicError, TimeoutError):
    """Raised by the BLOCK overload policy when its wait budget is exhausted."""

    def __init__(self, topic: str, item_count: int, timeout: float) -> None:
        self.topic = topic
        self.item_count = item_count
        self.timeout = timeout
        super().__init__(
            f"Failed to publish {item_count} message(s) on topic {topic!r} "
            f"within {timeout}s: ringbuffer stayed full"
        )


class ClientShutdownError(ReliableTopicError, RuntimeError):
    """Raised when a client is used after shutdown."""


class TopicDestroyedError(ReliableTopicError):
    """Raised when a destroyed topic proxy is used."""


class StaleSequenceError(ReliableTopicError):
    """Raised when a read starts below the ringbuffer's head sequence.

    The entries were evicted before they were read; ``head_sequence`` is the
    oldest sequence still retained.
    """

    def __init__(self, sequence: int, head_sequence: int) -> None:
        self.sequence = sequence
        self.head_sequence = head_sequence
        super().__init__(
            f"Sequence {sequence} is smaller than head sequence {head_sequence}"
        )


class InfrastructureError(ReliableTopicError):
    """Base class for infrastructure failures (ringbuffer, serialization)."""


class RingbufferConnectionError(InfrastructureError):
    """Raised when the ringbuffer cannot be reached. Treated as transient."""


class SerializationError(InfrastructureError):
    """Raised when payload serialization or deserialization fails."""
