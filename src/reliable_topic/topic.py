"""ReliableTopicProxy — publish/subscribe facade over one topic ringbuffer."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from .config import ReliableTopicConfig
from .envelope import ReliableTopicMessage
from .exceptions import InvalidArgumentError, TopicDestroyedError
from .id_generator import IIDGenerator, UUID4Generator
from .instrumentation import get_hook_registry
from .listener import to_reliable_listener
from .overload import OverloadPolicyEnforcer
from .registry import ListenerRegistry
from .runner import ListenerRunner, RunnerState
from .serialization import JsonPayloadSerializer

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .listener import ErrorCallback, MessageCallback, ReliableMessageListener
    from .ports.ringbuffer import IRingbuffer
    from .ports.serialization import IPayloadSerializer
    from .retry import RetryPolicy

logger = logging.getLogger("reliable_topic.topic")


class ReliableTopicProxy:
    """A reliable topic backed by a ringbuffer.

    Publishes go through the topic's overload policy. Every listener gets its
    own :class:`ListenerRunner` with a private cursor, so listeners progress
    independently and a slow one never holds back the others.

    Usage::

        topic = client.get_reliable_topic("orders")

        async def on_order(message: Message) -> None:
            print(message.message_object)

        registration_id = await topic.add_listener(on_order)
        await topic.publish({"order_id": "42"})
        await topic.remove_listener(registration_id)
    """

    def __init__(
        self,
        name: str,
        ringbuffer: IRingbuffer[ReliableTopicMessage],
        config: ReliableTopicConfig | None = None,
        *,
        serializer: IPayloadSerializer | None = None,
        publisher_address: str | None = None,
        retry_policy: RetryPolicy | None = None,
        id_generator: IIDGenerator | None = None,
    ) -> None:
        self._name = name
        self._ringbuffer = ringbuffer
        self._config = config or ReliableTopicConfig()
        self._serializer = serializer or JsonPayloadSerializer()
        self._publisher_address = publisher_address
        self._retry_policy = retry_policy
        self._id_generator = id_generator or UUID4Generator()
        self._enforcer = OverloadPolicyEnforcer(
            name, ringbuffer, self._config, retry_policy=retry_policy
        )
        self._registry = ListenerRegistry()
        self._destroyed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def config(self) -> ReliableTopicConfig:
        return self._config

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    def get_ringbuffer(self) -> IRingbuffer[ReliableTopicMessage]:
        """The ringbuffer backing this topic."""
        return self._ringbuffer

    async def publish(self, message: Any) -> None:
        """Publish one message under the topic's overload policy.

        Raises:
            InvalidArgumentError: *message* is None.
            TopicOverloadError: ERROR policy and no space.
            TopicPublishTimeoutError: BLOCK policy and the wait budget ran out.
        """
        self._check_not_destroyed()
        if message is None:
            raise InvalidArgumentError("message must not be None")
        envelope = self._to_envelope(message)
        await get_hook_registry().execute_all(
            f"reliable_topic.publish.{self._name}",
            {
                "topic": self._name,
                "message_count": 1,
                "overload_policy": self._config.overload_policy.value,
            },
            lambda: self._enforcer.add(envelope),
        )

    async def publish_all(self, messages: Iterable[Any]) -> None:
        """Publish a batch as one unit, keeping its order.

        The whole batch is accepted, discarded, blocked or refused together.
        Nothing is written if *messages* or any of its items is None.
        """
        self._check_not_destroyed()
        if messages is None:
            raise InvalidArgumentError("messages must not be None")
        items = list(messages)
        if any(item is None for item in items):
            raise InvalidArgumentError("messages must not contain None")
        if not items:
            return
        envelopes = [self._to_envelope(item) for item in items]
        await get_hook_registry().execute_all(
            f"reliable_topic.publish_all.{self._name}",
            {
                "topic": self._name,
                "message_count": len(envelopes),
                "overload_policy": self._config.overload_policy.value,
            },
            lambda: self._enforcer.add_all(envelopes),
        )

    async def add_listener(
        self,
        listener: ReliableMessageListener | MessageCallback,
        *,
        on_error: ErrorCallback | None = None,
    ) -> str:
        """Register *listener* and start its runner.

        *listener* is either a callable taking a :class:`Message` (sync or
        async) or a :class:`ReliableMessageListener`. *on_error* receives the
        terminal error of a callable listener, at most once.

        The starting sequence is resolved before this returns, so every
        message published afterwards is delivered.
        """
        self._check_not_destroyed()
        if listener is None:
            raise InvalidArgumentError("listener must not be None")
        reliable = to_reliable_listener(
            listener,
            loss_tolerant=self._config.loss_tolerant,
            on_error=on_error,
        )
        runner = ListenerRunner(
            self._id_generator.next_id(),
            self._name,
            self._ringbuffer,
            reliable,
            self._serializer,
            self._config,
            retry_policy=self._retry_policy,
            on_finished=self._registry.discard,
        )
        await runner.initialize()
        if self._destroyed:
            # destroyed while the starting sequence was resolved
            await runner.stop()
            self._check_not_destroyed()
        self._registry.add(runner)
        runner.start()
        logger.info(
            "Added listener %s to topic %s", runner.registration_id, self._name
        )
        return runner.registration_id

    async def remove_listener(self, registration_id: str) -> bool:
        """Stop and forget a listener.

        Returns False if *registration_id* is unknown or its runner already
        ended. A read already in flight may still deliver one final message.
        """
        runner = self._registry.remove(registration_id)
        if runner is None:
            return False
        await runner.stop()
        logger.info("Removed listener %s from topic %s", registration_id, self._name)
        return True

    def listener_ids(self) -> list[str]:
        """Ids of the listeners whose runners are still active."""
        return self._registry.ids()

    def listener_state(self, registration_id: str) -> RunnerState | None:
        runner = self._registry.get(registration_id)
        return runner.state if runner is not None else None

    async def destroy(self) -> None:
        """Cancel every listener runner and reject further use."""
        if self._destroyed:
            return
        self._destroyed = True
        runners = self._registry.drain()
        await asyncio.gather(*(runner.stop() for runner in runners))
        logger.info(
            "Destroyed topic %s (%d listener(s) cancelled)", self._name, len(runners)
        )

    def _to_envelope(self, message: Any) -> ReliableTopicMessage:
        return ReliableTopicMessage(
            payload=self._serializer.to_data(message),
            publisher_address=self._publisher_address,
        )

    def _check_not_destroyed(self) -> None:
        if self._destroyed:
            raise TopicDestroyedError(f"Topic {self._name!r} has been destroyed")

    def __repr__(self) -> str:
        return (
            f"ReliableTopicProxy(name={self._name!r}, "
            f"overload_policy={self._config.overload_policy.value}, "
            f"listeners={len(self._registry)})"
        )
