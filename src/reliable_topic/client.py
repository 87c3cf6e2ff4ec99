"""ReliableTopicClient — entry point resolving topic proxies by name."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .config import ClientConfig
from .exceptions import ClientShutdownError, InvalidArgumentError
from .topic import ReliableTopicProxy

if TYPE_CHECKING:
    from .envelope import ReliableTopicMessage
    from .ports.ringbuffer import IRingbufferProvider
    from .ports.serialization import IPayloadSerializer
    from .retry import RetryPolicy

logger = logging.getLogger("reliable_topic.client")


class ReliableTopicClient:
    """Creates and caches one :class:`ReliableTopicProxy` per topic name.

    Each topic's configuration is resolved from *config* when its proxy is
    first created and stays fixed afterwards.

    Usage::

        store = InMemoryRingbufferStore(
            {"*": RingbufferConfig(capacity=1000, time_to_live_seconds=30)}
        )
        client = ReliableTopicClient(store, ClientConfig(...))
        topic = client.get_reliable_topic("orders")
        ...
        await client.shutdown()
    """

    def __init__(
        self,
        ringbuffers: IRingbufferProvider[ReliableTopicMessage],
        config: ClientConfig | None = None,
        *,
        serializer: IPayloadSerializer | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._ringbuffers = ringbuffers
        self._config = config or ClientConfig()
        self._serializer = serializer
        self._retry_policy = retry_policy
        self._publisher_address = self._config.resolve_publisher_address()
        self._topics: dict[str, ReliableTopicProxy] = {}
        self._running = True

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def publisher_address(self) -> str:
        return self._publisher_address

    @property
    def is_running(self) -> bool:
        return self._running

    def get_reliable_topic(self, name: str) -> ReliableTopicProxy:
        """Return the proxy for topic *name*, creating it on first use."""
        if not self._running:
            raise ClientShutdownError("ReliableTopicClient has been shut down")
        if not name:
            raise InvalidArgumentError("topic name must not be empty")
        proxy = self._topics.get(name)
        if proxy is None or proxy.is_destroyed:
            proxy = ReliableTopicProxy(
                name,
                self._ringbuffers.get_ringbuffer(name),
                self._config.get_reliable_topic_config(name),
                serializer=self._serializer,
                publisher_address=self._publisher_address,
                retry_policy=self._retry_policy,
            )
            self._topics[name] = proxy
            logger.debug(
                "Created reliable topic %s (overload_policy=%s)",
                name,
                proxy.config.overload_policy.value,
            )
        return proxy

    def topic_names(self) -> list[str]:
        return list(self._topics)

    async def shutdown(self) -> None:
        """Destroy every topic proxy, cancelling all listener runners."""
        if not self._running:
            return
        self._running = False
        proxies = list(self._topics.values())
        self._topics.clear()
        await asyncio.gather(*(proxy.destroy() for proxy in proxies))
        logger.info("ReliableTopicClient shut down (%d topic(s))", len(proxies))
