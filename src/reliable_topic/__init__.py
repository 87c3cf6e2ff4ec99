"""Reliable publish/subscribe topics over capacity-bounded ringbuffers."""

from __future__ import annotations

from .adapters.memory import InMemoryRingbuffer, InMemoryRingbufferStore
from .client import ReliableTopicClient
from .config import (
    ClientConfig,
    ReliableTopicConfig,
    RingbufferConfig,
    TopicOverloadPolicy,
)
from .envelope import Message, ReliableTopicMessage
from .exceptions import (
    ClientShutdownError,
    InfrastructureError,
    InvalidArgumentError,
    ReliableTopicError,
    RingbufferConnectionError,
    SerializationError,
    StaleSequenceError,
    TopicDestroyedError,
    TopicOverloadError,
    TopicPublishTimeoutError,
)
from .instrumentation import HookRegistry, get_hook_registry, set_hook_registry
from .listener import CallableListener, ReliableMessageListener
from .overload import OverloadPolicyEnforcer
from .ports import IPayloadSerializer, IRingbuffer, IRingbufferProvider, OverflowPolicy
from .retry import RetryPolicy
from .runner import ListenerRunner, RunnerState
from .serialization import JsonPayloadSerializer
from .topic import ReliableTopicProxy

__all__ = [
    "CallableListener",
    "ClientConfig",
    "ClientShutdownError",
    "HookRegistry",
    "IPayloadSerializer",
    "IRingbuffer",
    "IRingbufferProvider",
    "InMemoryRingbuffer",
    "InMemoryRingbufferStore",
    "InfrastructureError",
    "InvalidArgumentError",
    "JsonPayloadSerializer",
    "ListenerRunner",
    "Message",
    "OverflowPolicy",
    "OverloadPolicyEnforcer",
    "ReliableMessageListener",
    "ReliableTopicClient",
    "ReliableTopicConfig",
    "ReliableTopicError",
    "ReliableTopicMessage",
    "ReliableTopicProxy",
    "RetryPolicy",
    "RingbufferConfig",
    "RingbufferConnectionError",
    "RunnerState",
    "SerializationError",
    "StaleSequenceError",
    "TopicDestroyedError",
    "TopicOverloadError",
    "TopicOverloadPolicy",
    "TopicPublishTimeoutError",
    "get_hook_registry",
    "set_hook_registry",
]
