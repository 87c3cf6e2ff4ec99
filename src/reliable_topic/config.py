"""Immutable configuration models for topics, ringbuffers and the client."""

from __future__ import annotations

import fnmatch
import socket
from collections.abc import Mapping
from enum import Enum
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_CONFIG_NAME = "default"

C = TypeVar("C")


class TopicOverloadPolicy(str, Enum):
    """What a publish does when the topic's ringbuffer has no free capacity."""

    DISCARD_OLDEST = "DISCARD_OLDEST"
    """Overwrite the oldest entries, even if they are still inside their TTL."""

    DISCARD_NEWEST = "DISCARD_NEWEST"
    """Silently drop the message(s) being published."""

    BLOCK = "BLOCK"
    """Retry with backoff until space frees up or the wait budget runs out."""

    ERROR = "ERROR"
    """Fail immediately with ``TopicOverloadError``."""


class ReliableTopicConfig(BaseModel):
    """Per-topic configuration, resolved once when the topic proxy is created."""

    model_config = ConfigDict(frozen=True)

    overload_policy: TopicOverloadPolicy = TopicOverloadPolicy.BLOCK
    read_batch_size: int = Field(default=10, ge=1)
    loss_tolerant: bool = False
    block_timeout: float = Field(default=60.0, gt=0)
    block_initial_backoff: float = Field(default=0.1, gt=0)
    block_max_backoff: float = Field(default=2.0, gt=0)

    @model_validator(mode="after")
    def _check_backoff(self) -> ReliableTopicConfig:
        if self.block_initial_backoff > self.block_max_backoff:
            raise ValueError("block_initial_backoff must be <= block_max_backoff")
        return self


class RingbufferConfig(BaseModel):
    """Capacity and retention of an in-memory ringbuffer.

    ``time_to_live_seconds == 0`` disables expiry; such a ringbuffer always
    reports its full capacity as remaining.
    """

    model_config = ConfigDict(frozen=True)

    capacity: int = Field(default=10_000, ge=1)
    time_to_live_seconds: float = Field(default=0.0, ge=0)


def _specificity(pattern: str) -> int:
    return len(pattern) - sum(pattern.count(ch) for ch in "*?[]")


def lookup_by_pattern(configs: Mapping[str, C], name: str) -> C | None:
    """Find the configuration for *name*.

    Exact names win, then the most specific matching wildcard pattern,
    then the ``"default"`` entry.
    """
    if name in configs:
        return configs[name]
    matches = [
        pattern
        for pattern in configs
        if pattern != DEFAULT_CONFIG_NAME
        and any(ch in pattern for ch in "*?[")
        and fnmatch.fnmatchcase(name, pattern)
    ]
    if matches:
        return configs[max(matches, key=_specificity)]
    return configs.get(DEFAULT_CONFIG_NAME)


class ClientConfig(BaseModel):
    """Client-wide configuration.

    Usage::

        config = ClientConfig(
            reliable_topics={
                "orders": ReliableTopicConfig(
                    overload_policy=TopicOverloadPolicy.ERROR
                ),
                "metrics-*": ReliableTopicConfig(loss_tolerant=True),
            }
        )
    """

    model_config = ConfigDict(frozen=True)

    reliable_topics: dict[str, ReliableTopicConfig] = Field(default_factory=dict)
    publisher_address: str | None = None

    def get_reliable_topic_config(self, name: str) -> ReliableTopicConfig:
        """Resolve the configuration for topic *name*."""
        return lookup_by_pattern(self.reliable_topics, name) or ReliableTopicConfig()

    def resolve_publisher_address(self) -> str:
        """Configured publisher address, or this host's name."""
        return self.publisher_address or socket.gethostname()
