"""ReliableTopicMessage — immutable unit written to the ringbuffer."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def current_time_millis() -> int:
    """Wall-clock epoch milliseconds."""
    return int(time.time() * 1000)


class ReliableTopicMessage(BaseModel):
    """Immutable envelope stored in the ringbuffer.

    Carries the serialized payload, the publish time and the address of the
    publishing client. Lives until the ringbuffer evicts it, regardless of
    whether any listener read it.
    """

    model_config = ConfigDict(frozen=True)

    payload: bytes
    publish_time: int = Field(default_factory=current_time_millis, ge=0)
    publisher_address: str | None = None


@dataclass(frozen=True)
class Message:
    """A message as delivered to a listener."""

    topic: str
    message_object: Any
    publishing_time: int
    publisher: str | None
    sequence: int
