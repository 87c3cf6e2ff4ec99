from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class IPayloadSerializer(Protocol):
    """
    Port for converting published objects to and from ringbuffer payloads.

    The reliable-topic layer treats the payload as opaque bytes.
    """

    def to_data(self, obj: Any) -> bytes:
        """Encode *obj* to bytes."""
        ...

    def to_object(self, data: bytes) -> Any:
        """Decode bytes produced by :meth:`to_data`."""
        ...
