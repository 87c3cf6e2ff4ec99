"""JsonPayloadSerializer — JSON roundtrip for published objects."""

from __future__ import annotations

import json
from typing import Any

from .exceptions import SerializationError
from .ports.serialization import IPayloadSerializer


def _json_serializer(obj: Any) -> Any:
    """Serialize datetime, pydantic models and other non-JSON types."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


class JsonPayloadSerializer(IPayloadSerializer):
    """Serialize published objects to UTF-8 JSON bytes.

    Objects come back as plain JSON values (dicts, lists, numbers, strings).
    """

    def to_data(self, obj: Any) -> bytes:
        try:
            return json.dumps(obj, default=_json_serializer).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise SerializationError(str(e)) from e

    def to_object(self, data: bytes) -> Any:
        try:
            return json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise SerializationError(str(e)) from e
