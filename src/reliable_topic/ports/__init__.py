from .ringbuffer import (
    NO_SPACE,
    IRingbuffer,
    IRingbufferProvider,
    OverflowPolicy,
    ReadResultSet,
)
from .serialization import IPayloadSerializer

__all__ = [
    "NO_SPACE",
    "IPayloadSerializer",
    "IRingbuffer",
    "IRingbufferProvider",
    "OverflowPolicy",
    "ReadResultSet",
]
