import uuid
from typing import Protocol


class IIDGenerator(Protocol):
    """
    Protocol for listener registration id strategies.
    """

    def next_id(self) -> str:
        """Generates the next unique identifier."""
        ...


class UUID4Generator(IIDGenerator):
    """
    Default registration id generator using UUIDv4.
    """

    def next_id(self) -> str:
        """Returns a string representation of a random UUIDv4."""
        return str(uuid.uuid4())
