"""ListenerRegistry — live listener runners of one topic proxy."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .exceptions import InvalidArgumentError

if TYPE_CHECKING:
    from .runner import ListenerRunner


class ListenerRegistry:
    """Maps registration ids to their runners.

    Owned by a single topic proxy; there is no process-wide registry.
    Every mutation completes without awaiting, so concurrent registrations
    and removals on the event loop never observe a half-applied change.
    """

    def __init__(self) -> None:
        self._runners: dict[str, ListenerRunner] = {}

    def add(self, runner: ListenerRunner) -> None:
        if runner.registration_id in self._runners:
            raise InvalidArgumentError(
                f"Listener {runner.registration_id!r} is already registered"
            )
        self._runners[runner.registration_id] = runner

    def get(self, registration_id: str) -> ListenerRunner | None:
        return self._runners.get(registration_id)

    def remove(self, registration_id: str) -> ListenerRunner | None:
        """Remove and return the runner, or None if it is not registered."""
        return self._runners.pop(registration_id, None)

    def discard(self, runner: ListenerRunner) -> None:
        """Remove *runner* if it is still the one registered under its id."""
        if self._runners.get(runner.registration_id) is runner:
            del self._runners[runner.registration_id]

    def drain(self) -> list[ListenerRunner]:
        """Remove and return all runners."""
        runners = list(self._runners.values())
        self._runners.clear()
        return runners

    def ids(self) -> list[str]:
        return list(self._runners)

    def __contains__(self, registration_id: object) -> bool:
        return registration_id in self._runners

    def __len__(self) -> int:
        return len(self._runners)
