"""Instrumentation hooks wrapped around publishes and listener dispatch."""

from __future__ import annotations

import fnmatch
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

_MATCH_CACHE_MAX_SIZE = 2048


@runtime_checkable
class InstrumentationHook(Protocol):
    """Protocol for instrumentation hooks (tracing, metrics, etc.).

    Operations are named ``reliable_topic.publish.<topic>``,
    ``reliable_topic.publish_all.<topic>`` and
    ``reliable_topic.dispatch.<topic>``.
    """

    async def __call__(
        self,
        operation: str,
        attributes: dict[str, Any],
        next_handler: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Wrap an operation with instrumentation."""
        ...


class HookRegistration:
    """A registered hook with filtering and priority."""

    def __init__(
        self,
        hook: InstrumentationHook,
        *,
        priority: int = 0,
        predicate: Callable[[str, dict[str, Any]], bool] | None = None,
        operations: list[str] | None = None,
        enabled: bool = True,
    ) -> None:
        self.hook = hook
        self.priority = priority
        self.predicate = predicate
        self.operations = operations or []
        self.enabled = enabled
        self._match_cache: dict[str, bool] = {}

    def matches(self, operation: str, attributes: dict[str, Any]) -> bool:
        """Check if this registration applies to the operation."""
        if not self.enabled:
            return False
        if self.predicate is not None and not self.predicate(operation, attributes):
            return False
        return self._matches_operation(operation)

    def _matches_operation(self, operation: str) -> bool:
        if not self.operations:
            return True
        if operation in self._match_cache:
            return self._match_cache[operation]
        matched = any(
            fnmatch.fnmatch(operation, pattern) for pattern in self.operations
        )
        if len(self._match_cache) >= _MATCH_CACHE_MAX_SIZE:
            self._match_cache.clear()
        self._match_cache[operation] = matched
        return matched

    def clear_cache(self) -> None:
        self._match_cache.clear()


class HookRegistry:
    """Registry for multiple instrumentation hooks with filtering."""

    def __init__(self) -> None:
        self._registrations: list[HookRegistration] = []

    def register(
        self,
        hook: InstrumentationHook,
        *,
        priority: int = 0,
        predicate: Callable[[str, dict[str, Any]], bool] | None = None,
        operations: list[str] | None = None,
        enabled: bool = True,
    ) -> HookRegistration:
        """Register a hook with optional filtering. Lower priority runs first."""
        registration = HookRegistration(
            hook=hook,
            priority=priority,
            predicate=predicate,
            operations=operations,
            enabled=enabled,
        )
        self._registrations.append(registration)
        self._registrations.sort(key=lambda r: r.priority)
        return registration

    async def execute_all(
        self,
        operation: str,
        attributes: dict[str, Any],
        next_handler: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Execute all matching hooks in priority order, then *next_handler*."""
        matching = [r for r in self._registrations if r.matches(operation, attributes)]
        if not matching:
            return await next_handler()

        async def pipeline(index: int = 0) -> Any:
            if index >= len(matching):
                return await next_handler()
            registration = matching[index]
            return await registration.hook(
                operation,
                attributes,
                lambda: pipeline(index + 1),
            )

        return await pipeline()

    def clear(self) -> None:
        """Remove all registrations."""
        for registration in self._registrations:
            registration.clear_cache()
        self._registrations.clear()


_hook_registry_var: ContextVar[HookRegistry | None] = ContextVar(
    "reliable_topic_hook_registry", default=None
)


def get_hook_registry() -> HookRegistry:
    """Get the hook registry for the current context.

    Creates a fresh ``HookRegistry`` on first access within each context.
    Runner tasks copy the context they were started from, so hooks must be
    registered before listeners are added.
    """
    registry = _hook_registry_var.get()
    if registry is None:
        registry = HookRegistry()
        _hook_registry_var.set(registry)
    return registry


def set_hook_registry(registry: HookRegistry) -> None:
    """Set a custom hook registry in the current context."""
    _hook_registry_var.set(registry)
