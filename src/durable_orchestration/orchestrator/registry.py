"""Name-based registry of orchestrator, activity and entity functions."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

from durable_orchestration.orchestrator.replay.errors import (
    ActivityNotRegisteredError,
    EntityNotRegisteredError,
    OrchestratorNotRegisteredError,
)

__all__ = [
    "ActivityNotRegisteredError",
    "EntityNotRegisteredError",
    "FunctionRegistry",
    "OrchestratorNotRegisteredError",
    "get_name",
]

F = TypeVar("F", bound=Callable[..., Any])


def get_name(fn: Callable[..., Any]) -> str:
    name = getattr(fn, "__durable_name__", None) or getattr(fn, "__name__", None)
    if not isinstance(name, str) or not name:
        raise ValueError(f"Cannot infer a function name from {fn!r}")
    return name


class FunctionRegistry:
    """Holds the functions a host may invoke by name.

    Entity names are case-insensitive, matching ``EntityId``.
    """

    def __init__(self) -> None:
        self.orchestrators: dict[str, Callable[..., Any]] = {}
        self.activities: dict[str, Callable[..., Any]] = {}
        self.entities: dict[str, Callable[..., Any]] = {}

    def add_orchestrator(self, fn: Callable[..., Any], name: str | None = None) -> str:
        return self._add(self.orchestrators, "orchestrator", fn, name)

    def add_activity(self, fn: Callable[..., Any], name: str | None = None) -> str:
        return self._add(self.activities, "activity", fn, name)

    def add_entity(self, fn: Callable[..., Any], name: str | None = None) -> str:
        if fn is None:
            raise ValueError("An entity function argument is required")
        return self._add(self.entities, "entity", fn, (name or get_name(fn)).lower())

    def get_orchestrator(self, name: str) -> Callable[..., Any] | None:
        return self.orchestrators.get(name)

    def get_activity(self, name: str) -> Callable[..., Any] | None:
        return self.activities.get(name)

    def get_entity(self, name: str) -> Callable[..., Any] | None:
        return self.entities.get(name.lower())

    def orchestrator(self, name: str | None = None) -> Callable[[F], F]:
        """Decorator form of ``add_orchestrator``."""

        def decorate(fn: F) -> F:
            self.add_orchestrator(fn, name)
            return fn

        return decorate

    def activity(self, name: str | None = None) -> Callable[[F], F]:
        def decorate(fn: F) -> F:
            self.add_activity(fn, name)
            return fn

        return decorate

    def entity(self, name: str | None = None) -> Callable[[F], F]:
        def decorate(fn: F) -> F:
            self.add_entity(fn, name)
            return fn

        return decorate

    @staticmethod
    def _add(
        table: dict[str, Callable[..., Any]],
        kind: str,
        fn: Callable[..., Any],
        name: str | None,
    ) -> str:
        if fn is None:
            raise ValueError(f"An {kind} function argument is required")
        resolved = name or get_name(fn)
        if resolved in table:
            raise ValueError(f"A '{resolved}' {kind} already exists")
        table[resolved] = fn
        return resolved
