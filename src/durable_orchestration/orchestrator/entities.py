"""Durable entities: addressable units of mutable state.

An entity function receives a ``DurableEntityContext`` and handles one named
operation at a time. Operations are delivered in batches; each operation sees
the state committed by the previous one. An operation that raises leaves the
state exactly as the last successful operation committed it.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from durable_orchestration.orchestrator.replay.errors import EntityNotRegisteredError

logger = logging.getLogger(__name__)

EntityFunction = Callable[["DurableEntityContext"], None]


@dataclass(frozen=True, slots=True)
class EntityId:
    """Entity class name plus key. The class name is case-insensitive."""

    name: str
    key: str

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Entity name must be non-empty")
        if self.key is None:
            raise ValueError("Entity key must not be None")
        object.__setattr__(self, "name", self.name.lower())

    def __str__(self) -> str:
        return f"@{self.name}@{self.key}"

    @staticmethod
    def parse(value: str) -> EntityId:
        """Parse the ``@name@key`` scheduler form."""

        if not value.startswith("@"):
            raise ValueError(f"Not an entity instance id: {value!r}")
        name, sep, key = value[1:].partition("@")
        if not sep or not name:
            raise ValueError(f"Not an entity instance id: {value!r}")
        return EntityId(name=name, key=key)


@dataclass(frozen=True, slots=True)
class EntityStateResponse:
    entity_exists: bool
    entity_state: Any = None


@dataclass(frozen=True, slots=True)
class EntityOperation:
    name: str
    input: Any = None


@dataclass(frozen=True, slots=True)
class EntityOperationResult:
    ok: bool
    result: Any = None
    error: str | None = None
    error_type: str | None = None


@dataclass(frozen=True, slots=True)
class EntityBatchResult:
    results: list[EntityOperationResult]
    entity_exists: bool
    state: Any = None


class DurableEntityContext:
    """The API entity functions program against for a single operation."""

    def __init__(
        self,
        entity_id: EntityId,
        operation: EntityOperation,
        *,
        state: Any,
        exists: bool,
    ) -> None:
        self._entity_id = entity_id
        self._operation = operation
        self._state = state
        self._exists = exists
        self._result: Any = None
        self._destructed = False

    @property
    def entity_id(self) -> EntityId:
        return self._entity_id

    @property
    def entity_name(self) -> str:
        return self._entity_id.name

    @property
    def entity_key(self) -> str:
        return self._entity_id.key

    @property
    def operation_name(self) -> str:
        return self._operation.name

    def get_input(self) -> Any:
        return self._operation.input

    def get_state(self, initializer: Callable[[], Any] | None = None) -> Any:
        """Current state, or the initializer's value when the entity has none yet."""

        if not self._exists:
            return initializer() if initializer is not None else None
        return self._state

    def set_state(self, state: Any) -> None:
        self._state = state
        self._exists = True
        self._destructed = False

    def set_result(self, result: Any) -> None:
        self._result = result

    def destruct_on_exit(self) -> None:
        """Delete the entity's state once the current operation finishes."""

        self._destructed = True

    @property
    def result(self) -> Any:
        return self._result


class EntityExecutor:
    """Runs batches of entity operations against a registered entity function."""

    def __init__(self, lookup: Callable[[str], EntityFunction | None]) -> None:
        self._lookup = lookup

    def execute(
        self,
        entity_id: EntityId,
        state: EntityStateResponse,
        operations: Sequence[EntityOperation],
    ) -> EntityBatchResult:
        fn = self._lookup(entity_id.name)
        if fn is None:
            raise EntityNotRegisteredError(f"Entity function named '{entity_id.name}' was not registered")

        exists = state.entity_exists
        committed = _snapshot(state.entity_state) if exists else None
        results: list[EntityOperationResult] = []

        for operation in operations:
            ctx = DurableEntityContext(
                entity_id, operation, state=_snapshot(committed), exists=exists
            )
            try:
                returned = fn(ctx)
            except Exception as e:
                logger.info(
                    "Entity operation failed",
                    extra={"entity_id": str(entity_id), "operation": operation.name, "error": str(e)},
                )
                results.append(
                    EntityOperationResult(ok=False, error=str(e), error_type=type(e).__name__)
                )
                continue

            if ctx._destructed:
                exists, committed = False, None
            elif ctx._exists:
                exists, committed = True, _snapshot(ctx._state)

            result = ctx.result if returned is None else returned
            results.append(EntityOperationResult(ok=True, result=result))
            logger.debug(
                "Entity operation completed",
                extra={"entity_id": str(entity_id), "operation": operation.name},
            )

        return EntityBatchResult(results=results, entity_exists=exists, state=committed)


def _snapshot(value: Any) -> Any:
    # State must be JSON-serialisable; a round trip also isolates it from the caller.
    if value is None:
        return None
    return json.loads(json.dumps(value))
