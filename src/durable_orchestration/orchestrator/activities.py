from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from durable_orchestration.orchestrator.replay.errors import ActivityNotRegisteredError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ActivityContext:
    """Identifies the orchestration step an activity invocation belongs to."""

    orchestration_id: str
    task_id: int


class ActivityExecutor:
    """Runs a registered activity function.

    Activities are ordinary callables ``fn(ctx, input)``. Exceptions propagate to
    the caller, which reports them to the host as a task failure.
    """

    def __init__(self, lookup: Callable[[str], Callable[..., Any] | None]) -> None:
        self._lookup = lookup

    def execute(self, name: str, orchestration_id: str, task_id: int, input: Any = None) -> Any:
        fn = self._lookup(name)
        if fn is None:
            raise ActivityNotRegisteredError(f"Activity function named '{name}' was not registered")

        logger.debug(
            "Executing activity",
            extra={"activity": name, "instance_id": orchestration_id, "task_id": task_id},
        )
        output = fn(ActivityContext(orchestration_id=orchestration_id, task_id=task_id), input)
        logger.debug(
            "Activity completed",
            extra={"activity": name, "instance_id": orchestration_id, "task_id": task_id},
        )
        return output
