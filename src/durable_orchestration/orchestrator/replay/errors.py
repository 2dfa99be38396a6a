"""Error types raised by the replay engine.

There are three families, and they surface in different places:

- Orchestrator-visible failures (``TaskFailedError``) are thrown into the
  orchestrator generator when a task rejects. Orchestrator code may catch them.
- Determinism violations (``NonDeterminismError``) abort the invocation and are
  raised out of ``OrchestrationExecutor.execute``. They are never converted
  into an orchestration failure.
- Protocol errors (empty ``any`` list, oversized custom status, scheduling after
  ``continue_as_new``) are raised synchronously at the call site.

The ``*NotRegisteredError`` lookup errors are raised by hosts and executors
resolving a function by name; ``registry`` re-exports them.
"""

from __future__ import annotations


class DurableOrchestrationError(Exception):
    """Base exception for durable-orchestration."""


class TaskFailedError(DurableOrchestrationError):
    """An activity, sub-orchestration, entity operation or HTTP call failed."""

    def __init__(self, message: str, *, reason: str | None = None, details: object = None) -> None:
        super().__init__(message)
        self.reason = reason if reason is not None else message
        self.details = details


class NonDeterminismError(DurableOrchestrationError):
    """Replayed orchestrator code diverged from the recorded history."""


class EmptyTaskListError(DurableOrchestrationError, ValueError):
    """``task_any`` was called with no tasks."""


class ContinueAsNewAlreadyInvokedError(DurableOrchestrationError):
    """A scheduling method was called after ``continue_as_new``."""


class CustomStatusTooLargeError(DurableOrchestrationError, ValueError):
    """The serialised custom status exceeds the size cap."""


class TaskAlreadyCompletedError(DurableOrchestrationError):
    """A completed task was cancelled."""


class RetryNotAllowedError(DurableOrchestrationError):
    """``with_retry`` was applied to a task whose action is already fixed."""


class OrchestrationStateError(NonDeterminismError):
    """The history is malformed and cannot drive an orchestration."""


class OrchestratorNotRegisteredError(DurableOrchestrationError, ValueError):
    """An orchestration was started for an unknown orchestrator name."""


class ActivityNotRegisteredError(DurableOrchestrationError, ValueError):
    """An activity was invoked for an unknown activity name."""


class EntityNotRegisteredError(DurableOrchestrationError, ValueError):
    """An entity operation targeted an unknown entity name."""
