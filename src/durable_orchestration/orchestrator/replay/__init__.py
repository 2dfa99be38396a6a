"""The replay engine.

Orchestrator code is re-executed from the start on every invocation. Work that
history already records is resolved from history; work it does not record is
returned to the host as actions.
"""

from __future__ import annotations

__all__ = [
    "ActionType",
    "ContinueAsNewAlreadyInvokedError",
    "CustomStatusTooLargeError",
    "DurableHttpRequest",
    "DurableHttpResponse",
    "DurableOrchestrationContext",
    "DurableOrchestrationError",
    "EmptyTaskListError",
    "EventType",
    "HistoryEvent",
    "ManagedIdentityTokenSource",
    "NonDeterminismError",
    "OrchestrationExecutor",
    "RetryNotAllowedError",
    "RetryOptions",
    "Task",
    "TaskAlreadyCompletedError",
    "TaskFailedError",
    "TaskState",
]

from durable_orchestration.orchestrator.replay.actions import ActionType
from durable_orchestration.orchestrator.replay.context import DurableOrchestrationContext
from durable_orchestration.orchestrator.replay.errors import (
    ContinueAsNewAlreadyInvokedError,
    CustomStatusTooLargeError,
    DurableOrchestrationError,
    EmptyTaskListError,
    NonDeterminismError,
    RetryNotAllowedError,
    TaskAlreadyCompletedError,
    TaskFailedError,
)
from durable_orchestration.orchestrator.replay.events import EventType, HistoryEvent
from durable_orchestration.orchestrator.replay.executor import OrchestrationExecutor
from durable_orchestration.orchestrator.replay.http import (
    DurableHttpRequest,
    DurableHttpResponse,
    ManagedIdentityTokenSource,
)
from durable_orchestration.orchestrator.replay.retry import RetryOptions
from durable_orchestration.orchestrator.replay.tasks import Task, TaskState
