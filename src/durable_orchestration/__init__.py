"""durable-orchestration.

A client-side programming model for a durable, replay-based orchestration
engine:
- orchestrator functions written as deterministic generators
- activity and entity functions looked up from a registry
- a replay engine that turns an event history into the next set of actions
"""

__version__ = "0.1.0"

from durable_orchestration.core.config import DurableConfig, ReplayConfig
from durable_orchestration.orchestrator.entities import DurableEntityContext, EntityId
from durable_orchestration.orchestrator.registry import FunctionRegistry
from durable_orchestration.orchestrator.replay import (
    DurableOrchestrationContext,
    NonDeterminismError,
    OrchestrationExecutor,
    RetryOptions,
    Task,
    TaskFailedError,
)
from durable_orchestration.state.status import OrchestrationResult, OrchestrationRuntimeStatus

__all__ = [
    "__version__",
    "DurableConfig",
    "DurableEntityContext",
    "DurableOrchestrationContext",
    "EntityId",
    "FunctionRegistry",
    "NonDeterminismError",
    "OrchestrationExecutor",
    "OrchestrationResult",
    "OrchestrationRuntimeStatus",
    "ReplayConfig",
    "RetryOptions",
    "Task",
    "TaskFailedError",
]
