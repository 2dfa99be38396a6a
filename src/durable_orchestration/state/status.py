"""Status models for orchestration instances.

``OrchestrationResult`` is what one invocation of the replay engine hands back
to the host. ``DurableOrchestrationStatus`` is the read model external clients
get from status queries.
"""

from __future__ import annotations

import traceback
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class OrchestrationRuntimeStatus(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    CONTINUED_AS_NEW = "ContinuedAsNew"
    FAILED = "Failed"
    CANCELED = "Canceled"
    TERMINATED = "Terminated"

    @property
    def is_terminal(self) -> bool:
        return self in {
            OrchestrationRuntimeStatus.COMPLETED,
            OrchestrationRuntimeStatus.FAILED,
            OrchestrationRuntimeStatus.CANCELED,
            OrchestrationRuntimeStatus.TERMINATED,
        }


class FailureDetails(BaseModel):
    error_type: str
    message: str
    stack_trace: str | None = None

    @staticmethod
    def from_exception(exc: BaseException) -> FailureDetails:
        return FailureDetails(
            error_type=type(exc).__name__,
            message=str(exc),
            stack_trace="".join(traceback.format_exception(exc)) or None,
        )


class OrchestrationResult(BaseModel):
    """Outcome of a single orchestrator invocation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    instance_id: str
    status: OrchestrationRuntimeStatus
    actions: list[Any] = Field(default_factory=list)
    output: Any = None
    error: FailureDetails | None = None
    custom_status: Any = None
    new_input: Any = None

    @property
    def is_done(self) -> bool:
        return self.status != OrchestrationRuntimeStatus.RUNNING

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "instanceId": self.instance_id,
            "isDone": self.is_done,
            "status": self.status.value,
            "actions": [action.to_json() for action in self.actions],
            "output": self.output,
            "customStatus": self.custom_status,
        }
        if self.error is not None:
            out["error"] = self.error.model_dump(mode="json")
        if self.status == OrchestrationRuntimeStatus.CONTINUED_AS_NEW:
            out["newInput"] = self.new_input
        return out


class DurableOrchestrationStatus(BaseModel):
    """The status of an orchestration instance as reported to external clients."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    instance_id: str = Field(alias="instanceId")
    created_time: datetime = Field(alias="createdTime")
    last_updated_time: datetime = Field(alias="lastUpdatedTime")
    input: Any = None
    output: Any = None
    runtime_status: OrchestrationRuntimeStatus = Field(alias="runtimeStatus")
    custom_status: Any = Field(default=None, alias="customStatus")
    history: list[Any] | None = None
