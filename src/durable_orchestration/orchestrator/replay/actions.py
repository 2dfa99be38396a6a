"""Scheduling actions: the instructions an orchestrator invocation hands to the host.

Each action carries the sequence number (``id``) it was created with. The host
records a scheduling marker event with the same ``event_id``, which is how the
replay engine correlates history with actions on later invocations.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Protocol

from .events import EventType
from .http import HTTP_ACTIVITY_NAME, DurableHttpRequest
from .retry import RetryOptions

if TYPE_CHECKING:
    from durable_orchestration.orchestrator.entities import EntityId

_TASK_OUTCOMES = frozenset({EventType.TASK_COMPLETED, EventType.TASK_FAILED})
_SUB_ORCHESTRATION_OUTCOMES = frozenset(
    {EventType.SUB_ORCHESTRATION_INSTANCE_COMPLETED, EventType.SUB_ORCHESTRATION_INSTANCE_FAILED}
)
_ENTITY_OUTCOMES = frozenset({EventType.ENTITY_OPERATION_COMPLETED, EventType.ENTITY_OPERATION_FAILED})
_TIMER_OUTCOMES = frozenset({EventType.TIMER_FIRED})


class ActionType(str, Enum):
    CALL_ACTIVITY = "CallActivity"
    CALL_ACTIVITY_WITH_RETRY = "CallActivityWithRetry"
    CALL_SUB_ORCHESTRATOR = "CallSubOrchestrator"
    CALL_SUB_ORCHESTRATOR_WITH_RETRY = "CallSubOrchestratorWithRetry"
    CREATE_TIMER = "CreateTimer"
    WAIT_FOR_EXTERNAL_EVENT = "WaitForExternalEvent"
    CALL_ENTITY = "CallEntity"
    CALL_HTTP = "CallHttp"
    CONTINUE_AS_NEW = "ContinueAsNew"


class Action(Protocol):
    """An immutable scheduling request."""

    action_type: ClassVar[ActionType]
    # Scheduling marker the host records for this action; None when the host records none.
    scheduled_event: ClassVar[EventType | None]
    # History events allowed to settle this action.
    completion_events: ClassVar[frozenset[EventType]]

    @property
    def id(self) -> int: ...

    @property
    def correlation_name(self) -> str | None: ...

    def to_json(self) -> dict[str, object]: ...


@dataclass(frozen=True, slots=True)
class CallActivityAction:
    action_type: ClassVar[ActionType] = ActionType.CALL_ACTIVITY
    scheduled_event: ClassVar[EventType | None] = EventType.TASK_SCHEDULED
    completion_events: ClassVar[frozenset[EventType]] = _TASK_OUTCOMES

    id: int
    function_name: str
    input: Any = None

    @property
    def correlation_name(self) -> str | None:
        return self.function_name

    def to_json(self) -> dict[str, object]:
        return {
            "actionType": self.action_type.value,
            "id": self.id,
            "functionName": self.function_name,
            "input": self.input,
        }


@dataclass(frozen=True, slots=True)
class CallActivityWithRetryAction:
    action_type: ClassVar[ActionType] = ActionType.CALL_ACTIVITY_WITH_RETRY
    scheduled_event: ClassVar[EventType | None] = EventType.TASK_SCHEDULED
    completion_events: ClassVar[frozenset[EventType]] = _TASK_OUTCOMES

    id: int
    function_name: str
    retry_options: RetryOptions
    input: Any = None
    attempt: int = 1

    @property
    def correlation_name(self) -> str | None:
        return self.function_name

    def to_json(self) -> dict[str, object]:
        return {
            "actionType": self.action_type.value,
            "id": self.id,
            "functionName": self.function_name,
            "input": self.input,
            "retryOptions": self.retry_options.to_json(),
            "attempt": self.attempt,
        }


@dataclass(frozen=True, slots=True)
class CallSubOrchestratorAction:
    action_type: ClassVar[ActionType] = ActionType.CALL_SUB_ORCHESTRATOR
    scheduled_event: ClassVar[EventType | None] = EventType.SUB_ORCHESTRATION_INSTANCE_CREATED
    completion_events: ClassVar[frozenset[EventType]] = _SUB_ORCHESTRATION_OUTCOMES

    id: int
    function_name: str
    instance_id: str
    input: Any = None

    @property
    def correlation_name(self) -> str | None:
        return self.function_name

    def to_json(self) -> dict[str, object]:
        return {
            "actionType": self.action_type.value,
            "id": self.id,
            "functionName": self.function_name,
            "instanceId": self.instance_id,
            "input": self.input,
        }


@dataclass(frozen=True, slots=True)
class CallSubOrchestratorWithRetryAction:
    action_type: ClassVar[ActionType] = ActionType.CALL_SUB_ORCHESTRATOR_WITH_RETRY
    scheduled_event: ClassVar[EventType | None] = EventType.SUB_ORCHESTRATION_INSTANCE_CREATED
    completion_events: ClassVar[frozenset[EventType]] = _SUB_ORCHESTRATION_OUTCOMES

    id: int
    function_name: str
    retry_options: RetryOptions
    instance_id: str
    input: Any = None
    attempt: int = 1

    @property
    def correlation_name(self) -> str | None:
        return self.function_name

    def to_json(self) -> dict[str, object]:
        return {
            "actionType": self.action_type.value,
            "id": self.id,
            "functionName": self.function_name,
            "instanceId": self.instance_id,
            "input": self.input,
            "retryOptions": self.retry_options.to_json(),
            "attempt": self.attempt,
        }


@dataclass(frozen=True, slots=True)
class CreateTimerAction:
    action_type: ClassVar[ActionType] = ActionType.CREATE_TIMER
    scheduled_event: ClassVar[EventType | None] = EventType.TIMER_CREATED
    completion_events: ClassVar[frozenset[EventType]] = _TIMER_OUTCOMES

    id: int
    fire_at: datetime
    is_canceled: bool = False

    @property
    def correlation_name(self) -> str | None:
        return None

    def to_json(self) -> dict[str, object]:
        return {
            "actionType": self.action_type.value,
            "id": self.id,
            "fireAt": self.fire_at.isoformat(),
            "isCanceled": self.is_canceled,
        }


@dataclass(frozen=True, slots=True)
class WaitForExternalEventAction:
    action_type: ClassVar[ActionType] = ActionType.WAIT_FOR_EXTERNAL_EVENT
    scheduled_event: ClassVar[EventType | None] = None
    completion_events: ClassVar[frozenset[EventType]] = frozenset()

    id: int
    event_name: str

    @property
    def correlation_name(self) -> str | None:
        return self.event_name

    def to_json(self) -> dict[str, object]:
        return {
            "actionType": self.action_type.value,
            "id": self.id,
            "reason": "ExternalEvent",
            "externalEventName": self.event_name,
        }


@dataclass(frozen=True, slots=True)
class CallEntityAction:
    action_type: ClassVar[ActionType] = ActionType.CALL_ENTITY
    scheduled_event: ClassVar[EventType | None] = EventType.ENTITY_OPERATION_CALLED
    completion_events: ClassVar[frozenset[EventType]] = _ENTITY_OUTCOMES

    id: int
    entity_id: EntityId
    operation: str
    input: Any = None

    @property
    def correlation_name(self) -> str | None:
        return self.operation

    def to_json(self) -> dict[str, object]:
        return {
            "actionType": self.action_type.value,
            "id": self.id,
            "instanceId": str(self.entity_id),
            "operation": self.operation,
            "input": self.input,
        }


@dataclass(frozen=True, slots=True)
class CallHttpAction:
    action_type: ClassVar[ActionType] = ActionType.CALL_HTTP
    scheduled_event: ClassVar[EventType | None] = EventType.TASK_SCHEDULED
    completion_events: ClassVar[frozenset[EventType]] = _TASK_OUTCOMES

    id: int
    http_request: DurableHttpRequest

    @property
    def correlation_name(self) -> str | None:
        return HTTP_ACTIVITY_NAME

    def to_json(self) -> dict[str, object]:
        return {
            "actionType": self.action_type.value,
            "id": self.id,
            "httpRequest": self.http_request.to_json(),
        }


@dataclass(frozen=True, slots=True)
class ContinueAsNewAction:
    action_type: ClassVar[ActionType] = ActionType.CONTINUE_AS_NEW
    scheduled_event: ClassVar[EventType | None] = None
    completion_events: ClassVar[frozenset[EventType]] = frozenset()

    id: int
    input: Any = None

    @property
    def correlation_name(self) -> str | None:
        return None

    def to_json(self) -> dict[str, object]:
        return {"actionType": self.action_type.value, "id": self.id, "input": self.input}


RetryableAction = CallActivityWithRetryAction | CallSubOrchestratorWithRetryAction


def with_retry_action(action: Action, retry_options: RetryOptions) -> RetryableAction:
    """The retrying counterpart of a plain activity or sub-orchestrator action."""

    if isinstance(action, CallActivityAction):
        return CallActivityWithRetryAction(
            id=action.id,
            function_name=action.function_name,
            retry_options=retry_options,
            input=action.input,
        )
    if isinstance(action, CallSubOrchestratorAction):
        return CallSubOrchestratorWithRetryAction(
            id=action.id,
            function_name=action.function_name,
            retry_options=retry_options,
            instance_id=action.instance_id,
            input=action.input,
        )
    raise TypeError(f"{action.action_type.value} actions cannot be retried")


def next_attempt(action: RetryableAction, new_id: int) -> RetryableAction:
    return replace(action, id=new_id, attempt=action.attempt + 1)
