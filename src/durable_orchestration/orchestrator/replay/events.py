"""History events: the recorded, ordered log an orchestration is replayed from.

Scheduling markers carry the sequence number of the action that produced them
in ``event_id``. Completion markers point back at it through
``task_scheduled_id`` (or ``timer_id`` for timers). External events are the
exception: they are matched by name.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any


class EventType(str, Enum):
    EXECUTION_STARTED = "ExecutionStarted"
    EXECUTION_COMPLETED = "ExecutionCompleted"
    EXECUTION_TERMINATED = "ExecutionTerminated"
    TASK_SCHEDULED = "TaskScheduled"
    TASK_COMPLETED = "TaskCompleted"
    TASK_FAILED = "TaskFailed"
    SUB_ORCHESTRATION_INSTANCE_CREATED = "SubOrchestrationInstanceCreated"
    SUB_ORCHESTRATION_INSTANCE_COMPLETED = "SubOrchestrationInstanceCompleted"
    SUB_ORCHESTRATION_INSTANCE_FAILED = "SubOrchestrationInstanceFailed"
    TIMER_CREATED = "TimerCreated"
    TIMER_FIRED = "TimerFired"
    ORCHESTRATOR_STARTED = "OrchestratorStarted"
    ORCHESTRATOR_COMPLETED = "OrchestratorCompleted"
    EVENT_RAISED = "EventRaised"
    CONTINUE_AS_NEW = "ContinueAsNew"
    ENTITY_OPERATION_CALLED = "EntityOperationCalled"
    ENTITY_OPERATION_COMPLETED = "EntityOperationCompleted"
    ENTITY_OPERATION_FAILED = "EntityOperationFailed"


# Numeric codes used by the Durable Task history schema.
_NUMERIC_EVENT_TYPES: dict[int, EventType] = {
    0: EventType.EXECUTION_STARTED,
    1: EventType.EXECUTION_COMPLETED,
    3: EventType.EXECUTION_TERMINATED,
    4: EventType.TASK_SCHEDULED,
    5: EventType.TASK_COMPLETED,
    6: EventType.TASK_FAILED,
    7: EventType.SUB_ORCHESTRATION_INSTANCE_CREATED,
    8: EventType.SUB_ORCHESTRATION_INSTANCE_COMPLETED,
    9: EventType.SUB_ORCHESTRATION_INSTANCE_FAILED,
    10: EventType.TIMER_CREATED,
    11: EventType.TIMER_FIRED,
    12: EventType.ORCHESTRATOR_STARTED,
    13: EventType.ORCHESTRATOR_COMPLETED,
    15: EventType.EVENT_RAISED,
    16: EventType.CONTINUE_AS_NEW,
}

SCHEDULING_EVENTS: frozenset[EventType] = frozenset(
    {
        EventType.TASK_SCHEDULED,
        EventType.SUB_ORCHESTRATION_INSTANCE_CREATED,
        EventType.TIMER_CREATED,
        EventType.ENTITY_OPERATION_CALLED,
    }
)

COMPLETION_EVENTS: frozenset[EventType] = frozenset(
    {
        EventType.TASK_COMPLETED,
        EventType.TASK_FAILED,
        EventType.SUB_ORCHESTRATION_INSTANCE_COMPLETED,
        EventType.SUB_ORCHESTRATION_INSTANCE_FAILED,
        EventType.TIMER_FIRED,
        EventType.ENTITY_OPERATION_COMPLETED,
        EventType.ENTITY_OPERATION_FAILED,
    }
)


@dataclass(frozen=True, slots=True)
class HistoryEvent:
    event_type: EventType
    event_id: int = -1
    timestamp: datetime | None = None
    # True when the event was already part of the history before this invocation.
    is_played: bool = False

    name: str | None = None
    input: Any = None
    result: Any = None
    reason: str | None = None
    details: Any = None
    task_scheduled_id: int | None = None
    timer_id: int | None = None
    fire_at: datetime | None = None
    instance_id: str | None = None

    @property
    def correlation_id(self) -> int | None:
        """Sequence number of the action a completion marker settles."""

        if self.event_type == EventType.TIMER_FIRED:
            return self.timer_id
        return self.task_scheduled_id

    def as_played(self) -> HistoryEvent:
        return replace(self, is_played=True)

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "eventType": self.event_type.value,
            "eventId": self.event_id,
            "isPlayed": self.is_played,
        }
        if self.timestamp is not None:
            out["timestamp"] = self.timestamp.isoformat()
        for key, value in (
            ("name", self.name),
            ("input", self.input),
            ("result", self.result),
            ("reason", self.reason),
            ("details", self.details),
            ("taskScheduledId", self.task_scheduled_id),
            ("timerId", self.timer_id),
            ("instanceId", self.instance_id),
        ):
            if value is not None:
                out[key] = value
        if self.fire_at is not None:
            out["fireAt"] = self.fire_at.isoformat()
        return out

    @staticmethod
    def from_json(obj: dict[str, Any]) -> HistoryEvent:
        raw_type = obj.get("eventType", obj.get("EventType"))
        event_type = _parse_event_type(raw_type)

        def _get(*keys: str) -> Any:
            for key in keys:
                if key in obj:
                    return obj[key]
            return None

        def _int(v: object) -> int | None:
            if isinstance(v, bool):
                return None
            if isinstance(v, int):
                return v
            if isinstance(v, str):
                try:
                    return int(v)
                except ValueError:
                    return None
            return None

        event_id = _int(_get("eventId", "EventId"))
        return HistoryEvent(
            event_type=event_type,
            event_id=event_id if event_id is not None else -1,
            timestamp=_parse_datetime(_get("timestamp", "Timestamp")),
            is_played=bool(_get("isPlayed", "IsPlayed") or False),
            name=_get("name", "Name"),
            input=_get("input", "Input"),
            result=_get("result", "Result"),
            reason=_get("reason", "Reason"),
            details=_get("details", "Details"),
            task_scheduled_id=_int(_get("taskScheduledId", "TaskScheduledId")),
            timer_id=_int(_get("timerId", "TimerId")),
            fire_at=_parse_datetime(_get("fireAt", "FireAt")),
            instance_id=_get("instanceId", "InstanceId"),
        )


def _parse_event_type(raw: object) -> EventType:
    if isinstance(raw, EventType):
        return raw
    if isinstance(raw, int) and not isinstance(raw, bool):
        try:
            return _NUMERIC_EVENT_TYPES[raw]
        except KeyError:
            raise ValueError(f"Unknown history event type code: {raw}") from None
    if isinstance(raw, str):
        return EventType(raw)
    raise ValueError(f"History event is missing an event type: {raw!r}")


def _parse_datetime(raw: object) -> datetime | None:
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw
    if isinstance(raw, str):
        return datetime.fromisoformat(raw)
    raise ValueError(f"Cannot parse a timestamp from {type(raw).__name__}")


def new_orchestrator_started_event(timestamp: datetime) -> HistoryEvent:
    return HistoryEvent(event_type=EventType.ORCHESTRATOR_STARTED, timestamp=timestamp)


def new_execution_started_event(
    name: str, instance_id: str, input: Any = None, timestamp: datetime | None = None
) -> HistoryEvent:
    return HistoryEvent(
        event_type=EventType.EXECUTION_STARTED,
        name=name,
        instance_id=instance_id,
        input=input,
        timestamp=timestamp,
    )


def new_task_scheduled_event(event_id: int, name: str, input: Any = None) -> HistoryEvent:
    return HistoryEvent(event_type=EventType.TASK_SCHEDULED, event_id=event_id, name=name, input=input)


def new_task_completed_event(task_scheduled_id: int, result: Any = None) -> HistoryEvent:
    return HistoryEvent(
        event_type=EventType.TASK_COMPLETED, task_scheduled_id=task_scheduled_id, result=result
    )


def new_task_failed_event(task_scheduled_id: int, reason: str, details: Any = None) -> HistoryEvent:
    return HistoryEvent(
        event_type=EventType.TASK_FAILED,
        task_scheduled_id=task_scheduled_id,
        reason=reason,
        details=details,
    )


def new_sub_orchestration_created_event(event_id: int, name: str, instance_id: str) -> HistoryEvent:
    return HistoryEvent(
        event_type=EventType.SUB_ORCHESTRATION_INSTANCE_CREATED,
        event_id=event_id,
        name=name,
        instance_id=instance_id,
    )


def new_sub_orchestration_completed_event(task_scheduled_id: int, result: Any = None) -> HistoryEvent:
    return HistoryEvent(
        event_type=EventType.SUB_ORCHESTRATION_INSTANCE_COMPLETED,
        task_scheduled_id=task_scheduled_id,
        result=result,
    )


def new_sub_orchestration_failed_event(
    task_scheduled_id: int, reason: str, details: Any = None
) -> HistoryEvent:
    return HistoryEvent(
        event_type=EventType.SUB_ORCHESTRATION_INSTANCE_FAILED,
        task_scheduled_id=task_scheduled_id,
        reason=reason,
        details=details,
    )


def new_timer_created_event(event_id: int, fire_at: datetime) -> HistoryEvent:
    return HistoryEvent(event_type=EventType.TIMER_CREATED, event_id=event_id, fire_at=fire_at)


def new_timer_fired_event(timer_id: int, fire_at: datetime) -> HistoryEvent:
    return HistoryEvent(event_type=EventType.TIMER_FIRED, timer_id=timer_id, fire_at=fire_at)


def new_event_raised_event(name: str, input: Any = None) -> HistoryEvent:
    return HistoryEvent(event_type=EventType.EVENT_RAISED, name=name, input=input)


def new_entity_operation_called_event(event_id: int, operation: str, instance_id: str) -> HistoryEvent:
    return HistoryEvent(
        event_type=EventType.ENTITY_OPERATION_CALLED,
        event_id=event_id,
        name=operation,
        instance_id=instance_id,
    )


def new_entity_operation_completed_event(task_scheduled_id: int, result: Any = None) -> HistoryEvent:
    return HistoryEvent(
        event_type=EventType.ENTITY_OPERATION_COMPLETED,
        task_scheduled_id=task_scheduled_id,
        result=result,
    )


def new_entity_operation_failed_event(
    task_scheduled_id: int, reason: str, details: Any = None
) -> HistoryEvent:
    return HistoryEvent(
        event_type=EventType.ENTITY_OPERATION_FAILED,
        task_scheduled_id=task_scheduled_id,
        reason=reason,
        details=details,
    )
