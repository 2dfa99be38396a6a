"""Unit tests for history events, actions and the history cursor."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from durable_orchestration.orchestrator.replay import events as ev
from durable_orchestration.orchestrator.replay.actions import (
    CallActivityAction,
    CallActivityWithRetryAction,
    CreateTimerAction,
    next_attempt,
    with_retry_action,
)
from durable_orchestration.orchestrator.replay.errors import NonDeterminismError
from durable_orchestration.orchestrator.replay.events import EventType, HistoryEvent
from durable_orchestration.orchestrator.replay.history import HistoryCursor
from durable_orchestration.orchestrator.replay.retry import RetryOptions

T0 = datetime(2024, 1, 1, tzinfo=UTC)
RETRY = RetryOptions(first_retry_interval=timedelta(seconds=1), max_number_of_attempts=3)


def test_event_from_pascal_case_json() -> None:
    event = HistoryEvent.from_json(
        {"EventType": 5, "EventId": "3", "TaskScheduledId": 1, "Result": "\"ok\"", "IsPlayed": True}
    )

    assert event.event_type == EventType.TASK_COMPLETED
    assert event.event_id == 3
    assert event.task_scheduled_id == 1
    assert event.correlation_id == 1
    assert event.result == '"ok"'
    assert event.is_played


def test_timer_fired_correlates_by_timer_id() -> None:
    event = ev.new_timer_fired_event(4, T0)

    assert event.correlation_id == 4
    assert HistoryEvent.from_json(event.to_json()) == event


def test_unknown_event_type_is_rejected() -> None:
    with pytest.raises(ValueError):
        HistoryEvent.from_json({"eventType": 99})
    with pytest.raises(ValueError):
        HistoryEvent.from_json({"eventType": "Nonsense"})


def test_cursor_reads_forward_only() -> None:
    cursor = HistoryCursor([ev.new_orchestrator_started_event(T0), ev.new_execution_started_event("o", "i")])

    assert cursor.position == -1
    assert len(cursor) == 2
    assert cursor.advance().event_type == EventType.ORCHESTRATOR_STARTED
    assert cursor.advance().event_type == EventType.EXECUTION_STARTED
    assert cursor.exhausted
    assert cursor.advance() is None
    assert cursor.current is None


def test_cursor_replaying_tracks_played_events() -> None:
    cursor = HistoryCursor(
        [
            ev.new_orchestrator_started_event(T0).as_played(),
            ev.new_execution_started_event("o", "i").as_played(),
            ev.new_orchestrator_started_event(T0),
        ]
    )

    assert cursor.is_replaying
    cursor.advance()
    assert cursor.is_replaying
    assert cursor.has_unconsumed_played_events
    cursor.advance()
    assert not cursor.has_unconsumed_played_events
    cursor.advance()
    assert not cursor.is_replaying


def test_match_scheduled() -> None:
    cursor = HistoryCursor([])
    pending = {0: CallActivityAction(id=0, function_name="A"), 1: CreateTimerAction(id=1, fire_at=T0)}

    assert cursor.match_scheduled(ev.new_task_scheduled_event(0, "A"), pending) is pending[0]
    assert cursor.match_scheduled(ev.new_timer_created_event(1, T0), pending) is pending[1]

    with pytest.raises(NonDeterminismError):
        cursor.match_scheduled(ev.new_task_scheduled_event(0, "B"), pending)
    with pytest.raises(NonDeterminismError):
        cursor.match_scheduled(ev.new_timer_created_event(0, T0), pending)
    with pytest.raises(NonDeterminismError):
        cursor.match_scheduled(ev.new_task_scheduled_event(2, "A"), pending)


def test_retry_actions() -> None:
    action = with_retry_action(CallActivityAction(id=3, function_name="A", input=1), RETRY)

    assert isinstance(action, CallActivityWithRetryAction)
    assert (action.id, action.attempt) == (3, 1)

    retried = next_attempt(action, 6)
    assert (retried.id, retried.attempt, retried.input) == (6, 2, 1)
    assert retried.to_json()["retryOptions"] == RETRY.to_json()

    with pytest.raises(TypeError):
        with_retry_action(CreateTimerAction(id=0, fire_at=T0), RETRY)


def test_action_json() -> None:
    assert CreateTimerAction(id=2, fire_at=T0, is_canceled=True).to_json() == {
        "actionType": "CreateTimer",
        "id": 2,
        "fireAt": "2024-01-01T00:00:00+00:00",
        "isCanceled": True,
    }
