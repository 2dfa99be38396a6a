"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from durable_orchestration.core.config import LoggingConfig, ReplayConfig
from durable_orchestration.orchestrator.activities import ActivityExecutor
from durable_orchestration.orchestrator.entities import (
    EntityExecutor,
    EntityOperation,
    EntityStateResponse,
)
from durable_orchestration.orchestrator.registry import (
    FunctionRegistry,
    OrchestratorNotRegisteredError,
)
from durable_orchestration.orchestrator.replay import events as ev
from durable_orchestration.orchestrator.replay.actions import (
    Action,
    ActionType,
    CallActivityAction,
    CallActivityWithRetryAction,
    CallEntityAction,
    CallHttpAction,
    CallSubOrchestratorAction,
    CallSubOrchestratorWithRetryAction,
    CreateTimerAction,
)
from durable_orchestration.orchestrator.replay.events import HistoryEvent
from durable_orchestration.orchestrator.replay.executor import OrchestrationExecutor
from durable_orchestration.orchestrator.replay.http import (
    HTTP_ACTIVITY_NAME,
    DurableHttpRequest,
    DurableHttpResponse,
)
from durable_orchestration.state.status import OrchestrationResult, OrchestrationRuntimeStatus

T0 = datetime(2024, 1, 1, tzinfo=UTC)


class InMemoryHost:
    """Plays the host's part: dispatches actions and feeds their outcomes back as history.

    Every turn starts with an ``OrchestratorStarted`` event, followed by the
    scheduling markers and completions of the actions the previous invocation
    returned. Events from earlier turns are marked as played.
    """

    def __init__(
        self,
        registry: FunctionRegistry,
        *,
        config: ReplayConfig | None = None,
        http_handler: Callable[[DurableHttpRequest], DurableHttpResponse] | None = None,
    ) -> None:
        self.registry = registry
        self.executor = OrchestrationExecutor(config)
        self.http_handler = http_handler
        self.activities = ActivityExecutor(registry.get_activity)
        self.entities = EntityExecutor(registry.get_entity)
        self.entity_state: dict[str, Any] = {}
        self.dispatched: list[Action] = []
        self.results: list[OrchestrationResult] = []
        self.histories: dict[str, list[HistoryEvent]] = {}
        self._raised: dict[str, list[HistoryEvent]] = {}
        self.now = T0

    def raise_event(self, instance_id: str, name: str, value: Any = None) -> None:
        self._raised.setdefault(instance_id, []).append(ev.new_event_raised_event(name, value))

    def run(
        self,
        name: str,
        instance_id: str = "instance-1",
        input: Any = None,
        *,
        max_turns: int = 50,
    ) -> OrchestrationResult:
        orchestrator = self.registry.get_orchestrator(name)
        if orchestrator is None:
            raise OrchestratorNotRegisteredError(name)

        history: list[HistoryEvent] = [
            ev.new_orchestrator_started_event(self.now),
            ev.new_execution_started_event(name, instance_id, input, timestamp=self.now),
        ]
        for _ in range(max_turns):
            result = self.executor.execute(orchestrator, instance_id, history)
            self.results.append(result)
            history = [e.as_played() for e in history]
            self.histories[instance_id] = history
            if result.is_done:
                return result

            new_events: list[HistoryEvent] = []
            fire_at = self.now + timedelta(seconds=1)
            for action in result.actions:
                if action.action_type == ActionType.WAIT_FOR_EXTERNAL_EVENT:
                    continue
                self.dispatched.append(action)
                if isinstance(action, CreateTimerAction) and not action.is_canceled:
                    fire_at = max(fire_at, action.fire_at)
                new_events.extend(self._dispatch(action, instance_id))
            new_events.extend(self._raised.pop(instance_id, []))
            if not new_events:
                return result

            self.now = max(fire_at, self.now)
            history = history + [ev.new_orchestrator_started_event(self.now)] + new_events
        raise AssertionError(f"Orchestration {instance_id} did not finish within {max_turns} turns")

    def _dispatch(self, action: Action, instance_id: str) -> list[HistoryEvent]:
        if isinstance(action, CallActivityAction | CallActivityWithRetryAction):
            scheduled = ev.new_task_scheduled_event(action.id, action.function_name, action.input)
            try:
                output = self.activities.execute(action.function_name, instance_id, action.id, action.input)
            except Exception as e:
                return [scheduled, ev.new_task_failed_event(action.id, str(e), type(e).__name__)]
            return [scheduled, ev.new_task_completed_event(action.id, output)]

        if isinstance(action, CallSubOrchestratorAction | CallSubOrchestratorWithRetryAction):
            created = ev.new_sub_orchestration_created_event(
                action.id, action.function_name, action.instance_id
            )
            child = self.run(action.function_name, action.instance_id, action.input)
            if child.status == OrchestrationRuntimeStatus.COMPLETED:
                return [created, ev.new_sub_orchestration_completed_event(action.id, child.output)]
            reason = child.error.message if child.error else child.status.value
            return [created, ev.new_sub_orchestration_failed_event(action.id, reason)]

        if isinstance(action, CreateTimerAction):
            created = ev.new_timer_created_event(action.id, action.fire_at)
            if action.is_canceled:
                return [created]
            return [created, ev.new_timer_fired_event(action.id, action.fire_at)]

        if isinstance(action, CallEntityAction):
            key = str(action.entity_id)
            called = ev.new_entity_operation_called_event(action.id, action.operation, key)
            state = EntityStateResponse(entity_exists=key in self.entity_state, entity_state=self.entity_state.get(key))
            batch = self.entities.execute(
                action.entity_id, state, [EntityOperation(action.operation, action.input)]
            )
            if batch.entity_exists:
                self.entity_state[key] = batch.state
            else:
                self.entity_state.pop(key, None)
            outcome = batch.results[0]
            if outcome.ok:
                return [called, ev.new_entity_operation_completed_event(action.id, outcome.result)]
            return [called, ev.new_entity_operation_failed_event(action.id, outcome.error or "", outcome.error_type)]

        if isinstance(action, CallHttpAction):
            if self.http_handler is None:
                raise AssertionError("No HTTP handler configured for this host")
            scheduled = ev.new_task_scheduled_event(action.id, HTTP_ACTIVITY_NAME)
            response = self.http_handler(action.http_request)
            return [scheduled, ev.new_task_completed_event(action.id, response.to_json())]

        raise AssertionError(f"Unexpected action: {action!r}")


def started_history(name: str = "orchestrator", input: Any = None, instance_id: str = "instance-1") -> list[HistoryEvent]:
    return [
        ev.new_orchestrator_started_event(T0),
        ev.new_execution_started_event(name, instance_id, input, timestamp=T0),
    ]


@pytest.fixture
def replay_config() -> ReplayConfig:
    """Provide a test replay configuration."""
    return ReplayConfig(http_poll_interval_seconds=10, log_replay_events=True)


@pytest.fixture
def logging_config() -> LoggingConfig:
    """Provide a test logging configuration."""
    return LoggingConfig(level="DEBUG", json_output=False)


@pytest.fixture
def executor(replay_config: ReplayConfig) -> OrchestrationExecutor:
    return OrchestrationExecutor(replay_config)


@pytest.fixture
def registry() -> FunctionRegistry:
    return FunctionRegistry()


@pytest.fixture
def host(registry: FunctionRegistry, replay_config: ReplayConfig) -> InMemoryHost:
    """Provide an in-memory host bound to the test registry."""
    return InMemoryHost(registry, config=replay_config)


@pytest.fixture
def new_history() -> Callable[..., list[HistoryEvent]]:
    """Provide a builder for the opening events of an instance's history."""
    return started_history
