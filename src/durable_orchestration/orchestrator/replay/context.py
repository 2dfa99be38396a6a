"""The orchestration context: the API orchestrator code programs against.

Every scheduling method allocates the next sequence number, builds the action,
creates the task and registers both in the context's correlation tables. The
action stays in ``pending_actions`` until history confirms it was scheduled;
whatever is still there when the invocation ends is what the host receives.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections import deque
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from durable_orchestration.core.config import ReplayConfig
from durable_orchestration.orchestrator.logging import ReplaySafeLoggerAdapter

from .actions import (
    Action,
    CallActivityAction,
    CallActivityWithRetryAction,
    CallEntityAction,
    CallHttpAction,
    CallSubOrchestratorAction,
    CallSubOrchestratorWithRetryAction,
    CreateTimerAction,
    RetryableAction,
    WaitForExternalEventAction,
    next_attempt,
    with_retry_action,
)
from .errors import (
    ContinueAsNewAlreadyInvokedError,
    CustomStatusTooLargeError,
    NonDeterminismError,
    RetryNotAllowedError,
)
from .http import DurableHttpRequest, ManagedIdentityTokenSource
from .retry import RetryOptions
from .tasks import (
    ActionTask,
    ExternalEventTask,
    HttpTask,
    RetryableTask,
    Task,
    TimerTask,
    WhenAllTask,
    WhenAnyTask,
)

if TYPE_CHECKING:
    from durable_orchestration.orchestrator.entities import EntityId

# Namespace for deterministic GUIDs (RFC 4122 section 4.3, SHA-1 based).
GUID_NAMESPACE = uuid.UUID("9e952958-5e33-4daf-827f-2fa12937b875")

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class DurableOrchestrationContext:
    """Per-invocation run state plus the orchestration API.

    A fresh context is created for every invocation; nothing in it survives
    the invocation except what the host persists from the returned actions.
    """

    def __init__(
        self,
        instance_id: str,
        *,
        input: Any = None,
        parent_instance_id: str | None = None,
        config: ReplayConfig | None = None,
    ) -> None:
        self._instance_id = instance_id
        self._parent_instance_id = parent_instance_id
        self._input = input
        self._config = config or ReplayConfig()

        self._is_replaying = True
        self._current_utc_datetime = _EPOCH
        self._custom_status: Any = None
        self._sequence_number = 0
        self._guid_counter = 0

        # Correlation tables, keyed by sequence number.
        self._pending_actions: dict[int, Action] = {}
        self._pending_tasks: dict[int, ActionTask[Any]] = {}
        self._retry_timers: dict[int, RetryableTask[Any]] = {}
        self._http_polls: dict[int, tuple[HttpTask, str]] = {}
        self._canceled_timers: set[int] = set()

        self._known_tasks: set[Task[Any]] = set()

        # External events are matched by case-insensitive name, FIFO per name.
        self._event_waiters: dict[str, deque[ExternalEventTask]] = {}
        self._buffered_events: dict[str, deque[tuple[Any, int | None]]] = {}

        self._continued_as_new = False
        self._new_input: Any = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def instance_id(self) -> str:
        return self._instance_id

    @property
    def parent_instance_id(self) -> str | None:
        return self._parent_instance_id

    @property
    def is_replaying(self) -> bool:
        return self._is_replaying

    @property
    def current_utc_datetime(self) -> datetime:
        """Orchestration time, taken from history only."""

        return self._current_utc_datetime

    @property
    def custom_status(self) -> Any:
        return self._custom_status

    def get_input(self) -> Any:
        return self._input

    # ------------------------------------------------------------------
    # Scheduling API
    # ------------------------------------------------------------------

    def call_activity(self, name: str, input: Any = None) -> ActionTask[Any]:
        self._ensure_can_schedule()
        action = CallActivityAction(id=self._next_sequence_number(), function_name=name, input=input)
        return self._register(ActionTask(action, self))

    def call_activity_with_retry(
        self, name: str, retry_options: RetryOptions, input: Any = None
    ) -> RetryableTask[Any]:
        self._ensure_can_schedule()
        action = CallActivityWithRetryAction(
            id=self._next_sequence_number(),
            function_name=name,
            retry_options=retry_options,
            input=input,
        )
        return self._register(RetryableTask(action, self, started_at=self._current_utc_datetime))

    def call_sub_orchestrator(
        self, name: str, input: Any = None, instance_id: str | None = None
    ) -> ActionTask[Any]:
        self._ensure_can_schedule()
        seq = self._next_sequence_number()
        action = CallSubOrchestratorAction(
            id=seq,
            function_name=name,
            instance_id=instance_id or self._child_instance_id(seq),
            input=input,
        )
        return self._register(ActionTask(action, self))

    def call_sub_orchestrator_with_retry(
        self,
        name: str,
        retry_options: RetryOptions,
        input: Any = None,
        instance_id: str | None = None,
    ) -> RetryableTask[Any]:
        self._ensure_can_schedule()
        seq = self._next_sequence_number()
        action = CallSubOrchestratorWithRetryAction(
            id=seq,
            function_name=name,
            retry_options=retry_options,
            instance_id=instance_id or self._child_instance_id(seq),
            input=input,
        )
        return self._register(RetryableTask(action, self, started_at=self._current_utc_datetime))

    def create_timer(self, fire_at: datetime | timedelta) -> TimerTask:
        """A durable timer. Past fire times are accepted and fire on the next matching event."""

        self._ensure_can_schedule()
        return self._create_timer(fire_at)

    def wait_for_external_event(self, name: str) -> ExternalEventTask:
        self._ensure_can_schedule()
        action = WaitForExternalEventAction(id=self._next_sequence_number(), event_name=name)
        task = ExternalEventTask(action, self)
        self._known_tasks.add(task)

        key = name.casefold()
        buffered = self._buffered_events.get(key)
        if buffered:
            value, position = buffered.popleft()
            task.complete(value, position=position)
        else:
            self._event_waiters.setdefault(key, deque()).append(task)
        return task

    def call_entity(
        self, entity_id: EntityId, operation_name: str, operation_input: Any = None
    ) -> ActionTask[Any]:
        self._ensure_can_schedule()
        action = CallEntityAction(
            id=self._next_sequence_number(),
            entity_id=entity_id,
            operation=operation_name,
            input=operation_input,
        )
        return self._register(ActionTask(action, self))

    def call_http(
        self,
        method: str,
        uri: str,
        content: str | Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        token_source: ManagedIdentityTokenSource | None = None,
        asynchronous_pattern_enabled: bool = True,
    ) -> HttpTask:
        self._ensure_can_schedule()
        if content is not None and not isinstance(content, str):
            content = json.dumps(content)
        request = DurableHttpRequest(
            method=method,
            uri=uri,
            content=content,
            headers=dict(headers or {}),
            token_source=token_source,
            asynchronous_pattern_enabled=asynchronous_pattern_enabled,
        )
        action = CallHttpAction(id=self._next_sequence_number(), http_request=request)
        return self._register(HttpTask(action, self, request=request))

    def with_retry(self, task: ActionTask[Any], retry_options: RetryOptions) -> RetryableTask[Any]:
        """Replace ``task`` with a retrying task bound to the same sequence number.

        Only valid before the task's action has been matched against history,
        i.e. in the same step of orchestrator code that created the task.
        """

        self._ensure_can_schedule()
        self._ensure_known(task)
        seq = task.sequence_number
        pending = self._pending_actions.get(seq)
        if pending is None or self._pending_tasks.get(seq) is not task or task.is_complete:
            raise RetryNotAllowedError(
                f"Task #{seq} has already been scheduled; apply with_retry where the task is created"
            )
        try:
            action = with_retry_action(pending, retry_options)
        except TypeError as e:
            raise RetryNotAllowedError(str(e)) from e

        retrying: RetryableTask[Any] = RetryableTask(
            action, self, started_at=self._current_utc_datetime
        )
        self._known_tasks.discard(task)
        return self._register(retrying)

    def task_all(self, tasks: Sequence[Task[Any]]) -> WhenAllTask:
        for task in tasks:
            self._ensure_known(task)
        composite = WhenAllTask(tasks)
        self._known_tasks.add(composite)
        return composite

    def task_any(self, tasks: Sequence[Task[Any]]) -> WhenAnyTask:
        for task in tasks:
            self._ensure_known(task)
        composite = WhenAnyTask(tasks)
        self._known_tasks.add(composite)
        return composite

    def continue_as_new(self, input: Any = None) -> None:
        """Restart the orchestration with fresh history once this invocation ends."""

        self._ensure_can_schedule()
        self._continued_as_new = True
        self._new_input = input

    def new_guid(self, input: str = "") -> str:
        """A replay-safe, name-based UUID (RFC 4122 section 4.3)."""

        name = f"{self._instance_id}_{input}_{self._guid_counter}"
        self._guid_counter += 1
        return str(uuid.uuid5(GUID_NAMESPACE, name))

    def set_custom_status(self, value: Any) -> None:
        encoded = json.dumps(value, ensure_ascii=False)
        size = len(encoded.encode("utf-16-le"))
        limit = self._config.custom_status_max_bytes
        if size > limit:
            raise CustomStatusTooLargeError(
                f"Custom status is {size} bytes when serialised; the limit is {limit} bytes"
            )
        self._custom_status = value

    def create_replay_safe_logger(self, logger: logging.Logger) -> ReplaySafeLoggerAdapter:
        return ReplaySafeLoggerAdapter(logger, self)

    # ------------------------------------------------------------------
    # TaskScheduler
    # ------------------------------------------------------------------

    def cancel_timer(self, task: TimerTask) -> None:
        seq = task.sequence_number
        self._pending_tasks.pop(seq, None)
        self._canceled_timers.add(seq)
        pending = self._pending_actions.get(seq)
        if isinstance(pending, CreateTimerAction):
            canceled = CreateTimerAction(id=seq, fire_at=pending.fire_at, is_canceled=True)
            self._pending_actions[seq] = canceled
            task._replace_action(canceled)

    # ------------------------------------------------------------------
    # Executor-facing helpers
    # ------------------------------------------------------------------

    @property
    def continued_as_new(self) -> bool:
        return self._continued_as_new

    @property
    def new_input(self) -> Any:
        return self._new_input

    def owns(self, task: Task[Any]) -> bool:
        return task in self._known_tasks

    def new_actions(self, *, include_event_waits: bool = True) -> list[Action]:
        """Actions not yet confirmed by history, in sequence order."""

        actions: list[Action] = list(self._pending_actions.values())
        if include_event_waits:
            for waiters in self._event_waiters.values():
                actions.extend(w.action for w in waiters)
        return sorted(actions, key=lambda a: a.id)

    def next_sequence_number(self) -> int:
        return self._next_sequence_number()

    def schedule_retry(self, task: RetryableTask[Any], delay: timedelta) -> TimerTask:
        timer = self._create_timer(delay)
        self._retry_timers[timer.sequence_number] = task
        return timer

    def reissue(self, task: RetryableTask[Any]) -> None:
        action: RetryableAction = next_attempt(task.action, self._next_sequence_number())  # type: ignore[arg-type]
        task.advance(action)
        self._pending_actions[action.id] = action
        self._pending_tasks[action.id] = task

    def schedule_http_poll(self, task: HttpTask, delay: timedelta, location: str) -> TimerTask:
        timer = self._create_timer(delay)
        self._http_polls[timer.sequence_number] = (task, location)
        return timer

    def reissue_http_poll(self, task: HttpTask, location: str) -> None:
        request = task.request.poll(location)
        action = CallHttpAction(id=self._next_sequence_number(), http_request=request)
        task.advance(action, request)
        self._pending_actions[action.id] = action
        self._pending_tasks[action.id] = task

    def deliver_event(self, name: str, value: Any, position: int) -> bool:
        """Hand a raised event to the oldest waiter, or buffer it. True when a waiter took it."""

        key = name.casefold()
        waiters = self._event_waiters.get(key)
        if waiters:
            task = waiters.popleft()
            if not waiters:
                del self._event_waiters[key]
            task.complete(value, position=position)
            return True
        self._buffered_events.setdefault(key, deque()).append((value, position))
        return False

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _next_sequence_number(self) -> int:
        seq = self._sequence_number
        self._sequence_number += 1
        return seq

    def _child_instance_id(self, seq: int) -> str:
        return f"{self._instance_id}:{seq}"

    def _create_timer(self, fire_at: datetime | timedelta) -> TimerTask:
        if isinstance(fire_at, timedelta):
            fire_at = self._current_utc_datetime + fire_at
        action = CreateTimerAction(id=self._next_sequence_number(), fire_at=fire_at)
        return self._register(TimerTask(action, self))

    def _register(self, task: Any) -> Any:
        seq = task.sequence_number
        self._pending_actions[seq] = task.action
        self._pending_tasks[seq] = task
        self._known_tasks.add(task)
        return task

    def _ensure_can_schedule(self) -> None:
        if self._continued_as_new:
            raise ContinueAsNewAlreadyInvokedError(
                "continue_as_new has already been called; no further work can be scheduled"
            )

    def _ensure_known(self, task: Task[Any]) -> None:
        if not isinstance(task, Task) or task not in self._known_tasks:
            raise NonDeterminismError(
                "The task was not created by this orchestration invocation; "
                "tasks cannot be reused across invocations"
            )
