"""Awaitable task handles yielded by orchestrator code.

A task is either unresolved or settled (resolved with a value or rejected with
an error); settling is terminal. Settling records the history position of the
event that caused it, which is how composite tasks order their children.

Tasks never schedule anything themselves. The orchestration context creates
them together with their actions and the executor settles them from history.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar

from .actions import Action, CreateTimerAction, RetryableAction
from .errors import EmptyTaskListError, TaskAlreadyCompletedError
from .http import DurableHttpRequest
from .retry import RetryOptions

T = TypeVar("T")


class TaskState(str, Enum):
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class TaskScheduler(Protocol):
    def with_retry(self, task: ActionTask, retry_options: RetryOptions) -> RetryableTask: ...

    def cancel_timer(self, task: TimerTask) -> None: ...


class Task(Generic[T]):
    def __init__(self) -> None:
        self._state = TaskState.UNRESOLVED
        self._result: Any = None
        self._exception: BaseException | None = None
        self._settled_at: int | None = None
        self._parents: list[CompositeTask] = []

    @property
    def state(self) -> TaskState:
        return self._state

    @property
    def is_complete(self) -> bool:
        return self._state != TaskState.UNRESOLVED

    @property
    def is_faulted(self) -> bool:
        return self._state == TaskState.REJECTED

    @property
    def settled_at(self) -> int | None:
        """History position of the event that settled this task."""

        return self._settled_at

    @property
    def result(self) -> T:
        if not self.is_complete:
            raise ValueError("The task has not completed")
        return self._result

    @property
    def exception(self) -> BaseException | None:
        return self._exception

    def get_result(self) -> T:
        """The resolved value; raises the rejection error for a rejected task."""

        if self._exception is not None:
            raise self._exception
        return self.result

    def _settle(
        self,
        state: TaskState,
        *,
        result: Any = None,
        exception: BaseException | None = None,
        position: int | None = None,
    ) -> None:
        if self.is_complete:
            raise TaskAlreadyCompletedError("The task has already completed")
        self._state = state
        self._result = result
        self._exception = exception
        self._settled_at = position
        for parent in list(self._parents):
            parent.on_child_settled(self)


class CompletableTask(Task[T]):
    def complete(self, result: T, *, position: int | None = None) -> None:
        self._settle(TaskState.RESOLVED, result=result, position=position)

    def fail(self, exception: BaseException, *, position: int | None = None) -> None:
        self._settle(TaskState.REJECTED, exception=exception, position=position)


class ActionTask(CompletableTask[T]):
    """A task backed by a single scheduling action."""

    def __init__(self, action: Action, scheduler: TaskScheduler) -> None:
        super().__init__()
        self._action = action
        self._scheduler = scheduler

    @property
    def action(self) -> Action:
        return self._action

    @property
    def sequence_number(self) -> int:
        return self._action.id

    def with_retry(self, retry_options: RetryOptions) -> RetryableTask:
        """A new task that retries this task's action. The original task is abandoned."""

        return self._scheduler.with_retry(self, retry_options)


class RetryableTask(ActionTask[T]):
    """Activity or sub-orchestration call retried through durable timers."""

    def __init__(
        self,
        action: RetryableAction,
        scheduler: TaskScheduler,
        *,
        started_at: datetime,
    ) -> None:
        super().__init__(action, scheduler)
        self._started_at = started_at

    @property
    def retry_options(self) -> RetryOptions:
        return self._action.retry_options  # type: ignore[union-attr]

    @property
    def attempt(self) -> int:
        return self._action.attempt  # type: ignore[union-attr]

    def next_delay(self, now: datetime) -> timedelta | None:
        return self.retry_options.next_delay(attempt=self.attempt, elapsed=now - self._started_at)

    def advance(self, action: RetryableAction) -> None:
        """Point the task at the action of its next attempt."""

        self._action = action


class TimerTask(ActionTask[None]):
    def __init__(self, action: CreateTimerAction, scheduler: TaskScheduler) -> None:
        super().__init__(action, scheduler)
        self._is_canceled = False

    @property
    def fire_at(self) -> datetime:
        return self._action.fire_at  # type: ignore[union-attr]

    @property
    def is_canceled(self) -> bool:
        return self._is_canceled

    def cancel(self) -> None:
        """Stop waiting for this timer.

        An orchestration left with an un-fired, un-cancelled timer stays alive
        until the timer fires.
        """

        if self.is_complete:
            raise TaskAlreadyCompletedError("Cannot cancel a timer that has already fired")
        if self._is_canceled:
            return
        self._is_canceled = True
        self._scheduler.cancel_timer(self)

    def _replace_action(self, action: CreateTimerAction) -> None:
        self._action = action


class HttpTask(ActionTask[Any]):
    """A durable HTTP call, including its asynchronous polling steps."""

    def __init__(self, action: Action, scheduler: TaskScheduler, *, request: DurableHttpRequest) -> None:
        super().__init__(action, scheduler)
        self._request = request

    @property
    def request(self) -> DurableHttpRequest:
        return self._request

    def advance(self, action: Action, request: DurableHttpRequest) -> None:
        self._action = action
        self._request = request


class ExternalEventTask(ActionTask[Any]):
    @property
    def event_name(self) -> str:
        return self._action.event_name  # type: ignore[union-attr]


class CompositeTask(Task[T]):
    """A task whose outcome is a function of its children.

    Children are referenced, not owned: settling the composite leaves
    unsettled children untouched.
    """

    def __init__(self, children: Sequence[Task[Any]]) -> None:
        super().__init__()
        self._children = list(children)
        for child in self._children:
            child._parents.append(self)

        already_settled = [c for c in self._children if c.is_complete]
        already_settled.sort(key=lambda c: -1 if c.settled_at is None else c.settled_at)
        for child in already_settled:
            if self.is_complete:
                break
            self.on_child_settled(child)

    @property
    def children(self) -> list[Task[Any]]:
        return list(self._children)

    def on_child_settled(self, child: Task[Any]) -> None:
        raise NotImplementedError


class WhenAllTask(CompositeTask[list[Any]]):
    def __init__(self, children: Sequence[Task[Any]]) -> None:
        super().__init__(children)
        if not self._children and not self.is_complete:
            self._settle(TaskState.RESOLVED, result=[])

    def on_child_settled(self, child: Task[Any]) -> None:
        if self.is_complete:
            return
        if child.is_faulted:
            self._settle(TaskState.REJECTED, exception=child.exception, position=child.settled_at)
            return
        if all(c.state == TaskState.RESOLVED for c in self._children):
            self._settle(
                TaskState.RESOLVED,
                result=[c.result for c in self._children],
                position=child.settled_at,
            )


class WhenAnyTask(CompositeTask[Task[Any]]):
    """Settles with the first child to settle; resolves with that child task."""

    def __init__(self, children: Sequence[Task[Any]]) -> None:
        if not children:
            raise EmptyTaskListError("task_any requires at least one task")
        super().__init__(children)

    def on_child_settled(self, child: Task[Any]) -> None:
        if self.is_complete:
            return
        if child.is_faulted:
            self._settle(TaskState.REJECTED, exception=child.exception, position=child.settled_at)
        else:
            self._settle(TaskState.RESOLVED, result=child, position=child.settled_at)
