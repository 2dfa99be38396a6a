"""The replay engine.

``OrchestrationExecutor.execute`` re-runs orchestrator code against an event
history. Events are consumed strictly in order: scheduling markers are matched
against the actions the code issued, completion markers settle tasks, and the
generator is resumed whenever the task it is waiting on settles. When history
runs out while the generator still waits, the invocation ends and the actions
history has not yet confirmed are returned to the host.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Generator, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from durable_orchestration.core.config import ReplayConfig
from durable_orchestration.state.status import (
    FailureDetails,
    OrchestrationResult,
    OrchestrationRuntimeStatus,
)

from .actions import ContinueAsNewAction
from .context import DurableOrchestrationContext
from .errors import NonDeterminismError, OrchestrationStateError, TaskFailedError
from .events import COMPLETION_EVENTS, SCHEDULING_EVENTS, EventType, HistoryEvent
from .history import HistoryCursor
from .http import DurableHttpResponse
from .tasks import ActionTask, HttpTask, RetryableTask, Task

logger = logging.getLogger(__name__)

Orchestrator = Callable[[DurableOrchestrationContext], Any]

_NO_INPUT = object()

_FAILURE_EVENTS = frozenset(
    {
        EventType.TASK_FAILED,
        EventType.SUB_ORCHESTRATION_INSTANCE_FAILED,
        EventType.ENTITY_OPERATION_FAILED,
    }
)


@dataclass
class _Run:
    """Mutable state of one invocation, owned by the executor."""

    ctx: DurableOrchestrationContext
    cursor: HistoryCursor
    orchestrator: Orchestrator
    generator: Generator[Any, Any, Any] | None = None
    awaiting: Task[Any] | None = None
    started: bool = False
    status: OrchestrationRuntimeStatus = OrchestrationRuntimeStatus.RUNNING
    output: Any = None
    error: FailureDetails | None = None
    failures: list[BaseException] = field(default_factory=list)

    @property
    def done(self) -> bool:
        return self.status != OrchestrationRuntimeStatus.RUNNING


class OrchestrationExecutor:
    """Drives orchestrator generators against recorded history.

    The executor holds no per-instance state; one executor can serve any number
    of instances, concurrently if the host wishes.
    """

    def __init__(self, config: ReplayConfig | None = None) -> None:
        self._config = config or ReplayConfig()

    def execute(
        self,
        orchestrator: Orchestrator,
        instance_id: str,
        history: Iterable[HistoryEvent | Mapping[str, object]],
        *,
        input: Any = _NO_INPUT,
        parent_instance_id: str | None = None,
    ) -> OrchestrationResult:
        """Replay ``history`` and run the orchestrator until it waits on unknown work.

        Raises NonDeterminismError when the orchestrator's actions do not match
        the history.
        """

        cursor = HistoryCursor(history)
        started = next(
            (e for e in cursor.events if e.event_type == EventType.EXECUTION_STARTED), None
        )
        if input is _NO_INPUT:
            input = started.input if started is not None else None

        ctx = DurableOrchestrationContext(
            instance_id,
            input=input,
            parent_instance_id=parent_instance_id,
            config=self._config,
        )
        run = _Run(ctx=ctx, cursor=cursor, orchestrator=orchestrator)

        logger.debug(
            "Beginning replay",
            extra={"instance_id": instance_id, "history_events": len(cursor)},
        )

        while not ctx.continued_as_new:
            event = cursor.advance()
            if event is None:
                break
            ctx._is_replaying = cursor.is_replaying
            if self._config.log_replay_events:
                logger.debug(
                    "Processing history event",
                    extra={
                        "instance_id": instance_id,
                        "event_type": event.event_type.value,
                        "position": cursor.position,
                    },
                )
            self._process_event(run, event)

        if not run.started:
            ctx._is_replaying = False
            self._start(run)

        return self._finish(run)

    # ------------------------------------------------------------------
    # Event processing
    # ------------------------------------------------------------------

    def _process_event(self, run: _Run, event: HistoryEvent) -> None:
        ctx = run.ctx
        kind = event.event_type

        if kind == EventType.ORCHESTRATOR_STARTED:
            if event.timestamp is not None:
                ctx._current_utc_datetime = event.timestamp
            return

        if kind == EventType.EXECUTION_STARTED:
            if run.started:
                raise OrchestrationStateError("History contains more than one ExecutionStarted event")
            self._start(run)
            return

        if not run.started:
            # Hosts may send a history without an ExecutionStarted event.
            self._start(run)

        if kind in SCHEDULING_EVENTS:
            run.cursor.match_scheduled(event, ctx._pending_actions)
            del ctx._pending_actions[event.event_id]
            return

        if kind in COMPLETION_EVENTS:
            self._complete_task(run, event)
            return

        if kind == EventType.EVENT_RAISED:
            if event.name is None:
                raise OrchestrationStateError("EventRaised event is missing its name")
            if not run.done:
                delivered = ctx.deliver_event(event.name, event.input, run.cursor.position)
                if delivered:
                    self._resume(run)
                elif not ctx.is_replaying:
                    logger.info(
                        "Buffered external event with no waiter",
                        extra={"instance_id": ctx.instance_id, "event_name": event.name},
                    )
            return

        if kind == EventType.EXECUTION_TERMINATED:
            if not run.done:
                run.status = OrchestrationRuntimeStatus.TERMINATED
                run.output = event.input
            return

        # ORCHESTRATOR_COMPLETED, EXECUTION_COMPLETED and CONTINUE_AS_NEW carry
        # no information the replay needs.

    def _complete_task(self, run: _Run, event: HistoryEvent) -> None:
        ctx = run.ctx
        seq = event.correlation_id
        if seq is None:
            raise OrchestrationStateError(f"{event.event_type.value} event is missing its task id")
        if seq in ctx._pending_actions:
            raise NonDeterminismError(
                f"{event.event_type.value} for ID={seq} arrived before the action was scheduled"
            )

        if event.event_type == EventType.TIMER_FIRED and seq in ctx._canceled_timers:
            return
        outstanding = ctx._pending_tasks.get(seq)
        if outstanding is not None and event.event_type not in outstanding.action.completion_events:
            raise NonDeterminismError(
                f"{event.event_type.value} refers to ID={seq}, but that ID was scheduled as a "
                f"{outstanding.action.action_type.value} action"
            )

        if event.event_type == EventType.TIMER_FIRED:
            retried = ctx._retry_timers.pop(seq, None)
            polled = ctx._http_polls.pop(seq, None)
            timer = ctx._pending_tasks.pop(seq, None)
            if timer is None:
                self._unexpected_completion(run, event, seq)
                return
            timer.complete(None, position=run.cursor.position)
            if run.done:
                return
            if retried is not None:
                ctx.reissue(retried)
            elif polled is not None:
                ctx.reissue_http_poll(*polled)
            else:
                self._resume(run)
            return

        task = ctx._pending_tasks.pop(seq, None)
        if task is None:
            self._unexpected_completion(run, event, seq)
            return
        if run.done:
            return

        position = run.cursor.position
        if event.event_type in _FAILURE_EVENTS:
            error = _task_failure(task, event)
            if isinstance(task, RetryableTask):
                delay = task.next_delay(ctx.current_utc_datetime)
                if delay is not None:
                    if not ctx.is_replaying:
                        logger.info(
                            "Scheduling retry",
                            extra={
                                "instance_id": ctx.instance_id,
                                "task_id": seq,
                                "attempt": task.attempt,
                                "delay_seconds": delay.total_seconds(),
                            },
                        )
                    ctx.schedule_retry(task, delay)
                    return
            task.fail(error, position=position)
        elif isinstance(task, HttpTask):
            response = DurableHttpResponse.from_json(event.result)
            location = response.header("Location")
            if task.request.asynchronous_pattern_enabled and response.is_accepted and location:
                retry_after = response.retry_after_seconds()
                delay = (
                    timedelta(seconds=retry_after)
                    if retry_after is not None
                    else self._config.http_poll_interval
                )
                ctx.schedule_http_poll(task, delay, location)
                return
            task.complete(response, position=position)
        else:
            task.complete(event.result, position=position)

        self._resume(run)

    def _unexpected_completion(self, run: _Run, event: HistoryEvent, seq: int) -> None:
        if run.done:
            return
        raise NonDeterminismError(
            f"{event.event_type.value} refers to ID={seq}, but the current execution has no "
            f"outstanding task with that ID"
        )

    # ------------------------------------------------------------------
    # Driving the generator
    # ------------------------------------------------------------------

    def _start(self, run: _Run) -> None:
        run.started = True
        ctx = run.ctx
        try:
            result = run.orchestrator(ctx)
        except NonDeterminismError:
            raise
        except Exception as e:
            self._fail(run, e)
            return

        if not inspect.isgenerator(result):
            self._complete(run, result)
            return

        run.generator = result
        self._step(run, lambda: next(result))
        # Tasks settled before the first yield (buffered events, empty task_all).
        self._resume(run)

    def _resume(self, run: _Run) -> None:
        while not run.done and run.awaiting is not None and run.awaiting.is_complete:
            awaited = run.awaiting
            gen = run.generator
            assert gen is not None
            if awaited.is_faulted:
                exc = awaited.exception
                assert exc is not None
                self._step(run, lambda: gen.throw(exc))
            else:
                value = awaited.result
                self._step(run, lambda: gen.send(value))

    def _step(self, run: _Run, advance: Callable[[], Any]) -> None:
        """Run orchestrator code up to its next yield and intercept what it yields."""

        try:
            yielded = advance()
        except StopIteration as stop:
            self._complete(run, stop.value)
            return
        except NonDeterminismError:
            raise
        except Exception as e:
            self._fail(run, e)
            return

        ctx = run.ctx
        if ctx.continued_as_new:
            run.status = OrchestrationRuntimeStatus.CONTINUED_AS_NEW
            run.awaiting = None
            return

        if not isinstance(yielded, Task):
            self._fail(
                run,
                TypeError(
                    f"Orchestrator functions may only yield tasks, got {type(yielded).__name__}"
                ),
            )
            return
        if not ctx.owns(yielded):
            raise NonDeterminismError(
                "The orchestrator yielded a task that was not created by this invocation's context"
            )

        run.awaiting = yielded

    def _complete(self, run: _Run, output: Any) -> None:
        run.awaiting = None
        if run.ctx.continued_as_new:
            run.status = OrchestrationRuntimeStatus.CONTINUED_AS_NEW
            return
        run.status = OrchestrationRuntimeStatus.COMPLETED
        run.output = output

    def _fail(self, run: _Run, exc: BaseException) -> None:
        run.awaiting = None
        if run.ctx.continued_as_new:
            run.status = OrchestrationRuntimeStatus.CONTINUED_AS_NEW
            return
        run.status = OrchestrationRuntimeStatus.FAILED
        run.error = FailureDetails.from_exception(exc)
        logger.info(
            "Orchestrator failed",
            extra={"instance_id": run.ctx.instance_id, "error_type": type(exc).__name__},
        )

    # ------------------------------------------------------------------
    # Result
    # ------------------------------------------------------------------

    def _finish(self, run: _Run) -> OrchestrationResult:
        ctx = run.ctx
        if run.status == OrchestrationRuntimeStatus.CONTINUED_AS_NEW:
            actions: list[Any] = [ContinueAsNewAction(id=ctx.next_sequence_number(), input=ctx.new_input)]
        elif run.status == OrchestrationRuntimeStatus.RUNNING:
            actions = list(ctx.new_actions())
        elif run.status == OrchestrationRuntimeStatus.TERMINATED:
            actions = []
        else:
            actions = list(ctx.new_actions(include_event_waits=False))

        result = OrchestrationResult(
            instance_id=ctx.instance_id,
            status=run.status,
            actions=actions,
            output=run.output,
            error=run.error,
            custom_status=ctx.custom_status,
            new_input=ctx.new_input if run.status == OrchestrationRuntimeStatus.CONTINUED_AS_NEW else None,
        )

        if run.done:
            logger.info(
                "Orchestration finished",
                extra={"instance_id": ctx.instance_id, "status": run.status.value},
            )
        else:
            logger.info(
                "Orchestration suspended",
                extra={"instance_id": ctx.instance_id, "new_actions": len(actions)},
            )
        return result


def _task_failure(task: ActionTask[Any], event: HistoryEvent) -> TaskFailedError:
    reason = event.reason or "unknown failure"
    name = task.action.correlation_name
    if event.event_type == EventType.SUB_ORCHESTRATION_INSTANCE_FAILED:
        message = f"Sub-orchestration '{name}' failed: {reason}"
    elif event.event_type == EventType.ENTITY_OPERATION_FAILED:
        message = f"Entity operation '{name}' failed: {reason}"
    else:
        message = f"Task '{name}' (ID={task.sequence_number}) failed: {reason}"
    return TaskFailedError(message, reason=reason, details=event.details)
