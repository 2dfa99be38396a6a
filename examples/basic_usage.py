#!/usr/bin/env python3
"""Function chaining, replayed by hand.

This demonstrates the replay engine directly:

* register an orchestrator and an activity
* run the orchestrator against a growing history
* append the scheduling and completion events a host would record

The cities are passed as arguments.
"""

from __future__ import annotations

import argparse
import logging
from datetime import UTC, datetime, timedelta
from typing import Sequence

from durable_orchestration.core.config import DurableConfig
from durable_orchestration.orchestrator.activities import ActivityExecutor
from durable_orchestration.orchestrator.registry import FunctionRegistry
from durable_orchestration.orchestrator.replay import events as ev
from durable_orchestration.orchestrator.replay.executor import OrchestrationExecutor

registry = FunctionRegistry()


@registry.activity(name="SayHello")
def say_hello(ctx, city: str) -> str:
    return f"Hello {city}!"


@registry.orchestrator()
def hello_cities(ctx):
    log = ctx.create_replay_safe_logger(logging.getLogger("examples.hello_cities"))
    greetings = []
    for city in ctx.get_input():
        greetings.append((yield ctx.call_activity("SayHello", city)))
        log.info("Greeted %s", city)
    return greetings


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay a function-chaining orchestration.")
    parser.add_argument("cities", nargs="+", help="Cities to greet, in order")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    config = DurableConfig()
    config.setup_logging()

    executor = OrchestrationExecutor(config.replay)
    activities = ActivityExecutor(registry.get_activity)
    orchestrator = registry.get_orchestrator("hello_cities")
    assert orchestrator is not None

    now = datetime.now(UTC)
    history = [
        ev.new_orchestrator_started_event(now),
        ev.new_execution_started_event("hello_cities", "example-1", args.cities),
    ]
    while True:
        result = executor.execute(orchestrator, "example-1", history)
        history = [e.as_played() for e in history]
        if result.is_done:
            break

        now += timedelta(seconds=1)
        history.append(ev.new_orchestrator_started_event(now))
        for action in result.actions:
            history.append(ev.new_task_scheduled_event(action.id, action.function_name, action.input))
            output = activities.execute(action.function_name, "example-1", action.id, action.input)
            history.append(ev.new_task_completed_event(action.id, output))

    print(result.status.value, result.output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
