"""Unit tests for the function registry and activity execution."""

from __future__ import annotations

import pytest

from durable_orchestration.orchestrator.activities import ActivityContext, ActivityExecutor
from durable_orchestration.orchestrator.registry import (
    ActivityNotRegisteredError,
    EntityNotRegisteredError,
    FunctionRegistry,
    OrchestratorNotRegisteredError,
    get_name,
)
from durable_orchestration.orchestrator.replay.errors import DurableOrchestrationError


def test_decorators_register_by_function_name(registry: FunctionRegistry) -> None:
    @registry.orchestrator()
    def hello_cities(ctx):
        return None

    @registry.activity(name="SayHello")
    def say_hello(ctx, city):
        return f"Hello {city}"

    assert registry.get_orchestrator("hello_cities") is hello_cities
    assert registry.get_activity("SayHello") is say_hello
    assert registry.get_activity("say_hello") is None


def test_entity_names_are_case_insensitive(registry: FunctionRegistry) -> None:
    def Counter(ctx):
        return None

    assert registry.add_entity(Counter) == "counter"
    assert registry.get_entity("COUNTER") is Counter


def test_duplicate_names_are_rejected(registry: FunctionRegistry) -> None:
    registry.add_activity(lambda ctx, x: x, name="double")

    with pytest.raises(ValueError, match="double"):
        registry.add_activity(lambda ctx, x: x * 2, name="double")


def test_get_name_requires_a_name() -> None:
    class Nameless:
        def __call__(self, ctx):
            return None

    with pytest.raises(ValueError):
        get_name(Nameless())


@pytest.mark.parametrize("add", ["add_orchestrator", "add_activity", "add_entity"])
def test_missing_function_is_rejected(registry: FunctionRegistry, add: str) -> None:
    with pytest.raises(ValueError, match="function argument is required"):
        getattr(registry, add)(None)


@pytest.mark.parametrize(
    "error", [OrchestratorNotRegisteredError, ActivityNotRegisteredError, EntityNotRegisteredError]
)
def test_lookup_errors_share_the_package_base(error: type[Exception]) -> None:
    assert issubclass(error, DurableOrchestrationError)
    assert issubclass(error, ValueError)


def test_activity_executor_passes_context(registry: FunctionRegistry) -> None:
    seen: list[ActivityContext] = []

    @registry.activity()
    def record(ctx, value):
        seen.append(ctx)
        return value + 1

    executor = ActivityExecutor(registry.get_activity)

    assert executor.execute("record", "instance-1", 4, 41) == 42
    assert seen == [ActivityContext(orchestration_id="instance-1", task_id=4)]


def test_activity_errors_propagate(registry: FunctionRegistry) -> None:
    @registry.activity()
    def explode(ctx, value):
        raise RuntimeError("boom")

    executor = ActivityExecutor(registry.get_activity)

    with pytest.raises(RuntimeError, match="boom"):
        executor.execute("explode", "instance-1", 0)


def test_unknown_activity(registry: FunctionRegistry) -> None:
    executor = ActivityExecutor(registry.get_activity)

    with pytest.raises(ActivityNotRegisteredError):
        executor.execute("nope", "instance-1", 0)
