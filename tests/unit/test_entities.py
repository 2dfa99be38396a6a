"""Unit tests for entity ids and batch execution."""

from __future__ import annotations

import pytest

from durable_orchestration.orchestrator.entities import (
    EntityExecutor,
    EntityId,
    EntityOperation,
    EntityStateResponse,
)
from durable_orchestration.orchestrator.registry import EntityNotRegisteredError, FunctionRegistry


@pytest.fixture
def entities() -> FunctionRegistry:
    registry = FunctionRegistry()

    @registry.entity(name="Account")
    def account(ctx):
        balance = ctx.get_state(lambda: {"balance": 0})
        if ctx.operation_name == "deposit":
            balance["balance"] += ctx.get_input()
            ctx.set_state(balance)
        elif ctx.operation_name == "withdraw":
            balance["balance"] -= ctx.get_input()
            ctx.set_state(balance)
            if balance["balance"] < 0:
                raise ValueError("insufficient funds")
        elif ctx.operation_name == "close":
            ctx.destruct_on_exit()
        elif ctx.operation_name == "describe":
            return f"{ctx.entity_name}/{ctx.entity_key}"
        ctx.set_result(balance["balance"])
        return None

    return registry


def test_entity_id_format() -> None:
    entity_id = EntityId("Counter", "k1")

    assert str(entity_id) == "@counter@k1"
    assert EntityId.parse("@counter@k1") == entity_id
    assert EntityId.parse("@counter@a@b").key == "a@b"


@pytest.mark.parametrize("value", ["counter@k1", "@@k1", "@counter"])
def test_entity_id_parse_rejects_malformed(value: str) -> None:
    with pytest.raises(ValueError):
        EntityId.parse(value)


def test_batch_commits_state_between_operations(entities: FunctionRegistry) -> None:
    executor = EntityExecutor(entities.get_entity)

    batch = executor.execute(
        EntityId("Account", "alice"),
        EntityStateResponse(entity_exists=False),
        [
            EntityOperation("deposit", 10),
            EntityOperation("withdraw", 4),
            EntityOperation("describe"),
        ],
    )

    assert [r.result for r in batch.results] == [10, 6, "account/alice"]
    assert all(r.ok for r in batch.results)
    assert batch.entity_exists
    assert batch.state == {"balance": 6}


def test_failed_operation_rolls_back(entities: FunctionRegistry) -> None:
    executor = EntityExecutor(entities.get_entity)

    batch = executor.execute(
        EntityId("account", "bob"),
        EntityStateResponse(entity_exists=True, entity_state={"balance": 5}),
        [EntityOperation("withdraw", 8), EntityOperation("deposit", 1)],
    )

    failed, deposited = batch.results
    assert not failed.ok
    assert failed.error == "insufficient funds"
    assert failed.error_type == "ValueError"
    assert deposited.result == 6
    assert batch.state == {"balance": 6}


def test_destruct_on_exit_deletes_state(entities: FunctionRegistry) -> None:
    executor = EntityExecutor(entities.get_entity)

    batch = executor.execute(
        EntityId("account", "carol"),
        EntityStateResponse(entity_exists=True, entity_state={"balance": 3}),
        [EntityOperation("close")],
    )

    assert not batch.entity_exists
    assert batch.state is None


def test_unregistered_entity(entities: FunctionRegistry) -> None:
    executor = EntityExecutor(entities.get_entity)

    with pytest.raises(EntityNotRegisteredError):
        executor.execute(EntityId("missing", "k"), EntityStateResponse(entity_exists=False), [])
