"""Flow-control node executors: trigger, end, condition, switch, loop, delay."""

from __future__ import annotations

import asyncio
import importlib
from types import SimpleNamespace

import pytest

from nodes.core.end.executor import EndExecutor
from nodes.core.trigger.executor import TriggerExecutor
from nodes.flow.condition.executor import ConditionExecutor
from nodes.flow.delay.executor import DelayExecutor
from nodes.flow.loop.executor import MAX_ITERATIONS_LIMIT, LoopExecutor
from nodes.flow.switch.executor import SwitchExecutor
from tests.conftest import EventRecorder, make_context


SWITCH_DATA = {
    "expression": "input.status",
    "cases": [
        {"value": "active", "label": "Active"},
        {"value": "inactive", "label": "Inactive"},
    ],
    "hasDefault": True,
}


# ── Trigger / End ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_trigger_merges_payload_and_stamps_run(engine) -> None:
    ctx = make_context(engine, {"user": "ada"}, flow_id="flow-7")

    output = await TriggerExecutor().execute(
        ctx.input, {"triggerType": "webhook", "payload": {"source": "hook"}}, ctx
    )

    assert output["user"] == "ada"
    assert output["source"] == "hook"
    assert output["triggerType"] == "webhook"
    assert output["workflowId"] == "flow-7"
    assert output["executionId"] == ctx.execution_id
    assert output["triggerInfo"]["type"] == "webhook"


def test_trigger_validation() -> None:
    executor = TriggerExecutor()

    assert executor.validate_data(executor.create_default_data()) == []
    assert executor.validate_data({"triggerType": "carrier-pigeon", "payload": []}) == [
        "Trigger type must be one of: manual, webhook, schedule, email, api, file, database",
        "Trigger payload must be an object",
    ]


@pytest.mark.asyncio
async def test_end_substitutes_message(engine) -> None:
    ctx = make_context(engine, {"count": 2})

    output = await EndExecutor().execute(ctx.input, {"message": "Done with {count}"}, ctx)

    assert output["endMessage"] == "Done with 2"
    assert output["workflowResult"] == {"count": 2}
    assert output["workflowComplete"] is True
    assert output["finalStatus"] == "success"


# ── Condition ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_condition_false_branch(engine) -> None:
    ctx = make_context(engine, {"value": 5})

    output = await ConditionExecutor().execute(ctx.input, {"condition": "input.value > 10"}, ctx)

    assert output["conditionResult"] is False
    assert output["branchPath"] == "false"
    assert output["value"] == 5
    assert output["evaluationDuration"] >= 0


@pytest.mark.asyncio
async def test_condition_with_variable_reference(engine) -> None:
    ctx = make_context(engine, {"value": 5})
    ctx.set_node_output("limits", {"max": 3})

    output = await ConditionExecutor().execute(
        ctx.input, {"condition": "input.value > {limits.max}"}, ctx
    )

    assert output["conditionResult"] is True
    assert output["branchPath"] == "true"


@pytest.mark.asyncio
async def test_condition_errors_become_data(engine) -> None:
    recorder = EventRecorder(engine.event_bus, "node.execution.failed")
    ctx = make_context(engine, {"value": 5})

    output = await ConditionExecutor().execute(ctx.input, {"condition": "eval('1')"}, ctx)
    await engine.event_bus.drain()

    assert output["branchPath"] == "false"
    assert "eval" in output["conditionError"]
    assert len(recorder.of("node.execution.failed")) == 1


def test_condition_validation() -> None:
    executor = ConditionExecutor()

    assert executor.validate_data({"condition": ""}) == ["Condition expression is required"]
    assert executor.validate_data({"condition": "input.a >"})[0].startswith(
        "Invalid expression syntax"
    )
    assert executor.validate_data(executor.create_default_data()) == []


# ── Switch ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_switch_matches_case(engine) -> None:
    ctx = make_context(engine, {"status": "inactive"})

    output = await SwitchExecutor().execute(ctx.input, SWITCH_DATA, ctx)

    assert output["outputPath"] == "inactive"
    assert output["matchedCaseIndex"] == 1
    assert output["matchedCase"]["label"] == "Inactive"
    assert output["isDefaultCase"] is False


@pytest.mark.asyncio
async def test_switch_default_case(engine) -> None:
    ctx = make_context(engine, {"status": "archived"})

    output = await SwitchExecutor().execute(ctx.input, SWITCH_DATA, ctx)

    assert output["outputPath"] == "default"
    assert output["matchedCaseIndex"] == -1
    assert output["isDefaultCase"] is True
    assert output["switchValue"] == "archived"


@pytest.mark.asyncio
async def test_switch_without_default_routes_to_error(engine) -> None:
    ctx = make_context(engine, {"status": "archived"})

    output = await SwitchExecutor().execute(ctx.input, {**SWITCH_DATA, "hasDefault": False}, ctx)

    assert output["outputPath"] == "error"
    assert output["switchEvaluated"] is False
    assert output["matchedCaseIndex"] == -1
    assert "archived" in output["switchError"]


@pytest.mark.asyncio
async def test_switch_stringifies_values(engine) -> None:
    ctx = make_context(engine, {"flag": True})
    data = {
        "expression": "input.flag",
        "cases": [{"value": "true", "label": "Yes"}],
        "hasDefault": False,
    }

    output = await SwitchExecutor().execute(ctx.input, data, ctx)

    assert output["outputPath"] == "true"


def test_switch_validation() -> None:
    errors = SwitchExecutor().validate_data(
        {"expression": "input.x", "cases": [{"value": "a", "label": ""}, {"value": "a", "label": "A"}]}
    )

    assert errors == ["Case 1 label is required", "Case value 'a' is duplicated"]


# ── Loop ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_loop_iterates_items(engine) -> None:
    recorder = EventRecorder(engine.event_bus, "loop.iteration.started", "loop.iteration.completed")
    ctx = make_context(engine, {"items": ["a", "b", "c"]})

    output = await LoopExecutor().execute(
        ctx.input, {"iterateOver": "input.items", "itemVariable": "letter"}, ctx
    )
    await engine.event_bus.drain()

    assert output["loopIterations"] == 3
    assert output["loopCompleted"] is True
    assert [r["item"] for r in output["loopResults"]] == ["a", "b", "c"]
    assert output["lastIteration"]["iterationInput"]["letter"] == "c"
    assert output["lastIteration"]["isLast"] is True
    assert len(recorder.events) == 6


@pytest.mark.asyncio
async def test_loop_respects_max_iterations(engine) -> None:
    ctx = make_context(engine, {"items": list(range(10))})

    output = await LoopExecutor().execute(
        ctx.input, {"iterateOver": "input.items", "maxIterations": 4}, ctx
    )

    assert output["loopIterations"] == 4
    assert output["loopCompleted"] is False
    assert output["loopStats"]["truncated"] is True
    assert output["loopStats"]["totalItems"] == 10


@pytest.mark.asyncio
async def test_loop_defaults_to_configured_cap(engine) -> None:
    engine.config_manager.update(execution={"max_iterations": 2})
    ctx = make_context(engine, {"items": [1, 2, 3]})

    output = await LoopExecutor().execute(ctx.input, {"iterateOver": "input.items"}, ctx)

    assert output["loopIterations"] == 2


@pytest.mark.asyncio
async def test_loop_non_array_is_error_data(engine) -> None:
    ctx = make_context(engine, {"items": "nope"})

    output = await LoopExecutor().execute(ctx.input, {"iterateOver": "input.items"}, ctx)

    assert output["loopCompleted"] is False
    assert "must resolve to an array" in output["loopError"]


def test_loop_validation() -> None:
    executor = LoopExecutor()

    assert executor.validate_data(executor.create_default_data()) == []
    assert executor.validate_data(
        {"iterateOver": "input.items", "itemVariable": "loopIndex", "maxIterations": MAX_ITERATIONS_LIMIT + 1}
    ) == [
        "Item variable 'loopIndex' is reserved",
        f"Max iterations must be between 1 and {MAX_ITERATIONS_LIMIT}",
    ]
    assert "Item variable must be a valid identifier" in executor.validate_data(
        {"iterateOver": "input.items", "itemVariable": "class"}
    )


# ── Delay ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_fixed_delay(engine) -> None:
    ctx = make_context(engine, {"x": 1})

    output = await DelayExecutor().execute(ctx.input, {"mode": "fixed", "durationMs": 5}, ctx)

    info = output["delayInfo"]
    assert info["success"] is True
    assert info["requestedMs"] == 5
    assert info["actualMs"] >= 0
    assert output["x"] == 1


@pytest.mark.asyncio
async def test_dynamic_delay_uses_expression(engine) -> None:
    ctx = make_context(engine, {"wait": 2})

    output = await DelayExecutor().execute(
        ctx.input, {"mode": "dynamic", "expression": "input.wait * 2"}, ctx
    )

    assert output["delayInfo"]["requestedMs"] == 4


@pytest.mark.asyncio
async def test_until_delay_gives_up_after_max_wait(engine) -> None:
    ctx = make_context(engine, {"ready": False})

    output = await DelayExecutor().execute(
        ctx.input,
        {"mode": "until", "expression": "input.ready", "checkIntervalMs": 5, "maxWaitMs": 20},
        ctx,
    )

    assert output["delayInfo"]["conditionMet"] is False
    assert output["delayInfo"]["success"] is True


@pytest.mark.asyncio
async def test_until_delay_returns_when_condition_holds(engine) -> None:
    ctx = make_context(engine, {"ready": True})

    output = await DelayExecutor().execute(
        ctx.input, {"mode": "until", "expression": "input.ready"}, ctx
    )

    assert output["delayInfo"]["conditionMet"] is True


@pytest.mark.asyncio
async def test_negative_delay_is_error_data(engine) -> None:
    ctx = make_context(engine, {})

    output = await DelayExecutor().execute(ctx.input, {"mode": "fixed", "durationMs": -5}, ctx)

    assert output["delayInfo"]["success"] is False
    assert output["error"] == "Delay duration cannot be negative"


@pytest.mark.asyncio
async def test_until_delay_clamps_check_interval(engine, monkeypatch) -> None:
    delay_module = importlib.import_module("nodes.flow.delay.executor")
    real_sleep = asyncio.sleep
    slept: list[float] = []

    async def recording_sleep(seconds: float) -> None:
        slept.append(seconds)
        await real_sleep(0)

    monkeypatch.setattr(delay_module, "asyncio", SimpleNamespace(sleep=recording_sleep))
    ctx = make_context(engine, {"ready": False})

    output = await DelayExecutor().execute(
        ctx.input,
        {"mode": "until", "expression": "input.ready", "checkIntervalMs": 0, "maxWaitMs": 5},
        ctx,
    )

    assert output["delayInfo"]["conditionMet"] is False
    assert slept[0] == pytest.approx(0.001)


def test_delay_validation() -> None:
    executor = DelayExecutor()

    assert executor.validate_data(executor.create_default_data()) == []
    assert executor.validate_data(
        {"mode": "until", "expression": "input.ready", "checkIntervalMs": 0}
    ) == ["Check interval must be at least 1ms"]
    assert executor.validate_data(
        {"mode": "until", "expression": "input.ready", "checkIntervalMs": "soon"}
    ) == ["Check interval must be a number"]
