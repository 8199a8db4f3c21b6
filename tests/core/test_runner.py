from __future__ import annotations

import asyncio
import logging

import pytest
from pydantic import BaseModel

from relay.agents import (
    Agent,
    AgentConfig,
    MaxStepsReached,
    ModelCommunicationError,
    RunResult,
)
from relay.core import InMemoryTelemetrySink, LoggingTelemetrySink, Runner, RunnerConfig
from relay.llms import LLMResponse, ToolCall
from relay.llms.testing import ScriptedLLM
from relay.memory import ActionStep, FinalAnswerStep, TaskStep
from relay.sandbox import ExecutionLimits
from relay.tools import tool


def run_async(coro):
    return asyncio.run(coro)


def _code(src: str, thought: str = "Thought: next step.") -> str:
    return f"{thought}\n```python\n{src}\n```"


class _AddArgs(BaseModel):
    a: int
    b: int


class _SleepArgs(BaseModel):
    seconds: float = 0.3


@tool(args_model=_AddArgs, name="add")
def add(args: _AddArgs) -> int:
    """Add two integers."""
    return args.a + args.b


@tool(args_model=_SleepArgs, name="slow_value")
async def slow_value(args: _SleepArgs) -> str:
    """Wait, then return a value."""
    await asyncio.sleep(args.seconds)
    return "waited"


def _agent(script, *, tools=None, config=None, runner=None, **kwargs) -> Agent:
    return Agent(
        model=ScriptedLLM(script, **kwargs),
        name="calc",
        tools=[add] if tools is None else tools,
        config=config,
        runner=runner,
    )


def test_code_action_with_tool_call_produces_final_answer():
    agent = _agent([_code("x = add(a=2, b=2)\nfinal_answer(x)")])

    result = agent.run_sync("What is 2 + 2?")

    assert isinstance(result, RunResult)
    assert result.state == "success"
    assert result.success
    assert result.output == 4
    assert result.step_count == 1
    assert result.usage.total_tokens == 15
    assert result.agent_name == "calc"

    steps = agent.memory.steps
    assert isinstance(steps[0], TaskStep)
    assert isinstance(steps[1], ActionStep) and steps[1].is_final_answer
    assert [c.tool_name for c in steps[1].tool_calls] == ["add"]
    assert isinstance(steps[2], FinalAnswerStep) and steps[2].output == 4
    assert not agent.busy


def test_model_request_carries_system_prompt_task_and_stop_sequence():
    agent = _agent([_code("final_answer('done')")])

    agent.run_sync("Say done")

    request = agent.llm.requests[0]
    assert request.model == "scripted"
    assert request.messages[0].role == "system"
    assert "add(a: integer, b: integer)" in request.messages[0].content
    assert request.messages[1].content == "New task:\nSay done"
    assert request.stop == ["Observation:"]
    assert request.tools is None


def test_step_budget_stops_after_exactly_max_steps():
    agent = _agent(
        [_code("print('still working')")],
        repeat_last=True,
        config=AgentConfig(max_steps=3),
    )

    result = agent.run_sync("Never finishes")

    assert result.state == "max_steps"
    assert isinstance(result.error, MaxStepsReached)
    assert result.output is None
    assert result.step_count == 3
    assert len(agent.memory.action_steps()) == 3
    assert len(agent.llm.requests) == 3


def test_missing_code_block_is_a_recoverable_step_error():
    agent = _agent(["I believe the answer is 4.", _code("final_answer(4)")])

    result = agent.run_sync("2 + 2")

    first, second = agent.memory.action_steps()
    assert first.error is not None and first.error.kind == "parse_error"
    assert second.is_final_answer
    assert result.output == 4 and result.step_count == 2

    replay = agent.llm.requests[1].messages
    assert replay[-1].role == "tool"
    assert replay[-1].name == "parse_error"


def test_runtime_errors_are_fed_back_to_the_model():
    agent = _agent([_code("print('dividing')\n1 / 0"), _code("final_answer('recovered')")])

    result = agent.run_sync("Divide")

    failed = agent.memory.action_steps()[0]
    assert failed.error.kind == "runtime_error"
    assert "ZeroDivisionError" in failed.error.message
    assert failed.observations == "Execution logs:\ndividing\n"
    assert result.output == "recovered"


def test_failed_tool_surfaces_as_tool_error_step():
    class _NoArgs(BaseModel):
        pass

    @tool(args_model=_NoArgs, name="flaky")
    def flaky(args: _NoArgs) -> str:
        raise RuntimeError("service down")

    agent = _agent(
        [_code("print(flaky())"), _code("final_answer('gave up')")],
        tools=[flaky],
    )

    result = agent.run_sync("Use flaky")

    step = agent.memory.action_steps()[0]
    assert step.error.kind == "tool_error"
    assert "service down" in step.error.message
    assert result.output == "gave up"


def test_persisted_variables_carry_across_steps_but_locals_do_not():
    agent = _agent(
        [
            _code("state['n'] = add(a=1, b=2)\nscratch = 5"),
            _code("final_answer([n * 10, state.get('scratch')])"),
        ]
    )

    result = agent.run_sync("Remember n")

    assert result.output == [30, None]
    assert agent.executor.variables == {"n": 3}


def test_each_run_resets_memory_and_variables_by_default():
    agent = _agent(
        [_code("state['seen'] = 1\nfinal_answer('one')"), _code("final_answer(state.get('seen'))")]
    )

    agent.run_sync("first")
    second = agent.run_sync("second")

    assert second.output is None
    assert len(agent.memory.task_steps()) == 1


def test_run_without_reset_continues_memory():
    agent = _agent(
        [_code("state['seen'] = 1\nfinal_answer('one')"), _code("final_answer(state.get('seen'))")]
    )

    agent.run_sync("first")
    second = run_async(agent.run("second", reset=False))

    assert second.output == 1
    assert len(agent.memory.task_steps()) == 2


def test_model_failure_ends_the_run_with_error_state():
    agent = _agent([RuntimeError("invalid api key")])

    result = agent.run_sync("Anything")

    assert result.state == "error"
    assert isinstance(result.error, ModelCommunicationError)
    assert result.step_count == 0
    assert not agent.busy


def test_planning_runs_before_first_step_and_at_interval():
    agent = _agent(
        [
            "1. print\n2. answer",
            _code("print('a')"),
            _code("print('b')"),
            "1. answer now",
            _code("final_answer('planned')"),
        ],
        config=AgentConfig(planning_interval=2),
    )

    result = agent.run_sync("Plan it")

    assert result.output == "planned"
    assert result.step_count == 3
    assert [s.plan for s in agent.memory.planning_steps()] == ["1. print\n2. answer", "1. answer now"]
    kinds = [type(s).__name__ for s in agent.memory.steps]
    assert kinds == [
        "TaskStep",
        "PlanningStep",
        "ActionStep",
        "ActionStep",
        "PlanningStep",
        "ActionStep",
        "FinalAnswerStep",
    ]
    assert "write a short step-by-step plan" in agent.llm.requests[0].messages[-1].content
    assert "rewrite the plan" in agent.llm.requests[3].messages[-1].content


def test_summary_mode_drops_observations_from_model_input():
    agent = _agent(
        [_code("print('noisy output')"), _code("final_answer(1)")],
        config=AgentConfig(summary_mode=True),
    )

    agent.run_sync("Quiet")

    second_input = agent.llm.requests[1].messages
    assert all(m.role != "tool" for m in second_input)
    assert all(not m.content.startswith("Observation:") for m in second_input)


def test_native_tool_calls_path():
    script = [
        LLMResponse(
            text="",
            tool_calls=[
                ToolCall(id="t1", tool_name="add", arguments={"a": 2, "b": 3}),
                ToolCall(id="t2", tool_name="add", arguments={"a": 10, "b": 10}),
            ],
        ),
        LLMResponse(text="", tool_calls=[ToolCall(id="t3", tool_name="final_answer", arguments={"answer": 25})]),
    ]
    agent = _agent(script, config=AgentConfig(native_tool_calls=True))

    result = agent.run_sync("Sum things")

    first = agent.memory.action_steps()[0]
    assert first.observations == "add: 5\nadd: 20"
    assert first.error is None
    assert result.output == 25 and result.step_count == 2
    tool_names = [t["function"]["name"] for t in agent.llm.requests[0].tools]
    assert tool_names == ["add", "final_answer"]


def test_native_tool_calls_report_unknown_tools_and_missing_calls():
    script = [
        LLMResponse(text="thinking only"),
        LLMResponse(text="", tool_calls=[ToolCall(id="t1", tool_name="nope", arguments={})]),
        LLMResponse(text="", tool_calls=[ToolCall(id="t2", tool_name="final_answer", arguments={"answer": "ok"})]),
    ]
    agent = _agent(script, config=AgentConfig(native_tool_calls=True))

    result = agent.run_sync("Try")

    first, second, _ = agent.memory.action_steps()
    assert first.error.kind == "parse_error"
    assert second.error.kind == "tool_error"
    assert "Unknown tool: nope" in second.observations
    assert result.output == "ok"


def test_observations_are_clipped():
    runner = Runner(config=RunnerConfig(observation_max_chars=40))
    agent = _agent([_code("print('x' * 500)"), _code("final_answer(0)")], runner=runner)

    agent.run_sync("Print a lot")

    observation = agent.memory.action_steps()[0].observations
    assert observation.endswith("characters omitted]")
    assert len(observation) < 100


def test_time_blocked_on_tools_is_not_charged_to_the_sandbox():
    agent = _agent(
        [_code("v = slow_value(seconds=0.4)\nfinal_answer(v)")],
        tools=[slow_value],
        config=AgentConfig(limits=ExecutionLimits(timeout_s=0.2)),
    )

    result = agent.run_sync("Wait")

    assert result.output == "waited"


def test_runner_abandons_an_execution_that_overruns_its_timeout():
    runner = Runner(config=RunnerConfig(execution_grace_s=0.1))
    agent = _agent(
        [_code("import time\ntime.sleep(0.6)"), _code("final_answer('after')")],
        config=AgentConfig(
            limits=ExecutionLimits(timeout_s=0.05),
            authorized_imports=("time",),
        ),
        runner=runner,
    )

    result = agent.run_sync("Sleep")

    stalled = agent.memory.action_steps()[0]
    assert stalled.error.kind == "timeout"
    assert "time limit of 0.05 seconds" in stalled.error.message
    assert result.output == "after"


def test_telemetry_and_events_are_recorded():
    sink = InMemoryTelemetrySink()
    runner = Runner(telemetry=sink)
    agent = _agent([_code("final_answer(add(a=1, b=1))")], runner=runner)

    async def _scenario():
        handle = await runner.run_handle(agent, "Add")
        item = await handle.resume()
        while not isinstance(item, RunResult):
            item = await handle.resume()
        return handle, item

    handle, result = run_async(_scenario())

    types = [e.type for e in handle.events]
    assert types[0] == "run_started"
    assert types[-1] == "run_completed"
    assert "step_started" in types and "tool_completed" in types
    assert "final_answer_produced" in types
    assert all(e.run_id == handle.run_id for e in handle.events)
    assert handle.run_id.startswith("run_")
    assert result.output == 2
    assert sink.counter_total("relay.runs") == 1
    assert [h["name"] for h in sink.histograms()] == ["relay.run.duration_s"]
    assert [e.name for e in sink.events("run_completed")] == ["run_completed"]


def test_logging_sink_writes_run_events(caplog):
    runner = Runner(telemetry=LoggingTelemetrySink(logger_name="relay.test.telemetry"))
    agent = _agent([_code("final_answer('logged')")], runner=runner)

    with caplog.at_level(logging.INFO, logger="relay.test.telemetry"):
        agent.run_sync("Log it")

    messages = [r.getMessage() for r in caplog.records if r.name == "relay.test.telemetry"]
    assert any(m.startswith("run_started") for m in messages)
    assert any(m.startswith("run_completed") for m in messages)


def test_runner_run_sync_entrypoint():
    runner = Runner()
    agent = _agent([_code("final_answer('via runner')")])

    assert runner.run_sync(agent, "Go").output == "via runner"


def test_run_sync_inside_event_loop_is_rejected():
    agent = _agent([_code("final_answer(1)")])

    async def _inner():
        with pytest.raises(RuntimeError):
            agent.run_sync("nested")

    run_async(_inner())
    assert not agent.busy
