from __future__ import annotations

import pytest
from pydantic import BaseModel

from relay.agents import (
    Agent,
    AgentBusyError,
    AgentConfig,
    AgentConfigurationError,
    Confirmation,
    ControlResponse,
    GoalDriftDetector,
    InvalidTransitionError,
    ManagedAgentTool,
    RepetitionDetector,
    SubAgentQuery,
    UsageAggregate,
    UserInput,
    validate_loop_transition,
)
from relay.agents.delegation import unwrap_response, wrap_request
from relay.agents.parsing import extract_code, missing_code_message
from relay.agents.planning import extract_plan, is_planning_due
from relay.agents.resolution import resolve_model_to_llm
from relay.llms.clients import LiteLLMClient
from relay.llms.testing import ScriptedLLM
from relay.llms.types import ToolCall, Usage
from relay.memory import ActionStep, StepError
from relay.sandbox import ExecutionLimits
from relay.tools import tool


class _AddArgs(BaseModel):
    a: int
    b: int


@tool(args_model=_AddArgs, name="add")
def add(args: _AddArgs) -> int:
    """Add two integers."""
    return args.a + args.b


@tool(args_model=_AddArgs, name="final_answer")
def reserved(args: _AddArgs) -> int:
    return 0


# ''''''''''''''''''''''''''''''''''''''
# Parsing + planning
# ''''''''''''''''''''''''''''''''''''''


def test_extract_code_joins_fenced_blocks():
    text = "Thought: two parts.\n```python\nx = 1\n```\nthen\n```py\ny = x + 1\n```"

    assert extract_code(text) == "x = 1\n\ny = x + 1"


def test_extract_code_accepts_block_cut_by_stop_sequence():
    assert extract_code("Thought: go\n```python\nprint(add(a=1, b=2))\n") == "print(add(a=1, b=2))"


def test_extract_code_returns_none_without_code():
    assert extract_code("I think the answer is 4.") is None
    assert extract_code("") is None
    assert "did not contain a code block" in missing_code_message("nope")


@pytest.mark.parametrize(
    ("step", "interval", "expected"),
    [
        (1, None, False),
        (1, 3, True),
        (2, 3, False),
        (4, 3, True),
        (7, 3, True),
        (3, 1, True),
    ],
)
def test_is_planning_due(step, interval, expected):
    assert is_planning_due(step, interval) is expected


def test_extract_plan_drops_code():
    assert extract_plan("1. look\n2. answer\n```python\nx=1\n```") == "1. look\n2. answer"


# ''''''''''''''''''''''''''''''''''''''
# State machine + config
# ''''''''''''''''''''''''''''''''''''''


def test_loop_transitions_follow_the_state_machine():
    assert validate_loop_transition("idle", "planning") == "planning"
    assert validate_loop_transition("evaluating", "replanning") == "replanning"
    assert validate_loop_transition("acting", "done") == "done"

    with pytest.raises(InvalidTransitionError):
        validate_loop_transition("done", "acting")
    with pytest.raises(InvalidTransitionError):
        validate_loop_transition("planning", "evaluating")


def test_agent_config_validates_values():
    with pytest.raises(AgentConfigurationError):
        AgentConfig(max_steps=0)
    with pytest.raises(AgentConfigurationError):
        AgentConfig(planning_interval=0)
    with pytest.raises(AgentConfigurationError):
        AgentConfig(repetition_similarity=1.5)


def test_agent_config_from_env(monkeypatch):
    monkeypatch.setenv("RELAY_MAX_STEPS", "7")
    monkeypatch.setenv("RELAY_PLANNING_INTERVAL", "2")
    monkeypatch.setenv("RELAY_SUMMARY_MODE", "true")
    monkeypatch.setenv("RELAY_AUTO_APPROVE_REVERSIBLE", "0")

    config = AgentConfig.from_env()

    assert config.max_steps == 7
    assert config.planning_interval == 2
    assert config.summary_mode is True
    assert config.auto_approve_reversible is False


def test_agent_config_is_plain_data():
    payload = AgentConfig(max_steps=5, limits=ExecutionLimits(max_operations=10)).to_dict()

    assert payload["max_steps"] == 5
    assert payload["limits"]["max_operations"] == 10
    assert payload["authorized_imports"] == []


# ''''''''''''''''''''''''''''''''''''''
# Heuristics
# ''''''''''''''''''''''''''''''''''''''


def _step(n: int, *, code: str | None = None, obs: str | None = None, calls=None, error=None) -> ActionStep:
    return ActionStep(
        step_number=n,
        code_action=code,
        observations=obs,
        tool_calls=list(calls or []),
        error=error,
    )


def test_repetition_detector_flags_identical_code():
    steps = [_step(i, code="search(q='x')", obs=f"result {i}") for i in range(1, 4)]

    signal = RepetitionDetector(window=3).check(steps)

    assert signal is not None
    assert signal.reason == "identical_code"
    assert signal.steps == [1, 2, 3]


def test_repetition_detector_flags_identical_tool_calls():
    call = ToolCall(id="c", tool_name="search", arguments={"q": "x"})
    steps = [_step(i, calls=[call]) for i in range(1, 4)]

    assert RepetitionDetector().check(steps).reason == "identical_tool_calls"


def test_repetition_detector_flags_similar_observations_and_errors():
    steps = [
        _step(1, code="a()", error=StepError("tool_error", "Tool 'fetch' failed: timeout after 5s")),
        _step(2, code="b()", error=StepError("tool_error", "Tool 'fetch' failed: timeout after 6s")),
        _step(3, code="c()", error=StepError("tool_error", "Tool 'fetch' failed: timeout after 7s")),
    ]

    signal = RepetitionDetector(window=3, similarity=0.9).check(steps)

    assert signal.reason == "similar_observations"
    assert signal.similarity >= 0.9


def test_repetition_detector_needs_a_full_window_of_varied_steps():
    detector = RepetitionDetector(window=3)

    assert detector.check([_step(1, code="x"), _step(2, code="x")]) is None
    assert detector.check([_step(1, code="a", obs="apples"), _step(2, code="b", obs="kiwis and more"), _step(3, code="c", obs="zzz")]) is None


def test_goal_drift_detector_escalates_with_streak():
    detector = GoalDriftDetector(threshold=0.5)
    goal = "compute quarterly revenue growth"
    off_topic = [_step(1, obs="weather forecast sunny tomorrow")]

    levels = [detector.check(goal, off_topic).level for _ in range(5)]

    assert levels == ["mild", "mild", "moderate", "moderate", "severe"]
    assert detector.check(goal, [_step(2, obs="quarterly revenue growth was 4%")]) is None
    assert detector.check(goal, off_topic).consecutive == 1


# ''''''''''''''''''''''''''''''''''''''
# Control contracts
# ''''''''''''''''''''''''''''''''''''''


def test_control_response_helpers_reference_the_request():
    request = Confirmation(action="delete_file", reversible=False)

    assert ControlResponse.approve(request).approved is True
    denied = ControlResponse.deny(request)
    assert denied.request_id == request.id and denied.approved is False
    assert ControlResponse.respond(UserInput(prompt="?"), "yes").value == "yes"


def test_wrap_request_keeps_the_originating_agent():
    inner = UserInput(prompt="Which city?", options=["Paris", "Rome"])

    once = wrap_request("worker", inner)
    twice = wrap_request("middle", once)

    assert once.agent_name == "worker"
    assert twice.agent_name == "worker"
    assert twice.query == "Which city?"
    assert twice.options == ["Paris", "Rome"]
    assert twice.context["via"] == "middle"
    assert twice.original is once
    assert twice.innermost() is inner


def test_wrap_confirmation_offers_approve_and_deny():
    confirmation = Confirmation(action="delete_file", description="Removes a.txt")

    query = wrap_request("worker", confirmation)

    assert query.options == ["approve", "deny"]
    assert "delete_file" in query.query


def test_unwrap_response_translates_answers():
    confirmation = Confirmation(action="delete_file")
    query = wrap_request("worker", confirmation)

    denied = unwrap_response(confirmation, ControlResponse.respond(query, "deny"))
    approved = unwrap_response(confirmation, ControlResponse.respond(query, "approve"))

    assert denied.request_id == confirmation.id and denied.approved is False
    assert approved.approved is True


def test_usage_aggregate_adds_and_merges():
    total = UsageAggregate().add_usage(Usage(input_tokens=3, output_tokens=2, total_tokens=5))
    total = total.add_usage(Usage(input_tokens=1, output_tokens=None, total_tokens=1))

    assert total.to_dict() == {"input_tokens": 4, "output_tokens": 2, "total_tokens": 6}
    assert total.merge(total).total_tokens == 12
    assert total.add_usage(None) is total


# ''''''''''''''''''''''''''''''''''''''
# Agent definition
# ''''''''''''''''''''''''''''''''''''''


def test_agent_builds_isolated_registry_with_subagents():
    worker = Agent(model=ScriptedLLM([]), name="worker", description="Does the work.")
    manager = Agent(model=ScriptedLLM([]), name="manager", tools=[add], subagents=[worker])

    assert manager.registry.names() == ["add", "worker"]
    assert isinstance(manager.registry.get("worker"), ManagedAgentTool)
    assert worker.registry.names() == []
    assert "- add(a: integer, b: integer): Add two integers." in manager.system_prompt()
    assert "Does the work." in manager.system_prompt()
    assert manager.describe()["subagents"][0]["name"] == "worker"


def test_agent_rejects_duplicate_and_reserved_tool_names():
    with pytest.raises(AgentConfigurationError):
        Agent(model=ScriptedLLM([]), tools=[add, add])
    with pytest.raises(AgentConfigurationError):
        Agent(model=ScriptedLLM([]), tools=[reserved])
    with pytest.raises(AgentConfigurationError):
        Agent(model=ScriptedLLM([]), tools=["not a tool"])


def test_agent_is_exclusive_while_running():
    agent = Agent(model=ScriptedLLM([]))

    agent.acquire()
    with pytest.raises(AgentBusyError):
        agent.acquire()
    with pytest.raises(AgentBusyError):
        agent.reset()
    agent.release()
    agent.acquire()


def test_model_strings_resolve_through_litellm(monkeypatch):
    monkeypatch.setenv("RELAY_LLM_MAX_RETRIES", "1")

    resolved = resolve_model_to_llm("ollama_chat/llama3")

    assert isinstance(resolved.llm, LiteLLMClient)
    assert resolved.model == "ollama_chat/llama3"
    assert resolved.llm.config.max_retries == 1


def test_model_resolver_override_and_validation():
    scripted = ScriptedLLM([])

    resolved = resolve_model_to_llm("custom", resolver=lambda name: scripted)

    assert resolved.llm is scripted
    with pytest.raises(AgentConfigurationError):
        resolve_model_to_llm("   ")
    with pytest.raises(AgentConfigurationError):
        resolve_model_to_llm("custom", resolver=lambda name: object())


def test_subagent_query_without_original_is_its_own_innermost():
    query = SubAgentQuery(agent_name="worker", query="?")

    assert query.innermost() is query
