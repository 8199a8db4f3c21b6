from __future__ import annotations

import pytest

from relay.llms.types import ToolCall, Usage
from relay.memory import (
    RETRY_GUIDANCE,
    ActionStep,
    AgentMemory,
    FinalAnswerStep,
    PlanningStep,
    StepError,
    SystemPromptStep,
    TaskStep,
    Timing,
    format_observation,
)


def _memory() -> AgentMemory:
    memory = AgentMemory("You are a careful agent.")
    memory.append(TaskStep(task="Add 2 and 2"))
    memory.append(PlanningStep(plan="1. call add\n2. answer"))
    memory.append(
        ActionStep(
            step_number=1,
            model_output="Thought: add.\n```python\nadd(a=2, b=2)\n```",
            code_action="add(a=2, b=2)",
            observations=format_observation("", 4),
            action_output=4,
            usage=Usage(input_tokens=10, output_tokens=5, total_tokens=15),
        )
    )
    memory.append(
        ActionStep(
            step_number=2,
            model_output="Thought: retry.",
            error=StepError("parse_error", "No code block found."),
        )
    )
    return memory


def test_full_mode_replays_observations_and_errors():
    messages = _memory().to_messages()

    assert [m.role for m in messages] == [
        "system",
        "user",
        "assistant",
        "user",
        "assistant",
        "tool",
        "assistant",
        "tool",
    ]
    assert messages[1].content == "New task:\nAdd 2 and 2"
    assert messages[5].content == "Observation:\nExecution logs:\nLast output from code snippet:\n4"
    assert messages[5].name == "observation"
    assert messages[7].name == "parse_error"
    assert messages[7].content == f"Error:\nNo code block found.\n{RETRY_GUIDANCE}"


def test_summary_mode_keeps_only_task_and_model_outputs():
    messages = _memory().to_messages(summary_mode=True)

    assert [m.role for m in messages] == ["system", "user", "assistant", "assistant", "assistant"]
    assert all("Observation" not in m.content for m in messages)
    assert messages[2].content == "1. call add\n2. answer"


def test_native_tool_calls_are_rendered_when_there_is_no_code():
    step = ActionStep(
        step_number=1,
        tool_calls=[ToolCall(id="c1", tool_name="search", arguments={"q": "relay"})],
    )

    messages = step.to_messages()

    assert messages[0].content.startswith("Calling tools:\n")
    assert '"search"' in messages[0].content


def test_append_rejects_system_prompts_and_foreign_objects():
    memory = AgentMemory("sys")

    with pytest.raises(ValueError):
        memory.append(SystemPromptStep("another"))
    with pytest.raises(TypeError):
        memory.append("not a step")  # type: ignore[arg-type]


def test_steps_are_ordered_and_read_only_views():
    memory = _memory()

    assert [type(s).__name__ for s in memory.steps] == [
        "TaskStep",
        "PlanningStep",
        "ActionStep",
        "ActionStep",
    ]
    assert isinstance(memory.steps, tuple)
    assert [s.step_number for s in memory.action_steps()] == [1, 2]
    assert len(memory.planning_steps()) == 1
    assert len(memory) == 4


def test_reset_keeps_the_system_prompt():
    memory = _memory()

    memory.reset()

    assert len(memory) == 0
    assert [m.role for m in memory.to_messages()] == ["system"]


def test_stats_and_generated_code():
    memory = _memory()
    memory.append(
        ActionStep(step_number=3, code_action="final_answer(4)", action_output=4, is_final_answer=True)
    )
    memory.append(FinalAnswerStep(output=4))

    assert memory.stats() == {"task": 1, "planning": 1, "action": 3, "final_answer": 1, "errors": 1}
    assert memory.all_generated_code() == "add(a=2, b=2)\n\nfinal_answer(4)"


def test_to_dicts_is_plain_data():
    memory = _memory()
    memory.append(FinalAnswerStep(output=object()))

    rows = memory.to_dicts()

    assert rows[0] == {"type": "system_prompt", "system_prompt": "You are a careful agent."}
    assert rows[3]["usage"] == {"input_tokens": 10, "output_tokens": 5, "total_tokens": 15}
    assert rows[4]["error"] == {"kind": "parse_error", "message": "No code block found."}
    assert isinstance(rows[-1]["output"], str)


def test_timing_measures_duration():
    timing = Timing.start()

    assert timing.duration_s is None
    finished = timing.finish()
    assert finished.duration_s is not None and finished.duration_s >= 0
