"""
Default prompt text for the agent loop.
"""

from __future__ import annotations

from typing import Iterable

from ..tools import Tool

CODE_AGENT_SYSTEM_PROMPT = """You are an agent that solves tasks by writing Python code.
At each step, explain your reasoning briefly, then write one code block:
```python
# code
```
The code runs in a sandbox. Call tools like functions with keyword arguments.
Use print() to see intermediate values; printed output comes back as an observation.
Only values stored in `state` (state["name"] = value, or remember("name", value)) are
available in later steps; other variables are discarded after each step.
When you have the answer, call final_answer(value).
Allowed imports: {imports}.
"""

TOOL_CALLING_SYSTEM_PROMPT = """You are an agent that solves tasks by calling tools.
Call one or more tools at each step and read their results.
When you have the answer, call the `final_answer` tool with it.
"""

INITIAL_PLAN_PROMPT = (
    "Before acting, write a short step-by-step plan for the task above. "
    "List the facts you know, the facts you still need, and the steps to take. "
    "Do not write code yet."
)

UPDATE_PLAN_PROMPT = (
    "Review the progress so far and rewrite the plan for the remaining work. "
    "Keep what worked, drop what failed. Do not write code yet."
)

REPETITION_PROMPT = (
    "The agent appears to be repeating itself ({reason}). "
    "Give guidance, or leave empty to let it continue."
)


def render_tool_list(tools: Iterable[Tool]) -> str:
    lines = []
    for t in tools:
        props = t.spec.parameters_schema.get("properties", {}) or {}
        params = ", ".join(
            f"{name}: {schema.get('type', 'any')}" for name, schema in props.items()
        )
        lines.append(f"- {t.spec.name}({params}): {t.spec.description}")
    return "\n".join(lines) if lines else "(no tools)"


def build_system_prompt(
    *,
    tools: Iterable[Tool],
    instructions: str | None,
    authorized_imports: Iterable[str],
    native_tool_calls: bool,
) -> str:
    if native_tool_calls:
        text = TOOL_CALLING_SYSTEM_PROMPT
    else:
        text = CODE_AGENT_SYSTEM_PROMPT.format(imports=", ".join(sorted(authorized_imports)))
    text += "\nTools:\n" + render_tool_list(tools)
    if instructions:
        text += "\n\n" + instructions.strip()
    return text
