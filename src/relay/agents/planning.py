"""
Planning prompts and plan extraction.
"""

from __future__ import annotations

from ..llms.types import Message
from ..memory import AgentMemory
from .prompts import INITIAL_PLAN_PROMPT, UPDATE_PLAN_PROMPT


def is_planning_due(step_number: int, planning_interval: int | None) -> bool:
    """
    Whether a plan is due before action step `step_number` (1-based).

    Step 1 always plans when an interval is set; afterwards every
    `planning_interval` completed steps trigger a replan.
    """
    if planning_interval is None:
        return False
    return step_number == 1 or (step_number - 1) % planning_interval == 0


def planning_messages(memory: AgentMemory, *, initial: bool, summary_mode: bool) -> list[Message]:
    messages = memory.to_messages(summary_mode=summary_mode)
    prompt = INITIAL_PLAN_PROMPT if initial else UPDATE_PLAN_PROMPT
    messages.append(Message(role="user", content=prompt))
    return messages


def extract_plan(text: str) -> str:
    """Strip code the model may have written despite being asked not to."""
    plan = text.split("```")[0].strip()
    return plan or text.strip()
