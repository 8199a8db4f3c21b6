from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Append-only memory log rendered into model context.
"""

import logging
from typing import Any, Iterator

from ..llms.types import Message
from .steps import (
    STEP_TYPES,
    ActionStep,
    MemoryStep,
    PlanningStep,
    SystemPromptStep,
    TaskStep,
)

LOGGER = logging.getLogger(__name__)


class AgentMemory:
    """
    One system prompt plus the ordered steps of the current run.

    Steps are immutable and only ever appended; `reset()` starts a new log
    under the same system prompt.
    """

    def __init__(self, system_prompt: str) -> None:
        self.system_prompt = SystemPromptStep(system_prompt=system_prompt)
        self._steps: list[MemoryStep] = []

    def append(self, step: MemoryStep) -> None:
        if isinstance(step, SystemPromptStep):
            raise ValueError("memory already holds a system prompt; create a new AgentMemory")
        if not isinstance(step, STEP_TYPES):
            raise TypeError(f"cannot append {type(step).__name__} to agent memory")
        self._steps.append(step)
        LOGGER.debug("memory append: %s (%d steps)", type(step).__name__, len(self._steps))

    def reset(self) -> None:
        self._steps = []

    @property
    def steps(self) -> tuple[MemoryStep, ...]:
        return tuple(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self) -> Iterator[MemoryStep]:
        return iter(tuple(self._steps))

    def action_steps(self) -> list[ActionStep]:
        return [s for s in self._steps if isinstance(s, ActionStep)]

    def planning_steps(self) -> list[PlanningStep]:
        return [s for s in self._steps if isinstance(s, PlanningStep)]

    def task_steps(self) -> list[TaskStep]:
        return [s for s in self._steps if isinstance(s, TaskStep)]

    def to_messages(self, summary_mode: bool = False) -> list[Message]:
        """
        Flatten the log into the message sequence sent to the model.

        Args:
            summary_mode: Keep only task messages and the model's own
                outputs; observations, errors and planning inputs are dropped.
        """
        messages = self.system_prompt.to_messages(summary_mode)
        for step in self._steps:
            messages.extend(step.to_messages(summary_mode))
        return messages

    def all_generated_code(self) -> str:
        return "\n\n".join(s.code_action for s in self.action_steps() if s.code_action)

    def stats(self) -> dict[str, int]:
        counts = {"task": 0, "planning": 0, "action": 0, "final_answer": 0, "errors": 0}
        for step in self._steps:
            kind = step.to_dict()["type"]
            counts[kind] += 1
            if isinstance(step, ActionStep) and step.error is not None:
                counts["errors"] += 1
        return counts

    def to_dicts(self) -> list[dict[str, Any]]:
        return [self.system_prompt.to_dict()] + [s.to_dict() for s in self._steps]
