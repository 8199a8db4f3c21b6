from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Typed steps recorded in an agent's memory log.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Union

from ..llms.types import Message, ToolCall, Usage

RETRY_GUIDANCE = (
    "Now let's retry: take care not to repeat previous errors! "
    "If you have retried several times, try a completely different approach."
)


def _plain(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    return repr(value)


def _usage_dict(usage: Usage | None) -> dict[str, Any] | None:
    if usage is None:
        return None
    return {
        "input_tokens": usage.input_tokens,
        "output_tokens": usage.output_tokens,
        "total_tokens": usage.total_tokens,
    }


@dataclass(frozen=True, slots=True)
class Timing:
    """Monotonic start/end marks of one step, in seconds."""

    start_s: float
    end_s: float | None = None

    @property
    def duration_s(self) -> float | None:
        if self.end_s is None:
            return None
        return self.end_s - self.start_s

    @staticmethod
    def start() -> "Timing":
        return Timing(start_s=time.monotonic())

    def finish(self) -> "Timing":
        return Timing(start_s=self.start_s, end_s=time.monotonic())

    def to_dict(self) -> dict[str, Any]:
        return {"start_s": self.start_s, "end_s": self.end_s, "duration_s": self.duration_s}


@dataclass(frozen=True, slots=True)
class StepError:
    """
    Recoverable failure attached to an action step.

    `kind` is an execution error kind (`tool_error`, `timeout`, ...) or one
    of the loop's own kinds (`parse_error`).
    """

    kind: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


@dataclass(frozen=True, slots=True)
class SystemPromptStep:
    system_prompt: str

    def to_messages(self, summary_mode: bool = False) -> list[Message]:
        return [Message(role="system", content=self.system_prompt)]

    def to_dict(self) -> dict[str, Any]:
        return {"type": "system_prompt", "system_prompt": self.system_prompt}


@dataclass(frozen=True, slots=True)
class TaskStep:
    task: str
    attachments: list[Any] = field(default_factory=list)

    def to_messages(self, summary_mode: bool = False) -> list[Message]:
        content = f"New task:\n{self.task}"
        if self.attachments:
            content += "\n\nAttachments:\n" + "\n".join(str(a) for a in self.attachments)
        return [Message(role="user", content=content)]

    def to_dict(self) -> dict[str, Any]:
        return {"type": "task", "task": self.task, "attachments": _plain(self.attachments)}


@dataclass(frozen=True, slots=True)
class PlanningStep:
    plan: str
    model_input_messages: list[Message] = field(default_factory=list)
    model_output: str = ""
    timing: Timing | None = None
    usage: Usage | None = None

    def to_messages(self, summary_mode: bool = False) -> list[Message]:
        # The planning prompt replays the whole transcript; summary mode keeps the plan only.
        if summary_mode:
            return [Message(role="assistant", content=self.plan.strip())]
        return [
            Message(role="assistant", content=self.plan.strip()),
            Message(role="user", content="Now proceed and carry out this plan."),
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "planning",
            "plan": self.plan,
            "model_output": self.model_output,
            "model_input_messages": [
                {"role": m.role, "content": m.content} for m in self.model_input_messages
            ],
            "timing": self.timing.to_dict() if self.timing else None,
            "usage": _usage_dict(self.usage),
        }


@dataclass(frozen=True, slots=True)
class ActionStep:
    """
    One think/act/observe iteration.

    Attributes:
        step_number: 1-based index among the run's action steps.
        timing: Start/end of the iteration.
        model_input_messages: Messages sent to the model for this step.
        model_output: The model's raw reply text.
        tool_calls: Tool calls issued, natively or from agent code.
        code_action: The code block executed, when there was one.
        observations: Captured logs and output fed back to the model.
        action_output: Value of the executed code (or final answer).
        error: Recoverable failure of this step.
        is_final_answer: Whether this step produced the final answer.
        usage: Token usage of the model call.
    """

    step_number: int
    timing: Timing | None = None
    model_input_messages: list[Message] = field(default_factory=list)
    model_output: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    code_action: str | None = None
    observations: str | None = None
    action_output: Any = None
    error: StepError | None = None
    is_final_answer: bool = False
    usage: Usage | None = None

    def to_messages(self, summary_mode: bool = False) -> list[Message]:
        messages: list[Message] = []
        if self.model_output:
            messages.append(Message(role="assistant", content=self.model_output.strip()))
        if self.tool_calls and not self.code_action:
            calls = json.dumps([tc.to_dict() for tc in self.tool_calls], default=repr)
            messages.append(Message(role="assistant", content=f"Calling tools:\n{calls}"))
        if summary_mode:
            return messages

        if self.observations is not None:
            messages.append(
                Message(role="tool", content=f"Observation:\n{self.observations}", name="observation")
            )
        if self.error is not None:
            messages.append(
                Message(
                    role="tool",
                    content=f"Error:\n{self.error.message}\n{RETRY_GUIDANCE}",
                    name=self.error.kind,
                )
            )
        return messages

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "action",
            "step_number": self.step_number,
            "timing": self.timing.to_dict() if self.timing else None,
            "model_output": self.model_output,
            "tool_calls": [tc.to_dict() for tc in self.tool_calls],
            "code_action": self.code_action,
            "observations": self.observations,
            "action_output": _plain(self.action_output),
            "error": self.error.to_dict() if self.error else None,
            "is_final_answer": self.is_final_answer,
            "usage": _usage_dict(self.usage),
        }


@dataclass(frozen=True, slots=True)
class FinalAnswerStep:
    output: Any

    def to_messages(self, summary_mode: bool = False) -> list[Message]:
        return []

    def to_dict(self) -> dict[str, Any]:
        return {"type": "final_answer", "output": _plain(self.output)}


MemoryStep = Union[TaskStep, PlanningStep, ActionStep, FinalAnswerStep]
STEP_TYPES = (TaskStep, PlanningStep, ActionStep, FinalAnswerStep)


def format_observation(logs: str, output: Any) -> str:
    """Render sandbox logs and the code's value the way the model reads them."""
    return f"Execution logs:\n{logs}Last output from code snippet:\n{output}"
