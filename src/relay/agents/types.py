"""
Provider-neutral types for relay agent runtime contracts.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias, Union

from ..llms.types import JSONValue, Usage

RunOutcome = Literal["success", "max_steps", "error"]
LoopState = Literal["idle", "planning", "acting", "evaluating", "replanning", "done"]

AgentEventType = Literal[
    "run_started",
    "step_started",
    "step_completed",
    "planning_completed",
    "tool_completed",
    "control_request_raised",
    "control_request_resolved",
    "repetition_detected",
    "goal_drift_detected",
    "subagent_started",
    "subagent_progress",
    "subagent_completed",
    "error",
    "final_answer_produced",
    "run_completed",
]


def new_request_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class UserInput:
    """
    Free-form question for the driver.

    Attributes:
        prompt: Question shown to the human or orchestrator.
        context: JSON-safe context for the answering UI.
        options: Suggested answers, when the question is a choice.
        default: Answer used by non-interactive drivers; `None` means none.
        id: Unique request id; responses must reference it.
    """

    prompt: str
    context: dict[str, Any] = field(default_factory=dict)
    options: list[str] | None = None
    default: Any = None
    id: str = field(default_factory=new_request_id)


@dataclass(frozen=True, slots=True)
class Confirmation:
    """
    Approval request for a side-effecting action.

    Attributes:
        action: Short action name (`delete_file`, `send_email`).
        description: Human-readable description of what will happen.
        consequences: Known consequences of approving.
        reversible: Whether the action can be undone.
        id: Unique request id; responses must reference it.
    """

    action: str
    description: str = ""
    consequences: list[str] = field(default_factory=list)
    reversible: bool = False
    id: str = field(default_factory=new_request_id)


@dataclass(frozen=True, slots=True)
class SubAgentQuery:
    """
    A request raised inside a delegated agent, surfaced to the top-level driver.

    Attributes:
        agent_name: Agent that originally raised the request.
        query: Question text.
        context: Includes `original` (the wrapped request) and `original_id`.
        options: Suggested answers carried over from the original request.
        id: Unique request id at this level.
    """

    agent_name: str
    query: str
    context: dict[str, Any] = field(default_factory=dict)
    options: list[str] | None = None
    id: str = field(default_factory=new_request_id)

    @property
    def original(self) -> "ControlRequest | None":
        return self.context.get("original")

    def innermost(self) -> "ControlRequest":
        """Unwrap nested queries down to the request the deepest agent raised."""
        current: ControlRequest = self
        while isinstance(current, SubAgentQuery) and current.original is not None:
            current = current.original
        return current


ControlRequest: TypeAlias = Union[UserInput, Confirmation, SubAgentQuery]
CONTROL_REQUEST_TYPES = (UserInput, Confirmation, SubAgentQuery)


@dataclass(frozen=True, slots=True)
class ControlResponse:
    """
    Answer to one control request.

    Attributes:
        request_id: Id of the request being answered.
        value: Answer payload (text for `UserInput`, anything for queries).
        approved: Approval decision; meaningful for `Confirmation`.
    """

    request_id: str
    value: Any = None
    approved: bool = True

    @staticmethod
    def approve(request: ControlRequest, value: Any = None) -> "ControlResponse":
        return ControlResponse(request_id=request.id, value=value, approved=True)

    @staticmethod
    def deny(request: ControlRequest, value: Any = None) -> "ControlResponse":
        return ControlResponse(request_id=request.id, value=value, approved=False)

    @staticmethod
    def respond(request: ControlRequest, value: Any) -> "ControlResponse":
        return ControlResponse(request_id=request.id, value=value, approved=True)


@dataclass(frozen=True, slots=True)
class UsageAggregate:
    """
    Aggregated token usage across LLM calls in a run.

    Attributes:
        input_tokens: Sum of prompt/input tokens.
        output_tokens: Sum of completion/output tokens.
        total_tokens: Sum of total token counts.
    """

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def add_usage(self, usage: Usage | None) -> "UsageAggregate":
        """
        Return a new aggregate with additional usage applied.

        Args:
            usage: Usage payload from a single LLM response.

        Returns:
            New `UsageAggregate` with usage added.
        """
        if usage is None:
            return self
        return UsageAggregate(
            input_tokens=self.input_tokens + (usage.input_tokens or 0),
            output_tokens=self.output_tokens + (usage.output_tokens or 0),
            total_tokens=self.total_tokens + (usage.total_tokens or 0),
        )

    def merge(self, other: "UsageAggregate") -> "UsageAggregate":
        return UsageAggregate(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True, slots=True)
class RunResult:
    """
    Terminal result of one agent run; produced exactly once.

    Attributes:
        state: `success`, `max_steps` or `error`.
        output: Final answer value (`None` unless `state == "success"`).
        step_count: Number of action steps taken.
        usage: Token usage summed over every model call of the run.
        duration_s: Wall-clock duration of the run.
        error: Terminal exception for `max_steps` and `error` outcomes.
        agent_name: Name of the agent that ran.
    """

    state: RunOutcome
    output: Any = None
    step_count: int = 0
    usage: UsageAggregate = field(default_factory=UsageAggregate)
    duration_s: float = 0.0
    error: BaseException | None = None
    agent_name: str | None = None

    @property
    def success(self) -> bool:
        return self.state == "success"


@dataclass(frozen=True, slots=True)
class SubagentExecutionRecord:
    """
    Normalized record for one subagent execution.

    Attributes:
        subagent_name: Executed subagent name.
        success: Whether subagent run succeeded.
        state: Terminal state of the subagent run.
        output_text: Final text returned by subagent.
        error: Error message when subagent failed.
        usage: Token usage of the subagent run.
        latency_ms: Subagent execution latency in milliseconds.
    """

    subagent_name: str
    success: bool
    state: RunOutcome | None = None
    output_text: str | None = None
    error: str | None = None
    usage: UsageAggregate = field(default_factory=UsageAggregate)
    latency_ms: float | None = None

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "subagent_name": self.subagent_name,
            "success": self.success,
            "state": self.state,
            "output_text": self.output_text,
            "error": self.error,
            "usage": self.usage.to_dict(),
            "latency_ms": self.latency_ms,
        }


@dataclass(frozen=True, slots=True)
class AgentRunEvent:
    """
    Event emitted during agent execution lifecycle.

    Attributes:
        type: Event category (run/step/tool/control/subagent/heuristic).
        run_id: Unique run identifier.
        agent_name: Agent emitting the event.
        step: Optional loop step index.
        message: Optional human-readable message.
        data: Structured event payload.
        schema_version: Event schema version string.
    """

    type: AgentEventType
    run_id: str
    agent_name: str
    step: int | None = None
    message: str | None = None
    data: dict[str, JSONValue] = field(default_factory=dict)
    schema_version: str = "v1"


def json_value(value: Any) -> JSONValue:
    """
    Best-effort conversion of tool outputs to JSON-safe payloads.

    Unsupported objects are stringified with `repr(...)`.
    """
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [json_value(v) for v in value]
    if isinstance(value, dict):
        return {str(key): json_value(item) for key, item in value.items()}
    return repr(value)


def describe_request(request: ControlRequest) -> dict[str, JSONValue]:
    """JSON-safe summary of a control request for events and logs."""
    payload: dict[str, JSONValue] = {"id": request.id, "kind": type(request).__name__}
    if isinstance(request, UserInput):
        payload.update(prompt=request.prompt, options=json_value(request.options))
    elif isinstance(request, Confirmation):
        payload.update(action=request.action, reversible=request.reversible)
    else:
        payload.update(agent_name=request.agent_name, query=request.query)
    return payload
