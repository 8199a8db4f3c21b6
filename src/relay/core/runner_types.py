"""
Shared runtime types for relay runner internals.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..agents.types import AgentRunEvent, LoopState, UsageAggregate
from .interaction import ControlChannel

if TYPE_CHECKING:
    from ..agents.base import BaseAgent
    from .telemetry import TelemetrySink


@dataclass(frozen=True, slots=True)
class RunnerConfig:
    """
    Runtime configuration for runner behavior shared by every agent it runs.

    Attributes:
        observation_max_chars: Max characters of one observation kept in memory.
        temperature: Sampling temperature sent with each model request.
        max_tokens: Completion token cap per model request.
        code_stop_sequences: Stop sequences sent when expecting code actions.
        yield_planning_steps: Surface planning steps to the driver.
        execution_grace_s: Extra seconds the runner waits on a code execution
            past its sandbox timeout before abandoning the execution thread.
    """

    observation_max_chars: int = 20_000
    temperature: float | None = None
    max_tokens: int | None = None
    code_stop_sequences: tuple[str, ...] = ("Observation:",)
    yield_planning_steps: bool = True
    execution_grace_s: float = 1.0


@dataclass(slots=True)
class RunState:
    """
    Mutable bookkeeping of one run, owned by its worker task.
    """

    run_id: str
    agent: "BaseAgent"
    task: str
    channel: ControlChannel
    telemetry: "TelemetrySink"
    events: list[AgentRunEvent]
    loop_state: LoopState = "idle"
    step: int = 0
    llm_calls: int = 0
    tool_calls: int = 0
    usage: UsageAggregate = field(default_factory=UsageAggregate)
    started_at_s: float = field(default_factory=time.monotonic)
    plan: str | None = None
    final_output: Any = None
    has_final: bool = False
