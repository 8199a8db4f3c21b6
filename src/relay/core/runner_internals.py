"""
Runner internals: event plumbing, tool contexts and result assembly.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from ..agents.runtime import state_snapshot, validate_loop_transition
from ..agents.types import AgentRunEvent, LoopState, RunOutcome, RunResult, json_value
from ..llms.types import JSONValue
from ..tools import ToolContext
from .runner_types import RunState
from .telemetry import TelemetryEvent, TelemetrySink

LOGGER = logging.getLogger(__name__)


class _RunTelemetry:
    """
    Telemetry sink handed to tools of one run.

    Events recorded by tools (delegation progress, for instance) become run
    events of the parent run; measurements pass straight through.
    """

    def __init__(self, runner: "RunnerInternalsMixin", state: RunState) -> None:
        self._runner = runner
        self._state = state

    def record_event(self, event: TelemetryEvent) -> None:
        self._runner._emit(self._state, event.name, data=dict(event.attributes))  # type: ignore[arg-type]

    def increment_counter(
        self,
        name: str,
        value: int = 1,
        *,
        attributes: dict[str, JSONValue] | None = None,
    ) -> None:
        self._state.telemetry.increment_counter(name, value, attributes=attributes)

    def record_histogram(
        self,
        name: str,
        value: float,
        *,
        attributes: dict[str, JSONValue] | None = None,
    ) -> None:
        self._state.telemetry.record_histogram(name, value, attributes=attributes)


class RunnerInternalsMixin:
    """
    Helpers shared by the execution and interaction mixins.
    """

    _telemetry: TelemetrySink

    def _emit(
        self,
        state: RunState,
        event_type: str,
        *,
        message: str | None = None,
        data: dict[str, Any] | None = None,
        step: int | None = None,
    ) -> AgentRunEvent:
        """
        Record a lifecycle event on the run handle and the telemetry sink.
        """
        event = AgentRunEvent(
            type=event_type,  # type: ignore[arg-type]
            run_id=state.run_id,
            agent_name=state.agent.name,
            step=state.step if step is None else step,
            message=message,
            data={str(k): json_value(v) for k, v in (data or {}).items()},
        )
        state.events.append(event)
        state.telemetry.record_event(TelemetryEvent.from_run_event(event))
        LOGGER.debug("[%s] %s step=%s %s", state.agent.name, event.type, event.step, message or "")
        return event

    def _transition(self, state: RunState, target: LoopState) -> None:
        state.loop_state = validate_loop_transition(state.loop_state, target)

    def _tool_context(self, state: RunState) -> ToolContext:
        return ToolContext(
            request_id=f"{state.run_id}:{state.step + 1}",
            run_id=state.run_id,
            agent_name=state.agent.name,
            metadata={"step": state.step + 1},
            channel=state.channel,
            telemetry=_RunTelemetry(self, state),
        )

    def _clip(self, text: str, limit: int) -> str:
        if len(text) <= limit:
            return text
        return text[:limit] + f"\n...[{len(text) - limit} characters omitted]"

    def _snapshot(self, state: RunState) -> dict[str, JSONValue]:
        return state_snapshot(
            state=state.loop_state,
            step=state.step,
            llm_calls=state.llm_calls,
            tool_calls=state.tool_calls,
            started_at_s=state.started_at_s,
        )

    def _finish(
        self,
        state: RunState,
        outcome: RunOutcome,
        *,
        output: Any = None,
        error: BaseException | None = None,
    ) -> RunResult:
        self._transition(state, "done")
        duration = time.monotonic() - state.started_at_s
        result = RunResult(
            state=outcome,
            output=output,
            step_count=state.step,
            usage=state.usage,
            duration_s=duration,
            error=error,
            agent_name=state.agent.name,
        )
        state.telemetry.increment_counter(
            "relay.runs", attributes={"agent_name": state.agent.name, "state": outcome}
        )
        state.telemetry.record_histogram(
            "relay.run.duration_s", duration, attributes={"agent_name": state.agent.name}
        )
        self._emit(
            state,
            "run_completed",
            message=outcome,
            data={
                "state": outcome,
                "step_count": state.step,
                "usage": state.usage.to_dict(),
                "duration_s": duration,
                "error": None if error is None else f"{type(error).__name__}: {error}",
                "snapshot": self._snapshot(state),
            },
        )
        return result
