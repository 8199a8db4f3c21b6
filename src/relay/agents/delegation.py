"""
Delegation bridge: a sub-agent exposed to its parent as an ordinary tool.

When the parent runs under an interactive driver, the sub-agent's run is
driven from inside the tool call and every control request it raises is
forwarded up through the parent's channel as a `SubAgentQuery`. Arbitrarily
deep chains therefore surface every nested request to the single top-level
driver.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from ..core.telemetry import TelemetryEvent, now_ms
from ..tools import Tool, ToolContext, ToolSpec
from .errors import AgentError
from .types import (
    CONTROL_REQUEST_TYPES,
    Confirmation,
    ControlRequest,
    ControlResponse,
    RunResult,
    SubAgentQuery,
    SubagentExecutionRecord,
    UsageAggregate,
    UserInput,
)

if TYPE_CHECKING:
    from .base import BaseAgent

LOGGER = logging.getLogger(__name__)

DEFAULT_PROMPT_TEMPLATE = (
    "You are '{name}', working for a manager agent. Your manager gives you this task:\n"
    "{task}\n"
    "Solve it and give your full answer with final_answer()."
)


class DelegateArgs(BaseModel):
    task: str = Field(description="The task for the agent, with every detail it needs.")


def wrap_request(agent_name: str, request: ControlRequest) -> SubAgentQuery:
    """
    Re-wrap a sub-agent's request for the parent's driver.

    An already-wrapped query keeps the name of the agent that first raised it.
    """
    if isinstance(request, SubAgentQuery):
        origin, query, options = request.agent_name, request.query, request.options
    elif isinstance(request, UserInput):
        origin, query, options = agent_name, request.prompt, request.options
    else:
        origin, options = agent_name, ["approve", "deny"]
        query = f"Approve action '{request.action}'?"
        if request.description:
            query += f" {request.description}"
    return SubAgentQuery(
        agent_name=origin,
        query=query,
        context={"original": request, "original_id": request.id, "via": agent_name},
        options=options,
    )


def unwrap_response(request: ControlRequest, answer: ControlResponse) -> ControlResponse:
    """Translate the parent driver's answer into a response for the original request."""
    approved = answer.approved
    if isinstance(request, Confirmation) and isinstance(answer.value, str):
        approved = approved and answer.value.strip().lower() not in {"deny", "no", "reject"}
    return ControlResponse(request_id=request.id, value=answer.value, approved=approved)


class ManagedAgentTool(Tool[DelegateArgs, str]):
    """
    Tool that runs a sub-agent on `task` and returns its final answer as text.

    Failures of the sub-agent come back as an error string, never as an
    exception, so the parent's code can read and react to them.
    """

    def __init__(
        self,
        agent: "BaseAgent",
        *,
        name: str | None = None,
        description: str | None = None,
        prompt_template: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.agent = agent
        self.prompt_template = prompt_template or DEFAULT_PROMPT_TEMPLATE
        tool_desc = description or agent.description or f"Delegate a task to the '{agent.name}' agent."
        super().__init__(
            spec=ToolSpec(
                name=name or agent.name,
                description=tool_desc,
                parameters_schema=DelegateArgs.model_json_schema(),
            ),
            fn=self._delegate,
            args_model=DelegateArgs,
            default_timeout=timeout,
        )

    async def _delegate(self, args: DelegateArgs, ctx: ToolContext) -> str:
        prompt = self.prompt_template.format(name=self.agent.name, task=args.task)
        started = time.monotonic()
        self._emit(ctx, "subagent_started", {"subagent_name": self.agent.name, "task": args.task})

        try:
            if ctx.channel is not None:
                result = await self._run_interactive(prompt, ctx)
            else:
                result = await self.agent.run(prompt)
        except AgentError as e:
            LOGGER.warning("subagent '%s' failed: %s", self.agent.name, e)
            self._complete(
                ctx,
                SubagentExecutionRecord(
                    subagent_name=self.agent.name,
                    success=False,
                    state="error",
                    error=f"{type(e).__name__}: {e}",
                    latency_ms=(time.monotonic() - started) * 1000.0,
                ),
            )
            return f"Agent '{self.agent.name}' failed: {type(e).__name__}: {e}"

        self._complete(ctx, self._record(result, started))
        if result.state == "success":
            return str(result.output)
        return f"Agent '{self.agent.name}' stopped without an answer ({result.state}): {result.error}"

    async def _run_interactive(self, prompt: str, ctx: ToolContext) -> RunResult:
        handle = await self.agent.start(prompt)
        try:
            item = await handle.resume()
            while not isinstance(item, RunResult):
                if isinstance(item, CONTROL_REQUEST_TYPES):
                    answer = await ctx.request(wrap_request(self.agent.name, item))
                    item = await handle.resume(unwrap_response(item, answer))
                else:
                    self._emit(
                        ctx,
                        "subagent_progress",
                        {
                            "subagent_name": self.agent.name,
                            "step_type": type(item).__name__,
                            "step_number": getattr(item, "step_number", None),
                        },
                    )
                    item = await handle.resume()
            return item
        finally:
            if not handle.done:
                await handle.close()

    def _record(self, result: RunResult, started: float) -> SubagentExecutionRecord:
        return SubagentExecutionRecord(
            subagent_name=self.agent.name,
            success=result.success,
            state=result.state,
            output_text=None if result.output is None else str(result.output),
            error=None if result.error is None else f"{type(result.error).__name__}: {result.error}",
            usage=result.usage or UsageAggregate(),
            latency_ms=(time.monotonic() - started) * 1000.0,
        )

    def _complete(self, ctx: ToolContext, record: SubagentExecutionRecord) -> None:
        self._emit(ctx, "subagent_completed", record.to_dict())
        if ctx.telemetry is not None:
            ctx.telemetry.record_histogram(
                "relay.subagent.latency_ms",
                record.latency_ms or 0.0,
                attributes={"subagent_name": record.subagent_name, "success": record.success},
            )

    def _emit(self, ctx: ToolContext, name: str, attributes: dict[str, Any]) -> None:
        if ctx.telemetry is None:
            return
        ctx.telemetry.record_event(
            TelemetryEvent(name=name, timestamp_ms=now_ms(), attributes=attributes)
        )
