"""
Core execution loop for the relay runner.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..agents.errors import AgentExecutionError, MaxStepsReached, ModelCommunicationError
from ..agents.heuristics import GoalDriftDetector, RepetitionDetector
from ..agents.parsing import extract_code, missing_code_message
from ..agents.planning import is_planning_due
from ..agents.types import RunResult
from ..llms import LLMError, LLMRequest, LLMResponse, Message
from ..memory import ActionStep, FinalAnswerStep, StepError, TaskStep, Timing, format_observation
from ..sandbox import ExecutionError, ExecutionResult
from ..tools import ToolInvocationLayer, ToolNotFoundError
from .runner_types import RunState

LOGGER = logging.getLogger(__name__)

FINAL_ANSWER_TOOL: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "final_answer",
        "description": "Provide the final answer to the task.",
        "parameters": {
            "type": "object",
            "properties": {"answer": {"description": "The final answer."}},
            "required": ["answer"],
        },
    },
}


class RunnerExecutionMixin:
    """
    The step state machine: act, observe, evaluate, repeat.
    """

    async def _execute_run(self, state: RunState) -> RunResult:
        """
        Drive one run to its terminal `RunResult`.

        Recoverable failures become step errors; model failures and loop
        invariants violations end the run with `state="error"`. Cancellation
        (the driver closing the run) propagates.
        """
        agent = state.agent
        cfg = agent.config
        repetition = RepetitionDetector(cfg.repetition_window, cfg.repetition_similarity)
        drift = GoalDriftDetector()

        self._emit(state, "run_started", data={"task": state.task, "model": agent.model_name})  # type: ignore[attr-defined]
        agent.memory.append(TaskStep(task=state.task))
        LOGGER.info("agent '%s' started run %s", agent.name, state.run_id)

        try:
            while True:
                step_number = state.step + 1
                if is_planning_due(step_number, cfg.planning_interval):
                    self._transition(state, "planning" if step_number == 1 else "replanning")  # type: ignore[attr-defined]
                    await self._plan(state, initial=step_number == 1)  # type: ignore[attr-defined]

                self._transition(state, "acting")  # type: ignore[attr-defined]
                step = await self._act(state, step_number)
                state.step = step_number
                agent.memory.append(step)
                self._transition(state, "evaluating")  # type: ignore[attr-defined]
                self._emit(  # type: ignore[attr-defined]
                    state,
                    "step_completed",
                    data={
                        "tool_calls": len(step.tool_calls),
                        "error": None if step.error is None else step.error.kind,
                        "is_final_answer": step.is_final_answer,
                    },
                )
                if step.error is not None:
                    self._emit(state, "error", message=step.error.message, data={"kind": step.error.kind})  # type: ignore[attr-defined]
                await self._yield_step(state, step)  # type: ignore[attr-defined]

                if step.is_final_answer:
                    state.final_output, state.has_final = step.action_output, True
                    agent.memory.append(FinalAnswerStep(output=step.action_output))
                    self._emit(  # type: ignore[attr-defined]
                        state, "final_answer_produced", data={"output": step.action_output}
                    )
                    return self._finish(state, "success", output=step.action_output)  # type: ignore[attr-defined]
                if state.step >= cfg.max_steps:
                    raise MaxStepsReached(cfg.max_steps)
                await self._evaluate_heuristics(state, repetition, drift)  # type: ignore[attr-defined]
        except MaxStepsReached as e:
            LOGGER.info("agent '%s' reached max steps (%d)", agent.name, cfg.max_steps)
            self._emit(state, "error", message=str(e), data={"kind": "MaxStepsReached"})  # type: ignore[attr-defined]
            return self._finish(state, "max_steps", error=e)  # type: ignore[attr-defined]
        except AgentExecutionError as e:
            LOGGER.warning("agent '%s' run %s failed: %s", agent.name, state.run_id, e)
            self._emit(state, "error", message=str(e), data={"kind": type(e).__name__})  # type: ignore[attr-defined]
            return self._finish(state, "error", error=e)  # type: ignore[attr-defined]
        except Exception as e:
            LOGGER.exception("agent '%s' run %s crashed", agent.name, state.run_id)
            wrapped = AgentExecutionError(f"{type(e).__name__}: {e}")
            wrapped.__cause__ = e
            self._emit(state, "error", message=str(wrapped), data={"kind": type(e).__name__})  # type: ignore[attr-defined]
            return self._finish(state, "error", error=wrapped)  # type: ignore[attr-defined]

    async def _call_model(
        self,
        state: RunState,
        messages: list[Message],
        *,
        tools: list[Any] | None,
        stop: list[str] | None,
    ) -> LLMResponse:
        agent = state.agent
        req = LLMRequest(
            model=agent.model_name,
            messages=messages,
            tools=tools,
            stop=stop,
            max_tokens=self.config.max_tokens,  # type: ignore[attr-defined]
            temperature=self.config.temperature,  # type: ignore[attr-defined]
            metadata={"run_id": state.run_id, "agent_name": agent.name, "step": state.step + 1},
        )
        try:
            response = await agent.llm.chat(req)
        except LLMError as e:
            raise ModelCommunicationError(f"Model call failed: {type(e).__name__}: {e}") from e
        state.llm_calls += 1
        state.usage = state.usage.add_usage(response.usage)
        return response

    async def _act(self, state: RunState, step_number: int) -> ActionStep:
        agent = state.agent
        timing = Timing.start()
        self._emit(state, "step_started", step=step_number)  # type: ignore[attr-defined]
        messages = agent.memory.to_messages(summary_mode=agent.config.summary_mode)

        if agent.config.native_tool_calls:
            tools = [*agent.registry.to_openai_function_tools(), FINAL_ANSWER_TOOL]
            response = await self._call_model(state, messages, tools=tools, stop=None)
            return await self._act_with_tool_calls(state, step_number, timing, messages, response)

        stop = list(self.config.code_stop_sequences) or None  # type: ignore[attr-defined]
        response = await self._call_model(state, messages, tools=None, stop=stop)
        base = dict(
            step_number=step_number,
            model_input_messages=messages,
            model_output=response.text,
            usage=response.usage,
        )

        code = extract_code(response.text)
        if code is None:
            return ActionStep(
                timing=timing.finish(),
                error=StepError("parse_error", missing_code_message(response.text)),
                **base,
            )

        result, layer = await self._execute_code(state, code)
        self._record_tool_calls(state, layer, step_number)

        if result.error is not None:
            observations = f"Execution logs:\n{result.logs}" if result.logs else None
            return ActionStep(
                timing=timing.finish(),
                tool_calls=list(layer.history),
                code_action=code,
                observations=observations,
                error=StepError(result.error.kind, result.error.message),
                **base,
            )

        observations = self._clip(  # type: ignore[attr-defined]
            format_observation(result.logs, result.output),
            self.config.observation_max_chars,  # type: ignore[attr-defined]
        )
        return ActionStep(
            timing=timing.finish(),
            tool_calls=list(layer.history),
            code_action=code,
            observations=observations,
            action_output=result.output,
            is_final_answer=result.is_final_answer,
            **base,
        )

    async def _execute_code(self, state: RunState, code: str) -> tuple[ExecutionResult, ToolInvocationLayer]:
        """
        Run `code` in a worker thread; tool batches it triggers run on this loop.

        When the run is cancelled mid-execution, tool calls not yet started
        are failed and the execution is awaited before cancellation proceeds.
        An execution still running `execution_grace_s` past its timeout
        (time blocked on tools excluded) is abandoned and reported as a timeout.
        """
        agent = state.agent
        layer = ToolInvocationLayer(
            agent.registry,
            ctx=self._tool_context(state),  # type: ignore[attr-defined]
            loop=asyncio.get_running_loop(),
        )
        execution = asyncio.ensure_future(
            asyncio.to_thread(agent.executor.execute, code, tools=layer)
        )
        timeout_s = agent.executor.limits.timeout_s
        try:
            finished = await self._await_execution(execution, layer, timeout_s)
        except asyncio.CancelledError:
            layer.cancel()
            await asyncio.wait({execution})
            raise
        if not finished:
            layer.cancel()
            LOGGER.warning(
                "run %s: code execution overran its %.1fs timeout; abandoning the execution thread",
                state.run_id,
                timeout_s,
            )
            message = f"Code execution exceeded the time limit of {timeout_s} seconds."
            return ExecutionResult(success=False, error=ExecutionError("timeout", message)), layer
        return execution.result(), layer

    async def _await_execution(
        self,
        execution: "asyncio.Future[ExecutionResult]",
        layer: ToolInvocationLayer,
        timeout_s: float,
    ) -> bool:
        loop = asyncio.get_running_loop()
        started = loop.time()
        grace = self.config.execution_grace_s  # type: ignore[attr-defined]
        while not execution.done():
            remaining = timeout_s + grace + layer.blocked_s - (loop.time() - started)
            if remaining <= 0:
                return False
            await asyncio.wait({execution}, timeout=remaining)
        return True

    async def _act_with_tool_calls(
        self,
        state: RunState,
        step_number: int,
        timing: Timing,
        messages: list[Message],
        response: LLMResponse,
    ) -> ActionStep:
        base = dict(
            step_number=step_number,
            model_input_messages=messages,
            model_output=response.text,
            tool_calls=list(response.tool_calls),
            usage=response.usage,
        )
        if not response.tool_calls:
            return ActionStep(
                timing=timing.finish(),
                error=StepError(
                    "parse_error",
                    "Reply with at least one tool call; call `final_answer` when you are done.",
                ),
                **base,
            )

        layer = ToolInvocationLayer(state.agent.registry, ctx=self._tool_context(state))  # type: ignore[attr-defined]
        lines: list[str] = []
        issued = []
        final_call = None
        for call in response.tool_calls:
            if call.tool_name == "final_answer":
                final_call = final_call or call
                continue
            try:
                issued.append((call, layer.invoke(call.tool_name, call.arguments)))
            except ToolNotFoundError as e:
                lines.append(f"{call.tool_name}: error: {e}")

        await layer.resolve_pending()
        self._record_tool_calls(state, layer, step_number)
        failures = 0
        for call, future in issued:
            if future.error is not None:
                failures += 1
                lines.append(f"{call.tool_name}: error: {future.error}")
            else:
                lines.append(f"{call.tool_name}: {future.result()!r}")

        observations = self._clip("\n".join(lines), self.config.observation_max_chars) or None  # type: ignore[attr-defined]
        error = None
        if failures or len(lines) > len(issued):
            error = StepError("tool_error", "One or more tool calls failed; see the observation.")
        if final_call is not None and error is None:
            answer = final_call.arguments.get("answer")
            return ActionStep(
                timing=timing.finish(),
                observations=observations,
                action_output=answer,
                is_final_answer=True,
                **base,
            )
        return ActionStep(timing=timing.finish(), observations=observations, error=error, **base)

    def _record_tool_calls(self, state: RunState, layer: ToolInvocationLayer, step_number: int) -> None:
        state.tool_calls += len(layer.futures)
        for future in layer.futures:
            self._emit(  # type: ignore[attr-defined]
                state,
                "tool_completed",
                step=step_number,
                data={
                    "tool_call_id": future.call_id,
                    "tool_name": future.tool_name,
                    "state": future.state,
                    "error": None if future.error is None else str(future.error),
                },
            )
        if layer.batches:
            LOGGER.debug("step %d resolved tool batches %s", step_number, layer.batches)
