"""
Planning, advisory heuristics and driver-facing yields of the runner.
"""

from __future__ import annotations

import logging
from typing import Any

from ..agents.heuristics import GoalDriftDetector, RepetitionDetector
from ..agents.planning import extract_plan, planning_messages
from ..agents.prompts import REPETITION_PROMPT
from ..agents.types import UserInput
from ..memory import ActionStep, PlanningStep, TaskStep, Timing
from .runner_types import RunState

LOGGER = logging.getLogger(__name__)


class RunnerInteractionMixin:
    """
    Steps the driver sees besides actions: plans, heuristic escalations,
    and the step-boundary yield itself.
    """

    async def _yield_step(self, state: RunState, step: ActionStep | PlanningStep) -> None:
        """Suspend at a step boundary until the driver resumes."""
        await state.channel.yield_(step)

    async def _plan(self, state: RunState, *, initial: bool) -> PlanningStep:
        agent = state.agent
        timing = Timing.start()
        messages = planning_messages(
            agent.memory, initial=initial, summary_mode=agent.config.summary_mode
        )
        response = await self._call_model(state, messages, tools=None, stop=None)  # type: ignore[attr-defined]
        plan = extract_plan(response.text)
        step = PlanningStep(
            plan=plan,
            model_input_messages=messages,
            model_output=response.text,
            timing=timing.finish(),
            usage=response.usage,
        )
        agent.memory.append(step)
        state.plan = plan
        self._emit(  # type: ignore[attr-defined]
            state,
            "planning_completed",
            message="initial plan" if initial else "updated plan",
            data={"plan": plan},
        )
        if self.config.yield_planning_steps:  # type: ignore[attr-defined]
            await self._yield_step(state, step)
        return step

    async def _evaluate_heuristics(
        self,
        state: RunState,
        repetition: RepetitionDetector,
        drift: GoalDriftDetector,
    ) -> None:
        """Run the advisory detectors; never ends the run."""
        agent = state.agent
        actions = agent.memory.action_steps()

        signal = repetition.check(actions)
        if signal is not None:
            LOGGER.warning(
                "agent '%s' repeating itself (%s) over steps %s",
                agent.name,
                signal.reason,
                signal.steps,
            )
            self._emit(  # type: ignore[attr-defined]
                state,
                "repetition_detected",
                message=signal.reason,
                data={"steps": signal.steps, "similarity": signal.similarity},
            )
            if agent.config.escalate_on_repetition:
                await self._escalate(state, signal.reason, signal.steps)

        goal = state.task if not state.plan else f"{state.task}\n{state.plan}"
        drift_signal = drift.check(goal, actions)
        if drift_signal is not None:
            self._emit(  # type: ignore[attr-defined]
                state,
                "goal_drift_detected",
                message=drift_signal.level,
                data={
                    "alignment": drift_signal.alignment,
                    "consecutive": drift_signal.consecutive,
                },
            )

    async def _escalate(self, state: RunState, reason: str, steps: list[int]) -> None:
        request = UserInput(
            prompt=REPETITION_PROMPT.format(reason=reason.replace("_", " ")),
            context={"agent_name": state.agent.name, "steps": steps},
            default="",
        )
        response = await state.channel.request(request)
        guidance = _as_text(response.value)
        if guidance:
            state.agent.memory.append(TaskStep(task=f"Guidance from your supervisor: {guidance}"))


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()
