"""
Public runner API and lifecycle entrypoints.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..agents.runtime import new_run_id
from ..agents.types import RunResult
from ..llms.utils import run_sync as _run_sync
from .interaction import ControlChannel, RunHandle, SyncControlPolicy, drive
from .runner_types import RunnerConfig, RunState
from .telemetry import NullTelemetrySink, TelemetrySink

if TYPE_CHECKING:
    from ..agents.base import BaseAgent

LOGGER = logging.getLogger(__name__)


class RunnerAPIMixin:
    """
    Public API surface for starting and driving agent runs.

    `run_handle` gives an interactive driver full control over a run;
    `run` and `run_sync` drive it to completion with a `SyncControlPolicy`.
    """

    def __init__(
        self,
        *,
        telemetry: TelemetrySink | None = None,
        config: RunnerConfig | None = None,
    ) -> None:
        """
        Initialize a runner.

        Args:
            telemetry: Telemetry sink for counters, histograms and events.
            config: Runner configuration. Defaults to `RunnerConfig()`.
        """
        self.config = config or RunnerConfig()
        self._telemetry = telemetry or NullTelemetrySink()

    @property
    def telemetry(self) -> TelemetrySink:
        return self._telemetry

    async def run_handle(self, agent: "BaseAgent", task: str, *, reset: bool = True) -> RunHandle:
        """
        Create a suspended run of `agent` on `task`.

        Nothing executes until the first `RunHandle.resume()`. The agent is
        held busy until the run's result is consumed or the handle is closed.

        Args:
            agent: Agent to run.
            task: Task text for this run.
            reset: Clear the agent's memory and persisted variables first.

        Raises:
            AgentBusyError: If the agent is already running.
        """
        if reset:
            agent.reset()
        agent.acquire()

        run_id = new_run_id()
        channel = ControlChannel()
        state = RunState(
            run_id=run_id,
            agent=agent,
            task=task,
            channel=channel,
            telemetry=self._telemetry,
            events=[],
        )
        channel.observer = lambda event_type, data: self._emit(state, event_type, data=data)  # type: ignore[attr-defined]
        handle = RunHandle(
            lambda _channel: self._execute_run(state),  # type: ignore[attr-defined]
            channel=channel,
            run_id=run_id,
            on_release=agent.release,
        )
        handle.events = state.events
        LOGGER.debug("created run %s for agent '%s'", run_id, agent.name)
        return handle

    async def run(
        self,
        agent: "BaseAgent",
        task: str,
        *,
        reset: bool = True,
        policy: SyncControlPolicy | None = None,
    ) -> RunResult:
        """
        Run `agent` on `task` to completion without an interactive driver.

        Raises:
            ControlRequestUnanswerable: If the run raises a request `policy`
                cannot answer. The run is closed first.
        """
        handle = await self.run_handle(agent, task, reset=reset)
        policy = policy or SyncControlPolicy(
            auto_approve_reversible=agent.config.auto_approve_reversible
        )
        return await drive(handle, policy)

    def run_sync(self, agent: "BaseAgent", task: str, **kwargs: Any) -> RunResult:
        """Blocking wrapper around `run` for scripts and notebooks."""
        return _run_sync(self.run(agent, task, **kwargs))
