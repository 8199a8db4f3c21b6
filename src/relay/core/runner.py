"""
Canonical relay runner assembled from focused mixins.
"""

from __future__ import annotations

from .runner_api import RunnerAPIMixin
from .runner_execution import RunnerExecutionMixin
from .runner_internals import RunnerInternalsMixin
from .runner_interaction import RunnerInteractionMixin
from .runner_types import RunnerConfig


class Runner(
    RunnerExecutionMixin,
    RunnerInteractionMixin,
    RunnerInternalsMixin,
    RunnerAPIMixin,
):
    """
    Canonical runtime runner for relay agents.

    Composition:
        - `RunnerAPIMixin`: public API (`run`, `run_sync`, `run_handle`)
        - `RunnerExecutionMixin`: step state machine, code and tool-call actions
        - `RunnerInteractionMixin`: planning, heuristics, driver yields
        - `RunnerInternalsMixin`: events, transitions, result assembly
    """


__all__ = ["Runner", "RunnerConfig"]
