"""
Agent loop configuration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

from ..sandbox.types import ExecutionLimits
from .errors import AgentConfigurationError


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass(frozen=True, slots=True)
class AgentConfig:
    """
    Loop limits and policy switches for one agent.

    Attributes:
        max_steps: Action steps allowed before `MaxStepsReached`.
        planning_interval: Plan before the first step and every N steps;
            `None` disables planning.
        summary_mode: Render memory without replayed observations.
        auto_approve_reversible: Let the synchronous driver approve
            reversible confirmations on its own.
        repetition_window: Recent steps compared by the repetition detector.
        repetition_similarity: `difflib` ratio at which observations count
            as repeated.
        escalate_on_repetition: Ask the driver for guidance when repetition
            is detected.
        native_tool_calls: Offer tools as native function calls instead of
            expecting code blocks.
        limits: Sandbox ceilings for each code action.
        authorized_imports: Extra modules agent code may import.
    """

    max_steps: int = 20
    planning_interval: int | None = None
    summary_mode: bool = False
    auto_approve_reversible: bool = True
    repetition_window: int = 3
    repetition_similarity: float = 0.9
    escalate_on_repetition: bool = False
    native_tool_calls: bool = False
    limits: ExecutionLimits = field(default_factory=ExecutionLimits)
    authorized_imports: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.max_steps < 1:
            raise AgentConfigurationError("max_steps must be >= 1")
        if self.planning_interval is not None and self.planning_interval < 1:
            raise AgentConfigurationError("planning_interval must be >= 1 or None")
        if self.repetition_window < 2:
            raise AgentConfigurationError("repetition_window must be >= 2")
        if not 0.0 < self.repetition_similarity <= 1.0:
            raise AgentConfigurationError("repetition_similarity must be in (0, 1]")

    @staticmethod
    def from_env() -> "AgentConfig":
        return AgentConfig(
            max_steps=_env_int("RELAY_MAX_STEPS", 20) or 20,
            planning_interval=_env_int("RELAY_PLANNING_INTERVAL", None),
            summary_mode=_env_bool("RELAY_SUMMARY_MODE", False),
            auto_approve_reversible=_env_bool("RELAY_AUTO_APPROVE_REVERSIBLE", True),
            repetition_window=_env_int("RELAY_REPETITION_WINDOW", 3) or 3,
            escalate_on_repetition=_env_bool("RELAY_ESCALATE_ON_REPETITION", False),
            limits=ExecutionLimits.from_env(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_steps": self.max_steps,
            "planning_interval": self.planning_interval,
            "summary_mode": self.summary_mode,
            "auto_approve_reversible": self.auto_approve_reversible,
            "repetition_window": self.repetition_window,
            "repetition_similarity": self.repetition_similarity,
            "escalate_on_repetition": self.escalate_on_repetition,
            "native_tool_calls": self.native_tool_calls,
            "limits": {
                "max_operations": self.limits.max_operations,
                "max_output_bytes": self.limits.max_output_bytes,
                "timeout_s": self.limits.timeout_s,
            },
            "authorized_imports": list(self.authorized_imports),
        }
