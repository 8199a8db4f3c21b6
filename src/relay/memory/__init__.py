from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Memory log: typed steps and the append-only `AgentMemory`.
"""

from .log import AgentMemory
from .steps import (
    RETRY_GUIDANCE,
    ActionStep,
    FinalAnswerStep,
    MemoryStep,
    PlanningStep,
    StepError,
    SystemPromptStep,
    TaskStep,
    Timing,
    format_observation,
)

__all__ = [
    "AgentMemory",
    "MemoryStep",
    "SystemPromptStep",
    "TaskStep",
    "PlanningStep",
    "ActionStep",
    "FinalAnswerStep",
    "StepError",
    "Timing",
    "RETRY_GUIDANCE",
    "format_observation",
]
