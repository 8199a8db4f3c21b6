"""
Agent definitions, run contracts and delegation.
"""

from .base import Agent, BaseAgent
from .config import AgentConfig
from .errors import (
    AgentBusyError,
    AgentConfigurationError,
    AgentError,
    AgentExecutionError,
    ControlRequestUnanswerable,
    ControlResponseMismatchError,
    InvalidTransitionError,
    MaxStepsReached,
    ModelCommunicationError,
)
from .heuristics import DriftSignal, GoalDriftDetector, RepetitionDetector, RepetitionSignal
from .runtime import validate_loop_transition
from .types import (
    AgentRunEvent,
    Confirmation,
    ControlRequest,
    ControlResponse,
    LoopState,
    RunOutcome,
    RunResult,
    SubAgentQuery,
    SubagentExecutionRecord,
    UsageAggregate,
    UserInput,
)
from .delegation import ManagedAgentTool

__all__ = [
    "Agent",
    "BaseAgent",
    "AgentConfig",
    "ManagedAgentTool",
    "UserInput",
    "Confirmation",
    "SubAgentQuery",
    "ControlRequest",
    "ControlResponse",
    "RunResult",
    "RunOutcome",
    "LoopState",
    "UsageAggregate",
    "AgentRunEvent",
    "SubagentExecutionRecord",
    "RepetitionDetector",
    "RepetitionSignal",
    "GoalDriftDetector",
    "DriftSignal",
    "validate_loop_transition",
    "AgentError",
    "AgentConfigurationError",
    "AgentExecutionError",
    "AgentBusyError",
    "ModelCommunicationError",
    "MaxStepsReached",
    "ControlRequestUnanswerable",
    "ControlResponseMismatchError",
    "InvalidTransitionError",
]
