"""
Agent-layer error taxonomy.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .types import ControlRequest


class AgentError(Exception):
    """Base exception for all agent-runtime failures."""
    pass


class AgentConfigurationError(AgentError):
    """
    Raised when agent configuration is invalid.

    Typical cases:
    - invalid constructor values
    - duplicate tool or subagent names
    - missing model client
    """
    pass


class AgentExecutionError(AgentError):
    """Raised for runtime execution failures not tied to configuration."""
    pass


class AgentBusyError(AgentExecutionError):
    """Raised when an agent that is already running is asked to start another run."""
    pass


class ModelCommunicationError(AgentExecutionError):
    """Raised when the model cannot be reached after retries; fatal to the run."""
    pass


class MaxStepsReached(AgentExecutionError):
    """
    Raised (and attached to the result) when a run exhausts its step budget.

    Distinct from other failures: the memory holds every step taken.
    """

    def __init__(self, max_steps: int) -> None:
        super().__init__(f"Reached max steps ({max_steps}) without a final answer")
        self.max_steps = max_steps


class ControlRequestUnanswerable(AgentExecutionError):
    """Raised when a control request arrives and no driver can answer it."""

    def __init__(self, message: str, *, request: "ControlRequest | None" = None) -> None:
        super().__init__(message)
        self.request = request


class ControlResponseMismatchError(AgentExecutionError):
    """Raised when a resume value does not answer the outstanding request."""

    def __init__(self, message: str, *, expected: Any = None, received: Any = None) -> None:
        super().__init__(message)
        self.expected = expected
        self.received = received


class InvalidTransitionError(AgentExecutionError):
    """Raised when the loop attempts a transition its state machine forbids."""
    pass
