"""
Sandbox error taxonomy.
"""

from __future__ import annotations


class SandboxError(Exception):
    """Base exception for failures of agent-generated code."""

    kind = "runtime_error"


class SandboxLimitError(SandboxError):
    """
    Raised when a resource ceiling stops the code.

    Recoverable: the loop reports it to the model as an observation with a
    message specific to the limit hit.
    """

    pass


class OperationLimitExceeded(SandboxLimitError):
    kind = "operation_limit_exceeded"


class OutputLimitExceeded(SandboxLimitError):
    kind = "output_limit_exceeded"


class ExecutionTimeout(SandboxLimitError):
    kind = "timeout"


class InterpreterError(SandboxError):
    """Code rejected before running (syntax or forbidden constructs)."""

    kind = "forbidden_code"


class CodeExecutionError(SandboxError):
    """The code itself raised."""

    kind = "runtime_error"
