"""
Sandboxed execution of agent-generated code.
"""

from .errors import (
    CodeExecutionError,
    ExecutionTimeout,
    InterpreterError,
    OperationLimitExceeded,
    OutputLimitExceeded,
    SandboxError,
    SandboxLimitError,
)
from .executor import AGENT_FILENAME, SandboxExecutor
from .state import PersistedVariables
from .types import (
    TRUNCATION_MARKER,
    ExecutionError,
    ExecutionErrorKind,
    ExecutionLimits,
    ExecutionResult,
)
from .validation import DEFAULT_AUTHORIZED_IMPORTS, validate_code

__all__ = [
    "SandboxExecutor",
    "AGENT_FILENAME",
    "PersistedVariables",
    "ExecutionLimits",
    "ExecutionResult",
    "ExecutionError",
    "ExecutionErrorKind",
    "TRUNCATION_MARKER",
    "DEFAULT_AUTHORIZED_IMPORTS",
    "validate_code",
    "SandboxError",
    "SandboxLimitError",
    "OperationLimitExceeded",
    "OutputLimitExceeded",
    "ExecutionTimeout",
    "InterpreterError",
    "CodeExecutionError",
]
