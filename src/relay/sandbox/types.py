"""
Sandbox result and limit types.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Literal

from ..tools.errors import ToolExecutionError
from .errors import (
    CodeExecutionError,
    ExecutionTimeout,
    InterpreterError,
    OperationLimitExceeded,
    OutputLimitExceeded,
)

ExecutionErrorKind = Literal[
    "operation_limit_exceeded",
    "output_limit_exceeded",
    "timeout",
    "syntax_error",
    "forbidden_code",
    "runtime_error",
    "tool_error",
]

TRUNCATION_MARKER = "\n...[output truncated]"


@dataclass(frozen=True, slots=True)
class ExecutionLimits:
    """
    Resource ceilings for one execution.

    Attributes:
        max_operations: Max operations: traced line events in agent code plus
            elements consumed by metered builtins.
        max_output_bytes: Max UTF-8 bytes of captured print output.
        timeout_s: Wall-clock budget, excluding time blocked on tool batches.
    """

    max_operations: int = 100_000
    max_output_bytes: int = 50_000
    timeout_s: float = 30.0

    def __post_init__(self) -> None:
        if self.max_operations < 1:
            raise ValueError("max_operations must be >= 1")
        if self.max_output_bytes < 0:
            raise ValueError("max_output_bytes must be >= 0")
        if self.timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")

    @staticmethod
    def from_env() -> "ExecutionLimits":
        return ExecutionLimits(
            max_operations=int(os.getenv("RELAY_SANDBOX_MAX_OPERATIONS", "100000")),
            max_output_bytes=int(os.getenv("RELAY_SANDBOX_MAX_OUTPUT_BYTES", "50000")),
            timeout_s=float(os.getenv("RELAY_SANDBOX_TIMEOUT_S", "30")),
        )


@dataclass(frozen=True, slots=True)
class ExecutionError:
    kind: ExecutionErrorKind
    message: str

    def to_exception(self) -> Exception:
        if self.kind == "operation_limit_exceeded":
            return OperationLimitExceeded(self.message)
        if self.kind == "output_limit_exceeded":
            return OutputLimitExceeded(self.message)
        if self.kind == "timeout":
            return ExecutionTimeout(self.message)
        if self.kind == "tool_error":
            return ToolExecutionError(self.message)
        if self.kind in ("syntax_error", "forbidden_code"):
            return InterpreterError(self.message)
        return CodeExecutionError(self.message)


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """
    Outcome of one sandboxed execution.

    Attributes:
        success: `False` when `error` is set.
        output: Value of the trailing expression, or the final answer.
        logs: Captured print output, truncated at the byte ceiling.
        error: Failure kind and message.
        is_final_answer: Whether the code called `final_answer(...)`.
        operations: Line operations counted.
    """

    success: bool
    output: Any = None
    logs: str = ""
    error: ExecutionError | None = None
    is_final_answer: bool = False
    operations: int = 0

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error.to_exception()
