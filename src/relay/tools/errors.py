"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module defines custom exceptions for error handling in the tools.
"""

from __future__ import annotations


class ToolError(Exception):
    """Base exception for all relay tool-related errors."""

    pass


class ToolValidationError(ToolError):
    pass


class ToolAlreadyRegisteredError(ToolError):
    pass


class ToolExecutionError(ToolError):
    """
    A tool invocation failed. Recoverable: the agent loop feeds the message
    back to the model as an observation.
    """

    def __init__(self, message: str, *, tool_name: str | None = None) -> None:
        super().__init__(message)
        self.tool_name = tool_name


class ToolTimeoutError(ToolError):
    pass


class ToolPolicyError(ToolError):
    pass


class ToolRateLimitError(ToolPolicyError):
    pass


class ToolNotFoundError(ToolError):
    pass
