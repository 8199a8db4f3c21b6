from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

relay tools public API.

This package exposes:
- Core tool types (Tool, ToolSpec, ToolContext, ToolResult)
- The @tool decorator and registry-level middleware (incl. RateLimiter)
- ToolRegistry
- The deferred invocation layer (ToolFuture, ToolInvocationLayer)
"""

from .base import Tool, ToolContext, ToolResult, ToolSpec, as_async
from .decorator import registry_middleware, tool
from .errors import (
    ToolAlreadyRegisteredError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolPolicyError,
    ToolRateLimitError,
    ToolTimeoutError,
    ToolValidationError,
)
from .futures import ToolFuture, ToolInvocationLayer
from .registry import RateLimiter, RegistryMiddleware, ToolCallRecord, ToolRegistry

__all__ = [
    "Tool",
    "ToolSpec",
    "ToolContext",
    "ToolResult",
    "as_async",
    "tool",
    "registry_middleware",
    "ToolRegistry",
    "ToolCallRecord",
    "RegistryMiddleware",
    "RateLimiter",
    "ToolFuture",
    "ToolInvocationLayer",
    "ToolError",
    "ToolValidationError",
    "ToolAlreadyRegisteredError",
    "ToolExecutionError",
    "ToolTimeoutError",
    "ToolPolicyError",
    "ToolRateLimitError",
    "ToolNotFoundError",
]
