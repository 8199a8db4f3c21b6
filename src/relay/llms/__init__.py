from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Model boundary public API.
"""

from .config import LLMConfig
from .errors import (
    LLMConfigurationError,
    LLMError,
    LLMInvalidResponseError,
    LLMRetryableError,
    LLMTimeoutError,
)
from .llm import LLM
from .middleware import LLMChatMiddleware, MiddlewareStack
from .retry import RetryPolicy, backoff_delay
from .types import LLMRequest, LLMResponse, Message, ToolCall, Usage

__all__ = [
    "LLM",
    "LLMConfig",
    "LLMRequest",
    "LLMResponse",
    "Message",
    "ToolCall",
    "Usage",
    "RetryPolicy",
    "backoff_delay",
    "MiddlewareStack",
    "LLMChatMiddleware",
    "LLMError",
    "LLMRetryableError",
    "LLMTimeoutError",
    "LLMInvalidResponseError",
    "LLMConfigurationError",
]
