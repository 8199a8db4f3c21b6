from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module defines custom exceptions for error handling in the llms package.
"""


class LLMError(Exception):
    """Base exception for all relay model-boundary errors."""

    pass


class LLMRetryableError(LLMError):
    """
    Transient failures: rate limits, timeouts, provider hiccups.
    These errors may be retried with backoff.
    """

    pass


class LLMTimeoutError(LLMRetryableError):
    pass


class LLMInvalidResponseError(LLMError):
    """
    The model returned a payload we couldn't normalize (missing choices,
    malformed tool-call arguments, ...).
    """

    pass


class LLMConfigurationError(LLMError):
    pass
