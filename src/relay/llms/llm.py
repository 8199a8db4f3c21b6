from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Provider-agnostic model client base class.
"""

import asyncio
import socket
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace

from .config import LLMConfig
from .errors import LLMConfigurationError, LLMError, LLMRetryableError, LLMTimeoutError
from .middleware import LLMChatNext, MiddlewareStack
from .retry import RetryPolicy
from .types import LLMRequest, LLMResponse
from .utils import run_sync


class LLM(ABC):
    """
    Base class for provider-agnostic model interactions.

    The agent loop only depends on `chat`: send messages, receive text plus
    optional tool calls and token usage. Adapters implement `_chat_core`.
    """

    def __init__(
        self,
        *,
        config: LLMConfig | None = None,
        middlewares: MiddlewareStack | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.config = config or LLMConfig.from_env()
        self.middlewares = middlewares or MiddlewareStack()
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.config)

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Stable provider id (e.g. 'litellm', 'scripted')."""

    async def chat(self, req: LLMRequest) -> LLMResponse:
        """
        Execute a chat completion.

        Applies request validation, middleware, timeout and the injected
        retry policy.
        """
        if req.request_id is None:
            req = replace(req, request_id=uuid.uuid4().hex)
        self._validate_chat_request(req)

        async def _base_handler(current_req: LLMRequest) -> LLMResponse:
            return await self.retry_policy.run(
                lambda: self._chat_with_timeout(current_req),
                classify=self._classify_error,
            )

        call_next: LLMChatNext = _base_handler
        for middleware in reversed(self.middlewares.chat):
            previous = call_next

            async def _wrapped(
                current_req: LLMRequest,
                *,
                _mw=middleware,
                _next=previous,
            ) -> LLMResponse:
                return await _mw(_next, current_req)

            call_next = _wrapped

        response = await call_next(req)
        if response.request_id is None:
            response = replace(response, request_id=req.request_id)
        return response

    def chat_sync(self, req: LLMRequest) -> LLMResponse:
        return run_sync(self.chat(req))

    @abstractmethod
    async def _chat_core(self, req: LLMRequest) -> LLMResponse:
        """Provider call. Raise freely; errors are classified by the base class."""

    async def _chat_with_timeout(self, req: LLMRequest) -> LLMResponse:
        timeout_s = req.timeout_s if req.timeout_s is not None else self.config.timeout_s
        try:
            return await asyncio.wait_for(self._chat_core(req), timeout=timeout_s)
        except asyncio.TimeoutError as e:
            raise LLMTimeoutError(f"model call exceeded {timeout_s} seconds") from e

    def _validate_chat_request(self, req: LLMRequest) -> None:
        if not req.model:
            raise LLMConfigurationError("LLMRequest.model must be a non-empty string")
        if not req.messages:
            raise LLMConfigurationError("LLMRequest.messages must not be empty")

    def _classify_error(self, e: Exception) -> LLMError:
        """Map arbitrary exceptions into retryable vs non-retryable LLM errors."""
        msg = str(e) or repr(e)
        m = msg.lower()
        status = None

        for attr in ("status_code", "status", "code"):
            val = getattr(e, attr, None)
            if isinstance(val, int):
                status = val
                break
            if isinstance(val, str) and val.isdigit():
                status = int(val)
                break

        if status is not None:
            if status == 429 or status == 408 or 500 <= status < 600:
                return LLMRetryableError(msg)
            if 400 <= status < 500:
                return LLMError(msg)

        if isinstance(e, (asyncio.TimeoutError, TimeoutError, socket.timeout, ConnectionError)):
            return LLMRetryableError(msg)

        retry_phrases = (
            "rate limit",
            "rate_limit",
            "overloaded",
            "service unavailable",
            "temporarily unavailable",
            "try again",
            "timed out",
            "connection reset",
            "connection refused",
        )
        if any(phrase in m for phrase in retry_phrases):
            return LLMRetryableError(msg)

        return LLMError(msg)

