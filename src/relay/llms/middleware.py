from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Module defining middleware protocols and stack for LLM.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from .types import LLMRequest, LLMResponse


LLMChatNext = Callable[[LLMRequest], Awaitable[LLMResponse]]


class LLMChatMiddleware(Protocol):
    async def __call__(
        self, call_next: LLMChatNext, req: LLMRequest
    ) -> LLMResponse: ...


@dataclass
class MiddlewareStack:
    chat: list[LLMChatMiddleware]

    def __init__(self, chat: list[LLMChatMiddleware] | None = None) -> None:
        self.chat = chat or []
