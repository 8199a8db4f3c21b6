from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Deterministic model double for tests, demos and offline replays.
"""

from typing import Callable, Sequence, Union

from .config import LLMConfig
from .errors import LLMInvalidResponseError
from .llm import LLM
from .middleware import MiddlewareStack
from .retry import RetryPolicy
from .types import LLMRequest, LLMResponse, Usage

ScriptItem = Union[str, LLMResponse, Exception, Callable[[LLMRequest], Union[str, LLMResponse]]]


class ScriptedLLM(LLM):
    """
    Replays a fixed script of responses.

    Each script item is a reply text, a full `LLMResponse`, an exception to
    raise, or a callable receiving the request. Every request is recorded in
    `requests` for later assertions.
    """

    def __init__(
        self,
        script: Sequence[ScriptItem],
        *,
        repeat_last: bool = False,
        usage: Usage | None = None,
        config: LLMConfig | None = None,
        middlewares: MiddlewareStack | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        super().__init__(
            config=config
            or LLMConfig(
                default_model="scripted",
                timeout_s=30.0,
                max_retries=0,
                backoff_base_s=0.0,
                backoff_jitter_s=0.0,
            ),
            middlewares=middlewares,
            retry_policy=retry_policy,
        )
        self._script = list(script)
        self._repeat_last = repeat_last
        self._usage = usage or Usage(input_tokens=10, output_tokens=5, total_tokens=15)
        self._cursor = 0
        self.requests: list[LLMRequest] = []

    @property
    def provider_id(self) -> str:
        return "scripted"

    async def _chat_core(self, req: LLMRequest) -> LLMResponse:
        self.requests.append(req)
        if self._cursor < len(self._script):
            item = self._script[self._cursor]
            self._cursor += 1
        elif self._repeat_last and self._script:
            item = self._script[-1]
        else:
            raise LLMInvalidResponseError("scripted model has no replies left")

        if isinstance(item, Exception):
            raise item
        if callable(item):
            item = item(req)
        if isinstance(item, LLMResponse):
            return item
        return LLMResponse(text=item, usage=self._usage, model="scripted")
