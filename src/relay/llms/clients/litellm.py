from __future__ import annotations

"""
LiteLLM-backed chat adapter.
"""

from typing import Any

from ..errors import LLMConfigurationError, LLMInvalidResponseError
from ..llm import LLM
from ..types import LLMRequest, LLMResponse, Message, ToolCall, Usage
from ..utils import safe_json_loads


class LiteLLMClient(LLM):
    """Concrete adapter using `litellm.acompletion`."""

    @property
    def provider_id(self) -> str:
        return "litellm"

    async def _chat_core(self, req: LLMRequest) -> LLMResponse:
        try:
            from litellm import acompletion
        except Exception as e:  # pragma: no cover - environment dependent
            raise LLMConfigurationError(
                "litellm is not installed. Install the dependency to use LiteLLMClient."
            ) from e

        payload: dict[str, Any] = {
            "model": req.model,
            "messages": [self._message_payload(m) for m in req.messages],
        }
        if req.tools:
            payload["tools"] = list(req.tools)
        if req.stop:
            payload["stop"] = list(req.stop)
        if req.max_tokens is not None:
            payload["max_tokens"] = req.max_tokens
        if req.temperature is not None:
            payload["temperature"] = req.temperature
        if self.config.api_base_url:
            payload["api_base"] = self.config.api_base_url
        if self.config.api_key:
            payload["api_key"] = self.config.api_key

        raw = await acompletion(**payload)
        return self._normalize(raw)

    def _message_payload(self, message: Message) -> dict[str, Any]:
        """Tool observations are replayed as user text; no provider tool-call ids exist for them."""
        if message.role == "tool":
            label = message.name or "tool"
            return {"role": "user", "content": f"[tool_result:{label}] {message.content}"}
        return {"role": message.role, "content": message.content}

    def _normalize(self, raw: Any) -> LLMResponse:
        data = raw.model_dump() if hasattr(raw, "model_dump") else dict(raw)
        choices = data.get("choices") or []
        if not choices:
            raise LLMInvalidResponseError("litellm response has no choices")

        choice = choices[0]
        message = choice.get("message") or {}
        tool_calls: list[ToolCall] = []
        for row in message.get("tool_calls") or []:
            function = row.get("function") or {}
            arguments = function.get("arguments") or "{}"
            if isinstance(arguments, str):
                decoded = safe_json_loads(arguments)
                if decoded is None:
                    raise LLMInvalidResponseError(
                        f"tool call '{function.get('name')}' arguments are not a JSON object"
                    )
                arguments = decoded
            tool_calls.append(
                ToolCall(id=row.get("id"), tool_name=function.get("name") or "", arguments=arguments)
            )

        usage = data.get("usage") or {}
        return LLMResponse(
            text=message.get("content") or "",
            tool_calls=tool_calls,
            finish_reason=choice.get("finish_reason"),
            usage=Usage(
                input_tokens=usage.get("prompt_tokens"),
                output_tokens=usage.get("completion_tokens"),
                total_tokens=usage.get("total_tokens"),
            ),
            raw=data,
            model=data.get("model"),
        )
