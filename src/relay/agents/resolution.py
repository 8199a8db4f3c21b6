"""
LLM resolution helpers for agent runtime.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Callable

from ..llms import LLM, LLMConfig
from ..llms.clients import LiteLLMClient
from .errors import AgentConfigurationError

ModelResolver = Callable[[str], LLM]


@dataclass(frozen=True, slots=True)
class ResolvedModel:
    """Resolved model name plus instantiated LLM adapter."""

    requested_model: str
    model: str
    llm: LLM
    adapter: str


def resolve_model_to_llm(
    model: str | LLM,
    *,
    resolver: ModelResolver | None = None,
) -> ResolvedModel:
    """
    Resolve model input into a concrete LLM adapter + model name.

    Model strings go to LiteLLM, which routes `provider/model` names itself.
    """
    if isinstance(model, LLM):
        name = model.config.default_model
        return ResolvedModel(requested_model=name, model=name, llm=model, adapter=model.provider_id)

    if not isinstance(model, str) or not model.strip():
        raise AgentConfigurationError(
            "Agent.model must be either an LLM instance or a non-empty model string."
        )

    raw = model.strip()
    if resolver is not None:
        llm = resolver(raw)
        if not isinstance(llm, LLM):
            raise AgentConfigurationError("Custom model resolver must return an LLM.")
        return ResolvedModel(requested_model=raw, model=raw, llm=llm, adapter=llm.provider_id)

    config = dataclasses.replace(LLMConfig.from_env(), default_model=raw)
    return ResolvedModel(
        requested_model=raw,
        model=raw,
        llm=LiteLLMClient(config=config),
        adapter="litellm",
    )
