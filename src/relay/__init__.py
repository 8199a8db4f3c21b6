"""
relay: code-writing agents with batched tool calls, suspendable runs
and nested delegation.
"""

from .llms import LLM, LLMConfig
from .tools import Tool, ToolContext, ToolFuture, ToolRegistry, tool
from .sandbox import ExecutionLimits, SandboxExecutor
from .memory import AgentMemory
from .agents import (
    Agent,
    AgentConfig,
    Confirmation,
    ControlResponse,
    RunResult,
    SubAgentQuery,
    UserInput,
)
from .core import Runner, RunnerConfig, RunHandle

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "AgentConfig",
    "Runner",
    "RunnerConfig",
    "RunHandle",
    "RunResult",
    "UserInput",
    "Confirmation",
    "SubAgentQuery",
    "ControlResponse",
    "Tool",
    "ToolContext",
    "ToolFuture",
    "ToolRegistry",
    "tool",
    "LLM",
    "LLMConfig",
    "AgentMemory",
    "SandboxExecutor",
    "ExecutionLimits",
]
