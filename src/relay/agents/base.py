"""
Agent definition consumed by the runner.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..llms import LLM
from ..llms.utils import run_sync
from ..memory import AgentMemory
from ..sandbox import DEFAULT_AUTHORIZED_IMPORTS, SandboxExecutor
from ..tools import Tool, ToolAlreadyRegisteredError, ToolRegistry
from .config import AgentConfig
from .errors import AgentBusyError, AgentConfigurationError
from .prompts import build_system_prompt
from .resolution import ModelResolver, resolve_model_to_llm
from .types import RunResult

if TYPE_CHECKING:
    from ..core.interaction import RunHandle
    from ..core.runner import Runner


class BaseAgent:
    """
    An agent: a model, its tools and sub-agents, and the state one run mutates.

    Each agent owns exactly one memory log, one sandbox executor (with its
    persisted variables) and one tool registry, so it runs at most one run
    at a time. Execution happens in `Runner`.
    """

    def __init__(
        self,
        *,
        model: str | LLM,
        name: str | None = None,
        tools: list[Any] | None = None,
        subagents: list["BaseAgent"] | None = None,
        instructions: str | None = None,
        description: str | None = None,
        config: AgentConfig | None = None,
        model_resolver: ModelResolver | None = None,
        tool_concurrency: int = 8,
        runner: "Runner | None" = None,
    ) -> None:
        """
        Initialize an agent definition.

        Args:
            model: Either an instantiated `LLM` adapter or a model string
                routed through LiteLLM (for example `gpt-4o`,
                `ollama_chat/llama3`).
            name: Logical name used in events and as the tool name when this
                agent is delegated to.
            tools: Tools (or callables returning tools) the agent's code can call.
            subagents: Agents exposed to this agent as delegation tools.
            instructions: Extra text appended to the system prompt.
            description: What this agent does, shown to a parent agent.
            config: Loop limits and policy switches.
            model_resolver: Optional override resolver for model strings.
            tool_concurrency: Max tool calls of one batch running at once.
            runner: Optional runner override; defaults to `Runner()` at call time.

        Raises:
            AgentConfigurationError: On duplicate tool names or invalid values.
        """
        if tool_concurrency < 1:
            raise AgentConfigurationError("tool_concurrency must be >= 1")

        self.name = name or self.__class__.__name__
        self.description = description
        self.instructions = instructions
        self.config = config or AgentConfig()
        self.tools = list(tools or [])
        self.subagents = list(subagents or [])
        self.tool_concurrency = tool_concurrency
        self.runner = runner

        resolved = resolve_model_to_llm(model, resolver=model_resolver)
        self.llm = resolved.llm
        self.model_name = resolved.model

        self.registry = self.build_tool_registry()
        self.authorized_imports = tuple(
            sorted(set(DEFAULT_AUTHORIZED_IMPORTS) | set(self.config.authorized_imports))
        )
        self.executor = SandboxExecutor(
            limits=self.config.limits, authorized_imports=self.authorized_imports
        )
        self.memory = AgentMemory(self.system_prompt())
        self._busy = False

    # ''''''''''''''''''''''''''''''''''''''
    # Definition
    # ''''''''''''''''''''''''''''''''''''''

    def build_tool_registry(self) -> ToolRegistry:
        """Create this agent's isolated registry, sub-agents included."""
        from .delegation import ManagedAgentTool

        registry = ToolRegistry(max_concurrency=self.tool_concurrency)
        candidates = [self._normalize_tool(t) for t in self.tools]
        candidates += [ManagedAgentTool(sub) for sub in self.subagents]
        for tool in candidates:
            if tool.name == "final_answer":
                raise AgentConfigurationError("'final_answer' is reserved and cannot be a tool name")
            try:
                registry.register(tool)
            except ToolAlreadyRegisteredError as e:
                raise AgentConfigurationError(f"Agent '{self.name}': {e}") from e
        return registry

    def _normalize_tool(self, candidate: Any) -> Tool[Any, Any]:
        """
        Normalize a declared tool entry into a concrete `Tool`.

        Raises:
            AgentConfigurationError: If the candidate is not a valid tool shape.
        """
        if isinstance(candidate, Tool):
            return candidate
        if callable(candidate):
            value = candidate()
            if isinstance(value, Tool):
                return value
        raise AgentConfigurationError(
            f"Invalid tool '{candidate}'. Expected Tool or callable returning Tool."
        )

    def system_prompt(self) -> str:
        return build_system_prompt(
            tools=self.registry.list(),
            instructions=self.instructions,
            authorized_imports=self.authorized_imports,
            native_tool_calls=self.config.native_tool_calls,
        )

    def describe(self) -> dict[str, Any]:
        """Plain-data description of this agent for serializers."""
        return {
            "name": self.name,
            "description": self.description,
            "model": self.model_name,
            "provider": self.llm.provider_id,
            "instructions": self.instructions,
            "tools": [t.name for t in self.registry.list()],
            "subagents": [sub.describe() for sub in self.subagents],
            "config": self.config.to_dict(),
        }

    # ''''''''''''''''''''''''''''''''''''''
    # Run ownership
    # ''''''''''''''''''''''''''''''''''''''

    @property
    def busy(self) -> bool:
        return self._busy

    def acquire(self) -> None:
        if self._busy:
            raise AgentBusyError(f"Agent '{self.name}' is already running")
        self._busy = True

    def release(self) -> None:
        self._busy = False

    def reset(self) -> None:
        """Forget the previous run: memory steps and persisted variables."""
        if self._busy:
            raise AgentBusyError(f"Agent '{self.name}' cannot be reset while running")
        self.memory.reset()
        self.executor.reset()

    # ''''''''''''''''''''''''''''''''''''''
    # Execution
    # ''''''''''''''''''''''''''''''''''''''

    def _runner(self) -> "Runner":
        from ..core.runner import Runner

        if self.runner is None:
            self.runner = Runner()
        return self.runner

    async def start(self, task: str, *, reset: bool = True) -> "RunHandle":
        """Create a suspended run of `task`; drive it with `handle.resume()`."""
        return await self._runner().run_handle(self, task, reset=reset)

    async def run(self, task: str, *, reset: bool = True) -> RunResult:
        """Run `task` to completion without an interactive driver."""
        return await self._runner().run(self, task, reset=reset)

    def run_sync(self, task: str, *, reset: bool = True) -> RunResult:
        return run_sync(self.run(task, reset=reset))


class Agent(BaseAgent):
    """Concrete agent used by developers."""

    pass
