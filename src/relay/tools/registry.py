from __future__ import annotations
"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module implements the ToolRegistry: the name-keyed collection of tools
behind one `call(name, args)` capability. It supports concurrency limiting,
an optional policy hook, registry-level middlewares (wrap ALL tools) and
exporting tool specs to model tool-calling formats.
"""

import asyncio
import inspect
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, List, Optional

from .base import Tool, ToolContext, ToolResult, as_async
from .errors import (
    ToolAlreadyRegisteredError,
    ToolNotFoundError,
    ToolPolicyError,
    ToolRateLimitError,
    ToolTimeoutError,
)

LOGGER = logging.getLogger(__name__)

ToolPolicy = Callable[[str, Dict[str, Any], ToolContext], None]


@dataclass(frozen=True, slots=True)
class ToolCallRecord:
    tool_name: str
    started_at_s: float
    ended_at_s: float
    ok: bool
    error: Optional[str] = None
    tool_call_id: Optional[str] = None


# ---------- Registry-level middleware types ----------

RegistryCallNext = Callable[
    [Tool[Any, Any], Dict[str, Any], ToolContext, Optional[float], Optional[str]],
    Awaitable[ToolResult[Any]],
]
RegistryMiddlewareFn = Callable[..., Any]  # sync or async; we wrap via as_async


def _infer_registry_middleware_style(fn: Callable[..., Any]) -> str:
    """
    Supported registry middleware signatures (sync OR async):

      (call_next, tool, raw_args, ctx)
      (tool, raw_args, ctx, call_next)

    With the 4-parameter forms `call_next(tool, raw_args, ctx)` forwards the
    timeout and tool_call_id of the outer call.
    """
    sig = inspect.signature(fn)
    params = list(sig.parameters.values())

    if any(p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD) for p in params):
        raise ValueError(
            f"Registry middleware '{getattr(fn, '__name__', 'unknown')}' cannot use *args/**kwargs."
        )

    if len(params) != 4:
        raise ValueError(
            f"Registry middleware '{getattr(fn, '__name__', 'unknown')}' must have 4 parameters. Got {sig}"
        )
    if "next" in params[3].name:
        return "tool_args_ctx_next"
    return "next_tool_args_ctx"


class RegistryMiddleware:
    """
    Wraps ALL tool calls executed through the registry.

    Use this for tracing, global rate limits, redaction or argument
    normalization.
    """

    def __init__(self, fn: RegistryMiddlewareFn, *, name: str | None = None) -> None:
        self.name = name or getattr(fn, "__name__", "registry_middleware")
        self._original_fn = fn
        self.fn = as_async(fn)  # makes sync middleware work too
        self._style = _infer_registry_middleware_style(fn)

    async def __call__(
        self,
        call_next: RegistryCallNext,
        tool: Tool[Any, Any],
        raw_args: Dict[str, Any],
        ctx: ToolContext,
        timeout: float | None,
        tool_call_id: str | None,
    ) -> ToolResult[Any]:
        async def _next(t: Tool[Any, Any], a: Dict[str, Any], c: ToolContext) -> ToolResult[Any]:
            return await call_next(t, a, c, timeout, tool_call_id)

        if self._style == "next_tool_args_ctx":
            return await self.fn(_next, tool, raw_args, ctx)
        return await self.fn(tool, raw_args, ctx, _next)


class RateLimiter(RegistryMiddleware):
    """
    Sliding-window rate limit over every tool call in a registry.

    Callers over the limit wait for a free slot; with `max_wait_s` set, a
    call that would wait longer fails with `ToolRateLimitError` instead.
    """

    def __init__(self, max_calls: int, period_s: float, *, max_wait_s: float | None = None) -> None:
        if max_calls < 1:
            raise ValueError("max_calls must be >= 1")
        if period_s <= 0:
            raise ValueError("period_s must be > 0")
        self.max_calls = max_calls
        self.period_s = period_s
        self.max_wait_s = max_wait_s
        self._calls: Deque[float] = deque()
        self._lock = asyncio.Lock()
        super().__init__(self._limit, name="rate_limiter")

    async def _acquire(self) -> None:
        async with self._lock:
            while True:
                now = time.monotonic()
                while self._calls and now - self._calls[0] >= self.period_s:
                    self._calls.popleft()
                if len(self._calls) < self.max_calls:
                    self._calls.append(now)
                    return
                wait_s = self.period_s - (now - self._calls[0])
                if self.max_wait_s is not None and wait_s > self.max_wait_s:
                    raise ToolRateLimitError(
                        f"rate limit of {self.max_calls} calls per {self.period_s}s exceeded"
                    )
                LOGGER.debug("rate limiter waiting %.3fs for a free slot", wait_s)
                await asyncio.sleep(wait_s)

    async def _limit(self, call_next, tool, raw_args, ctx) -> ToolResult[Any]:
        await self._acquire()
        return await call_next(tool, raw_args, ctx)


# ---------- ToolRegistry ----------

class ToolRegistry:
    """
    Stores tools by name and provides safe async execution with:
      - concurrency limiting (max_concurrency=1 runs calls one at a time)
      - registry-level default timeout
      - optional policy hook
      - registry-level middlewares (wrap ALL calls)
      - tool spec export for model tool-calling
    """

    def __init__(
        self,
        *,
        max_concurrency: int = 32,
        default_timeout: float | None = None,
        policy: ToolPolicy | None = None,
        middlewares: Optional[List[RegistryMiddleware | RegistryMiddlewareFn]] = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")

        self._tools: Dict[str, Tool[Any, Any]] = {}
        self._max_concurrency = max_concurrency
        self._sem: asyncio.Semaphore | None = None
        self._sem_loop: asyncio.AbstractEventLoop | None = None
        self._default_timeout = default_timeout
        self._policy = policy
        self._records: List[ToolCallRecord] = []
        self._middlewares: List[RegistryMiddleware] = []

        if middlewares:
            for mw in middlewares:
                self.add_middleware(mw)

    # ''''''''''''''''''''''''''''''''''''''
    # Registration
    # ''''''''''''''''''''''''''''''''''''''

    def register(self, tool: Tool[Any, Any], *, overwrite: bool = False) -> None:
        name = tool.spec.name
        if not overwrite and name in self._tools:
            raise ToolAlreadyRegisteredError(f"Tool already registered: {name}")
        self._tools[name] = tool

    def register_many(self, tools: Iterable[Tool[Any, Any]], *, overwrite: bool = False) -> None:
        for t in tools:
            self.register(t, overwrite=overwrite)

    def get(self, name: str) -> Tool[Any, Any]:
        try:
            return self._tools[name]
        except KeyError as e:
            raise ToolNotFoundError(f"Unknown tool: {name}") from e

    def list(self) -> List[Tool[Any, Any]]:
        return list(self._tools.values())

    def names(self) -> List[str]:
        return list(self._tools.keys())

    def has(self, name: str) -> bool:
        return name in self._tools

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    # ''''''''''''''''''''''''''''''''''''''
    # Registry middlewares
    # ''''''''''''''''''''''''''''''''''''''

    def add_middleware(self, mw: RegistryMiddleware | RegistryMiddlewareFn) -> None:
        """
        Add a registry-level middleware.
        You can pass a RegistryMiddleware instance OR a raw (sync/async) callable.
        """
        if isinstance(mw, RegistryMiddleware):
            self._middlewares.append(mw)
        else:
            self._middlewares.append(RegistryMiddleware(mw))

    def list_middlewares(self) -> List[str]:
        return [mw.name for mw in self._middlewares]

    # ''''''''''''''''''''''''''''''''''''''
    # Execution
    # ''''''''''''''''''''''''''''''''''''''

    def _semaphore(self) -> asyncio.Semaphore:
        # A registry can outlive one event loop (sync runs use asyncio.run per call).
        loop = asyncio.get_running_loop()
        if self._sem is None or self._sem_loop is not loop:
            self._sem = asyncio.Semaphore(self._max_concurrency)
            self._sem_loop = loop
        return self._sem

    async def call(
        self,
        name: str,
        raw_args: Dict[str, Any],
        *,
        ctx: ToolContext | None = None,
        timeout: float | None = None,
        tool_call_id: str | None = None,
    ) -> ToolResult[Any]:
        """
        Execute a registered tool by name.

        Timeout precedence:
          1) call(timeout=...)
          2) tool.default_timeout
          3) registry default_timeout
        """
        tool = self.get(name)
        ctx = ctx or ToolContext()

        if self._policy is not None:
            try:
                self._policy(name, raw_args, ctx)
            except ToolPolicyError:
                raise
            except Exception as e:
                raise ToolPolicyError(str(e)) from e

        started = time.time()

        async with self._semaphore():
            effective_timeout = (
                timeout
                if timeout is not None
                else (tool.default_timeout if tool.default_timeout is not None else self._default_timeout)
            )

            async def _core_call(
                t: Tool[Any, Any],
                a: Dict[str, Any],
                c: ToolContext,
                to: float | None,
                tcid: str | None,
            ) -> ToolResult[Any]:
                # Registry-level timeout covers the whole middleware + tool stack.
                if to is None:
                    return await t.call(a, ctx=c, timeout=None, tool_call_id=tcid)

                try:
                    return await asyncio.wait_for(
                        t.call(a, ctx=c, timeout=None, tool_call_id=tcid),
                        timeout=to,
                    )
                except asyncio.TimeoutError as e:
                    raise ToolTimeoutError(f"Tool '{t.spec.name}' timed out after {to} seconds.") from e

            call_next: RegistryCallNext = _core_call
            for mw in reversed(self._middlewares):
                prev = call_next

                async def _wrapped(
                    t: Tool[Any, Any],
                    a: Dict[str, Any],
                    c: ToolContext,
                    to: float | None,
                    tcid: str | None,
                    _mw=mw,
                    _prev=prev,
                ) -> ToolResult[Any]:
                    return await _mw(_prev, t, a, c, to, tcid)

                call_next = _wrapped

            try:
                res = await call_next(tool, raw_args, ctx, effective_timeout, tool_call_id)
            except Exception as e:
                self._record(name, started, ok=False, error=str(e), tool_call_id=tool_call_id)
                raise

            self._record(name, started, ok=res.success, error=res.error_message, tool_call_id=tool_call_id)
            return res

    def _record(
        self,
        name: str,
        started: float,
        *,
        ok: bool,
        error: str | None,
        tool_call_id: str | None,
    ) -> None:
        self._records.append(
            ToolCallRecord(
                tool_name=name,
                started_at_s=started,
                ended_at_s=time.time(),
                ok=ok,
                error=error,
                tool_call_id=tool_call_id,
            )
        )
        if not ok:
            LOGGER.warning("tool %s failed: %s", name, error)

    # ''''''''''''''''''''''''''''''''''''''
    # Observability
    # ''''''''''''''''''''''''''''''''''''''

    def recent_calls(self, limit: int = 100) -> List[ToolCallRecord]:
        return self._records[-limit:]

    # ''''''''''''''''''''''''''''''''''''''
    # Export
    # ''''''''''''''''''''''''''''''''''''''

    def to_openai_function_tools(self) -> List[Dict[str, Any]]:
        """
        Export registry tools in OpenAI function-tool format:
        [
          {"type":"function","function":{"name":...,"description":...,"parameters":...}},
          ...
        ]
        """
        return [
            {
                "type": "function",
                "function": {
                    "name": t.spec.name,
                    "description": t.spec.description,
                    "parameters": t.spec.parameters_schema,
                },
            }
            for t in self._tools.values()
        ]
