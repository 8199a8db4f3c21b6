from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module defines the types and base class for tools invoked by relay agents.
"""

import asyncio
import functools
import inspect
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    Optional,
    Type,
    TypeVar,
    Union,
)

from pydantic import BaseModel, ValidationError

from .errors import ToolExecutionError, ToolTimeoutError, ToolValidationError

if TYPE_CHECKING:
    from ..agents.types import ControlRequest, ControlResponse
    from ..core.interaction import ControlChannel
    from ..core.telemetry import TelemetrySink


ArgsT = TypeVar("ArgsT", bound=BaseModel)
ReturnT = TypeVar("ReturnT")

AsyncToolFn = Callable[..., Awaitable[Any]]
SyncToolFn = Callable[..., Any]
ToolFn = Union[AsyncToolFn, SyncToolFn]


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """
    Stable tool metadata used for registry listing + model-facing export.
    """

    name: str
    description: str
    parameters_schema: Dict[str, Any]  # JSON Schema for the tool's arguments


@dataclass(frozen=True, slots=True)
class ToolContext:
    """
    Contextual information available to a tool during its execution.

    When the tool runs inside an agent run, `channel` is the run's control
    channel and the `request_*` helpers suspend the run until the driver
    answers. Without a channel the helpers fall back to non-interactive
    answers: the input default, or `reversible` for confirmations.
    """

    request_id: str | None = None
    run_id: str | None = None
    agent_name: str | None = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    channel: "ControlChannel | None" = None
    telemetry: "TelemetrySink | None" = None

    @property
    def interactive(self) -> bool:
        return self.channel is not None

    async def request(self, request: "ControlRequest") -> "ControlResponse":
        """
        Raise a control request through the run's channel and wait for the answer.

        Raises:
            ControlRequestUnanswerable: If no run channel is attached.
        """
        if self.channel is None:
            from ..agents.errors import ControlRequestUnanswerable

            raise ControlRequestUnanswerable(
                f"No driver attached to answer {type(request).__name__} request",
                request=request,
            )
        return await self.channel.request(request)

    async def request_input(
        self,
        prompt: str,
        *,
        context: Dict[str, Any] | None = None,
        options: list[str] | None = None,
        default: Any = None,
    ) -> Any:
        if self.channel is None:
            return default

        from ..agents.types import UserInput

        response = await self.request(
            UserInput(prompt=prompt, context=dict(context or {}), options=options, default=default)
        )
        return response.value

    async def request_confirmation(
        self,
        action: str,
        *,
        description: str = "",
        consequences: list[str] | None = None,
        reversible: bool = False,
    ) -> bool:
        if self.channel is None:
            return reversible

        from ..agents.types import Confirmation

        response = await self.request(
            Confirmation(
                action=action,
                description=description,
                consequences=list(consequences or []),
                reversible=reversible,
            )
        )
        return response.approved


@dataclass(frozen=True, slots=True)
class ToolResult(Generic[ReturnT]):
    """
    Standardized result object returned by tools after execution.

    Tools never raise through `Tool.call`; failure is reported with
    `success=False` so registry middleware and the invocation layer can
    treat every tool identically.
    """

    output: Optional[ReturnT] = None
    success: bool = True
    error_message: Optional[str] = None
    tool_name: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    tool_call_id: Optional[str] = None


def as_async(fn: ToolFn) -> AsyncToolFn:
    """
    Utility function to convert a synchronous function into an asynchronous one.
    This allows the registry and the invocation layer to treat all tools as async.
    """
    if asyncio.iscoroutinefunction(fn):
        return fn  # type: ignore[return-value]

    async def _wrapped(*args: Any, **kwargs: Any) -> Any:
        # run sync function in threadpool
        return await asyncio.to_thread(functools.partial(fn, *args, **kwargs))

    return _wrapped


def _infer_call_style(fn: Callable[..., Any]) -> str:
    """
    Determine how to call a tool based on the signature.

    Allowed:
      (args)
      (args, ctx)
      (ctx, args)

    We accept ctx by name "ctx" OR annotation ToolContext.
    """
    sig = inspect.signature(fn)
    params = list(sig.parameters.values())
    fn_name = getattr(fn, "__name__", "unknown")

    if any(p.kind in (p.VAR_KEYWORD, p.VAR_POSITIONAL) for p in params):
        raise ToolValidationError(f"Tool function '{fn_name}' cannot have *args or **kwargs.")

    if len(params) == 1:
        return "args"

    if len(params) == 2:
        p0, p1 = params
        if p0.annotation in (ToolContext, "ToolContext") or p0.name == "ctx":
            return "ctx_args"
        if p1.annotation in (ToolContext, "ToolContext") or p1.name == "ctx":
            return "args_ctx"
        raise ToolValidationError(
            f"Tool function '{fn_name}' must include ToolContext "
            f"as 'ctx' (by name or annotation). Signature: {sig}"
        )

    raise ToolValidationError(
        f"Tool function '{fn_name}' has invalid signature. "
        f"Expected (args) or (args, ctx) or (ctx, args). Got {sig}."
    )


class Tool(Generic[ArgsT, ReturnT]):
    """
    A named, schema-described callable.

    `Tool.call` validates raw arguments against the pydantic args model, runs
    the function (sync functions go to a worker thread) and wraps the outcome
    in `ToolResult`. It does NOT raise tool errors unless `raise_on_error`.
    """

    def __init__(
        self,
        *,
        spec: ToolSpec,
        fn: ToolFn,
        args_model: Type[ArgsT],
        default_timeout: Optional[float] = None,
        raise_on_error: bool = False,
    ) -> None:
        self.spec = spec
        self._original_fn = fn
        self.fn = as_async(fn)
        self.args_model = args_model
        self.default_timeout = default_timeout
        self.raise_on_error = raise_on_error

        self._call_style = _infer_call_style(fn)

    @property
    def name(self) -> str:
        return self.spec.name

    def validate(self, raw_args: Dict[str, Any]) -> ArgsT:
        try:
            return self.args_model.model_validate(raw_args)
        except ValidationError as e:
            raise ToolValidationError(
                f"Invalid arguments for tool '{self.spec.name}': {e}"
            ) from e

    async def _invoke(self, args: ArgsT, ctx: ToolContext) -> Any:
        if self._call_style == "args":
            return await self.fn(args)
        if self._call_style == "args_ctx":
            return await self.fn(args, ctx)
        return await self.fn(ctx, args)

    def _failure(self, err: Exception, tool_call_id: str | None) -> ToolResult[ReturnT]:
        if self.raise_on_error:
            raise err
        return ToolResult(
            output=None,
            success=False,
            error_message=str(err),
            tool_name=self.spec.name,
            tool_call_id=tool_call_id,
        )

    async def call(
        self,
        raw_args: Dict[str, Any],
        *,
        ctx: Optional[ToolContext] = None,
        timeout: Optional[float] = None,
        tool_call_id: Optional[str] = None,
    ) -> ToolResult[ReturnT]:
        ctx = ctx or ToolContext()

        try:
            args = self.validate(raw_args)
        except ToolValidationError as e:
            return self._failure(e, tool_call_id)

        effective_timeout = timeout if timeout is not None else self.default_timeout

        try:
            if effective_timeout is not None:
                output = await asyncio.wait_for(self._invoke(args, ctx), timeout=effective_timeout)
            else:
                output = await self._invoke(args, ctx)
        except asyncio.TimeoutError:
            return self._failure(
                ToolTimeoutError(
                    f"Tool '{self.spec.name}' execution exceeded timeout of {effective_timeout} seconds."
                ),
                tool_call_id,
            )
        except Exception as e:
            return self._failure(
                ToolExecutionError(
                    f"Error executing tool '{self.spec.name}': {e}", tool_name=self.spec.name
                ),
                tool_call_id,
            )

        return ToolResult(
            output=output,
            success=True,
            error_message=None,
            tool_name=self.spec.name,
            tool_call_id=tool_call_id,
        )
