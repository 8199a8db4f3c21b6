from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Deferred tool invocation.

Agent code calls tools like ordinary functions; each call returns a
`ToolFuture` immediately and nothing runs. The first operation that needs a
concrete value (str(), ==, in, iteration, arithmetic, attribute access, ...)
resolves every still-pending future of the current execution as one batch,
concurrently through the registry. Resolved and failed futures are cached.
"""

import asyncio
import concurrent.futures
import contextlib
import itertools
import logging
import operator
import threading
import time
from typing import Any, Callable, ContextManager, Dict, List, Literal

from ..llms.types import ToolCall
from .base import ToolContext
from .errors import ToolExecutionError, ToolNotFoundError
from .registry import ToolRegistry

LOGGER = logging.getLogger(__name__)

FutureState = Literal["unresolved", "resolved", "failed"]


def _unwrap(value: Any) -> Any:
    if isinstance(value, ToolFuture):
        return value.result()
    return value


def _binary(op: Callable[[Any, Any], Any]):
    def forward(self: "ToolFuture", other: Any) -> Any:
        return op(self.result(), _unwrap(other))

    def reflected(self: "ToolFuture", other: Any) -> Any:
        return op(_unwrap(other), self.result())

    return forward, reflected


def _unary(op: Callable[[Any], Any]):
    def apply(self: "ToolFuture") -> Any:
        return op(self.result())

    return apply


class ToolFuture:
    """
    Deferred result of one tool invocation.

    State moves once from `unresolved` to `resolved` or `failed`. Accessing a
    failed future raises the captured `ToolExecutionError` every time.
    """

    __slots__ = ("_layer", "call_id", "tool_name", "arguments", "_state", "_value", "_error")

    def __init__(
        self,
        layer: "ToolInvocationLayer",
        call_id: str,
        tool_name: str,
        arguments: Dict[str, Any],
    ) -> None:
        self._layer = layer
        self.call_id = call_id
        self.tool_name = tool_name
        self.arguments = arguments
        self._state: FutureState = "unresolved"
        self._value: Any = None
        self._error: ToolExecutionError | None = None

    @property
    def state(self) -> FutureState:
        return self._state

    @property
    def done(self) -> bool:
        return self._state != "unresolved"

    @property
    def error(self) -> ToolExecutionError | None:
        return self._error

    def result(self) -> Any:
        """Return the concrete value, resolving the pending batch on first demand."""
        return self._layer.resolve(self)

    def _resolve(self, value: Any) -> None:
        if self._state == "unresolved":
            self._value = value
            self._state = "resolved"

    def _reject(self, error: ToolExecutionError) -> None:
        if self._state == "unresolved":
            self._error = error
            self._state = "failed"

    def _outcome(self) -> Any:
        if self._state == "failed":
            raise self._error  # type: ignore[misc]
        if self._state == "unresolved":
            raise ToolExecutionError(
                f"Tool '{self.tool_name}' was never resolved", tool_name=self.tool_name
            )
        return self._value

    # ---- data accessors: every one of these forces resolution ----

    def __str__(self) -> str:
        return str(self.result())

    def __repr__(self) -> str:
        if self._state == "resolved":
            return repr(self._value)
        if self._state == "failed":
            return f"<ToolFuture {self.tool_name} failed: {self._error}>"
        return f"<ToolFuture {self.tool_name} pending>"

    def __format__(self, format_spec: str) -> str:
        return format(self.result(), format_spec)

    def __eq__(self, other: Any) -> bool:
        return self.result() == _unwrap(other)

    def __ne__(self, other: Any) -> bool:
        return self.result() != _unwrap(other)

    def __lt__(self, other: Any) -> bool:
        return self.result() < _unwrap(other)

    def __le__(self, other: Any) -> bool:
        return self.result() <= _unwrap(other)

    def __gt__(self, other: Any) -> bool:
        return self.result() > _unwrap(other)

    def __ge__(self, other: Any) -> bool:
        return self.result() >= _unwrap(other)

    def __hash__(self) -> int:
        return hash(self.result())

    def __bool__(self) -> bool:
        return bool(self.result())

    def __len__(self) -> int:
        return len(self.result())

    def __iter__(self):
        return iter(self.result())

    def __contains__(self, item: Any) -> bool:
        return _unwrap(item) in self.result()

    def __getitem__(self, key: Any) -> Any:
        return self.result()[_unwrap(key)]

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self.result(), name)

    def __int__(self) -> int:
        return int(self.result())

    def __float__(self) -> float:
        return float(self.result())

    def __index__(self) -> int:
        return operator.index(self.result())

    def __round__(self, ndigits: int | None = None) -> Any:
        return round(self.result(), ndigits)

    __add__, __radd__ = _binary(operator.add)
    __sub__, __rsub__ = _binary(operator.sub)
    __mul__, __rmul__ = _binary(operator.mul)
    __truediv__, __rtruediv__ = _binary(operator.truediv)
    __floordiv__, __rfloordiv__ = _binary(operator.floordiv)
    __mod__, __rmod__ = _binary(operator.mod)
    __pow__, __rpow__ = _binary(operator.pow)
    __and__, __rand__ = _binary(operator.and_)
    __or__, __ror__ = _binary(operator.or_)
    __xor__, __rxor__ = _binary(operator.xor)
    __neg__ = _unary(operator.neg)
    __pos__ = _unary(operator.pos)
    __abs__ = _unary(operator.abs)


class _ToolBinding:
    """Callable injected into agent code under the tool's name."""

    def __init__(self, layer: "ToolInvocationLayer", name: str, description: str) -> None:
        self._layer = layer
        self.name = name
        self.description = description

    def __call__(self, *args: Any, **kwargs: Any) -> ToolFuture:
        if args:
            if len(args) == 1 and not kwargs and isinstance(args[0], dict):
                kwargs = dict(args[0])
            else:
                raise TypeError(f"{self.name}() accepts keyword arguments only")
        return self._layer.invoke(self.name, kwargs)

    def __repr__(self) -> str:
        return f"<tool {self.name}>"


class ToolInvocationLayer:
    """
    Issues tool calls as futures and resolves them in batches.

    One layer serves one code execution. `loop` is the event loop the
    registry runs on; agent code calls `resolve` from a worker thread and
    blocks until the whole batch has finished. Without a loop the batch runs
    in a private `asyncio.run`.

    `on_block`, when set, is entered around every blocking wait so the
    sandbox can stop charging that time to the code's wall-clock budget.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        ctx: ToolContext | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        on_block: Callable[[], ContextManager[Any]] | None = None,
    ) -> None:
        self._registry = registry
        self._ctx = ctx or ToolContext()
        self._loop = loop
        self._lock = threading.Lock()
        self._pending: List[ToolFuture] = []
        self._counter = itertools.count(1)
        self._cancelled = False
        self._blocked_s = 0.0
        self._blocked_since: float | None = None
        self.on_block = on_block
        self.history: List[ToolCall] = []
        self.futures: List[ToolFuture] = []
        self.batches: List[int] = []

    # ''''''''''''''''''''''''''''''''''''''
    # Issuing
    # ''''''''''''''''''''''''''''''''''''''

    def invoke(self, tool_name: str, args: Dict[str, Any] | None = None) -> ToolFuture:
        """Register a pending call and return its future; nothing runs yet."""
        if not self._registry.has(tool_name):
            raise ToolNotFoundError(f"Unknown tool: {tool_name}")
        # Arguments that are themselves futures must be concrete before the call is queued.
        arguments = self.materialize(dict(args or {}))
        call_id = f"call_{next(self._counter)}"
        future = ToolFuture(self, call_id, tool_name, arguments)
        with self._lock:
            self._pending.append(future)
            self.futures.append(future)
            self.history.append(ToolCall(id=call_id, tool_name=tool_name, arguments=arguments))
        return future

    def bindings(self) -> Dict[str, Callable[..., ToolFuture]]:
        return {
            t.spec.name: _ToolBinding(self, t.spec.name, t.spec.description)
            for t in self._registry.list()
        }

    @property
    def pending_count(self) -> int:
        with self._lock:
            return sum(1 for f in self._pending if not f.done)

    @property
    def blocked_s(self) -> float:
        """Seconds the calling thread has spent blocked on tool batches so far."""
        with self._lock:
            since = self._blocked_since
            current = time.monotonic() - since if since is not None else 0.0
            return self._blocked_s + current

    def cancel(self) -> None:
        """Fail every future resolved from now on without running its tool."""
        self._cancelled = True

    # ''''''''''''''''''''''''''''''''''''''
    # Resolution
    # ''''''''''''''''''''''''''''''''''''''

    def resolve(self, future: ToolFuture) -> Any:
        if not future.done:
            self._drain()
        return future._outcome()

    def materialize(self, value: Any) -> Any:
        """Replace futures nested in lists, tuples, sets and dicts with their values."""
        if isinstance(value, ToolFuture):
            return value.result()
        if isinstance(value, list):
            return [self.materialize(v) for v in value]
        if isinstance(value, tuple):
            return tuple(self.materialize(v) for v in value)
        if isinstance(value, set):
            return {self.materialize(v) for v in value}
        if isinstance(value, dict):
            return {k: self.materialize(v) for k, v in value.items()}
        return value

    def flush(self) -> None:
        """Resolve anything still pending (futures created but never read)."""
        self._drain()

    async def resolve_pending(self) -> None:
        """Async counterpart of `flush` for callers already on the event loop."""
        batch = self._take_pending()
        if batch:
            await self._run_batch(batch)

    def _take_pending(self) -> List[ToolFuture]:
        with self._lock:
            batch = [f for f in self._pending if not f.done]
            self._pending.clear()
        return batch

    def _drain(self) -> None:
        if self._loop is not None and _running_loop() is self._loop:
            raise RuntimeError(
                "ToolFuture values cannot be read on the event loop thread; "
                "await ToolInvocationLayer.resolve_pending() instead"
            )

        batch = self._take_pending()
        if not batch:
            return

        if self._cancelled:
            for future in batch:
                future._reject(
                    ToolExecutionError(
                        f"Tool '{future.tool_name}' not run: the run was closed",
                        tool_name=future.tool_name,
                    )
                )
            return

        if self._loop is None:
            asyncio.run(self._run_batch(batch))
            return

        blocker = self.on_block() if self.on_block is not None else contextlib.nullcontext()
        with blocker, self._blocking():
            handle = asyncio.run_coroutine_threadsafe(self._run_batch(batch), self._loop)
            try:
                handle.result()
            except concurrent.futures.CancelledError:
                LOGGER.debug("tool batch of %d call(s) was cancelled", len(batch))
                for future in batch:
                    future._reject(
                        ToolExecutionError(
                            f"Tool '{future.tool_name}' was cancelled", tool_name=future.tool_name
                        )
                    )

    @contextlib.contextmanager
    def _blocking(self):
        with self._lock:
            self._blocked_since = time.monotonic()
        try:
            yield
        finally:
            with self._lock:
                self._blocked_s += time.monotonic() - self._blocked_since
                self._blocked_since = None

    async def _run_batch(self, batch: List[ToolFuture]) -> None:
        self.batches.append(len(batch))
        LOGGER.debug("resolving tool batch: %s", [f.tool_name for f in batch])
        await asyncio.gather(*(self._run_one(f) for f in batch))

    async def _run_one(self, future: ToolFuture) -> None:
        name = future.tool_name
        try:
            result = await self._registry.call(
                name, future.arguments, ctx=self._ctx, tool_call_id=future.call_id
            )
        except Exception as e:
            future._reject(ToolExecutionError(f"Tool '{name}' failed: {e}", tool_name=name))
            return

        if result.success:
            future._resolve(result.output)
        else:
            future._reject(
                ToolExecutionError(result.error_message or f"Tool '{name}' failed", tool_name=name)
            )


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
