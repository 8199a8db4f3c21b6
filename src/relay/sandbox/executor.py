"""
Sandboxed executor for agent-generated Python code.

Each call runs in a fresh namespace with a restricted builtins table. Three
ceilings are enforced independently: operations, captured print bytes and
wall-clock time (time blocked on tool batches is not charged). Operations are
traced line events in agent code plus elements consumed by the metered
builtins (`sum`, `list`, `sorted`, ...) and by unbounded `itertools` sources.
Failures come back as `ExecutionResult.error`; nothing raised by agent code
escapes `execute`.
"""

from __future__ import annotations

import ast
import builtins
import contextlib
import functools
import logging
import sys
import time
from typing import Any, Callable, Dict, Iterable, Iterator

from ..tools.errors import ToolExecutionError
from ..tools.futures import ToolFuture, ToolInvocationLayer
from .errors import InterpreterError
from .state import PersistedVariables
from .types import TRUNCATION_MARKER, ExecutionError, ExecutionLimits, ExecutionResult
from .validation import DEFAULT_AUTHORIZED_IMPORTS, validate_code

LOGGER = logging.getLogger(__name__)

AGENT_FILENAME = "<agent>"

SAFE_BUILTIN_NAMES: tuple[str, ...] = (
    "abs",
    "all",
    "any",
    "ascii",
    "bin",
    "bool",
    "bytes",
    "callable",
    "chr",
    "dict",
    "divmod",
    "enumerate",
    "filter",
    "float",
    "format",
    "frozenset",
    "hash",
    "hex",
    "int",
    "isinstance",
    "issubclass",
    "iter",
    "len",
    "list",
    "map",
    "max",
    "min",
    "next",
    "object",
    "oct",
    "ord",
    "pow",
    "property",
    "range",
    "repr",
    "reversed",
    "round",
    "set",
    "slice",
    "sorted",
    "str",
    "sum",
    "tuple",
    "zip",
    "ArithmeticError",
    "AssertionError",
    "AttributeError",
    "Exception",
    "IndexError",
    "KeyError",
    "LookupError",
    "NameError",
    "NotImplementedError",
    "RuntimeError",
    "StopIteration",
    "TypeError",
    "ValueError",
    "ZeroDivisionError",
    "__build_class__",
)


class _Signal(BaseException):
    """Control-flow signals raised into agent code; not catchable by `except Exception`."""


class _LimitSignal(_Signal):
    def __init__(self, kind: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


class _FinalAnswerSignal(_Signal):
    def __init__(self, value: Any) -> None:
        super().__init__("final answer")
        self.value = value


class _Meter:
    """
    Operation counter and deadline.

    Line events in agent frames are fed by `sys.settrace`; elements consumed
    by metered builtins are fed through `iterate`, so work done inside one
    C-level call is charged too.
    """

    def __init__(self, limits: ExecutionLimits) -> None:
        self.limits = limits
        self.operations = 0
        self.deadline = time.monotonic() + limits.timeout_s
        self.tripped: _LimitSignal | None = None
        self.closed = False

    def trace(self, frame, event, arg):
        if frame.f_code.co_filename != AGENT_FILENAME:
            return None
        if event == "line":
            self._tick()
        return self.trace

    def iterate(self, iterable: Iterable[Any]) -> Iterator[Any]:
        for item in iterable:
            # iterators kept in `state` outlive the execution that metered them
            if not self.closed:
                self._tick()
            yield item

    def _tick(self) -> None:
        if self.tripped is not None:
            raise _LimitSignal(self.tripped.kind, self.tripped.message)
        self.operations += 1
        if self.operations > self.limits.max_operations:
            self._trip(
                "operation_limit_exceeded",
                f"Reached the max number of operations ({self.limits.max_operations}). "
                "Avoid infinite loops or very large iterations.",
            )
        if time.monotonic() > self.deadline:
            self._trip(
                "timeout",
                f"Code execution exceeded the time limit of {self.limits.timeout_s} seconds.",
            )

    def _trip(self, kind: str, message: str) -> None:
        self.tripped = _LimitSignal(kind, message)
        raise _LimitSignal(kind, message)

    @contextlib.contextmanager
    def suspended(self) -> Iterator[None]:
        """Stop the wall clock while blocked outside agent code."""
        started = time.monotonic()
        try:
            yield
        finally:
            self.deadline += time.monotonic() - started


# ''''''''''''''''''''''''''''''''''''''
# Metered builtins
# ''''''''''''''''''''''''''''''''''''''

ArgRewrite = Callable[[_Meter, tuple], tuple]


def _consume_first(meter: _Meter, args: tuple) -> tuple:
    if not args:
        return args
    return (meter.iterate(args[0]), *args[1:])


def _consume_single(meter: _Meter, args: tuple) -> tuple:
    # min/max take one iterable or several plain values; iter(f, sentinel) is left alone
    return _consume_first(meter, args) if len(args) == 1 else args


def _consume_rest(meter: _Meter, args: tuple) -> tuple:
    if not args:
        return args
    return (args[0], *[meter.iterate(a) for a in args[1:]])


def _consume_all(meter: _Meter, args: tuple) -> tuple:
    return tuple(meter.iterate(a) for a in args)


def _consume_pairs(meter: _Meter, args: tuple) -> tuple:
    if args and hasattr(args[0], "keys"):
        return args
    return _consume_first(meter, args)


METERED_FUNCTIONS: Dict[str, ArgRewrite] = {
    "all": _consume_first,
    "any": _consume_first,
    "iter": _consume_single,
    "max": _consume_single,
    "min": _consume_single,
    "sorted": _consume_first,
    "sum": _consume_first,
}

METERED_TYPES: Dict[str, ArgRewrite] = {
    "dict": _consume_pairs,
    "enumerate": _consume_first,
    "filter": _consume_rest,
    "frozenset": _consume_first,
    "list": _consume_first,
    "map": _consume_rest,
    "set": _consume_first,
    "tuple": _consume_first,
    "zip": _consume_all,
}

# Module functions that return unbounded iterators.
METERED_MODULE_SOURCES: Dict[str, frozenset[str]] = {
    "itertools": frozenset({"count", "cycle", "repeat"}),
}


def _metered_function(fn: Callable[..., Any], meter: _Meter, rewrite: ArgRewrite) -> Callable[..., Any]:
    @functools.wraps(fn, updated=())
    def call(*args: Any, **kwargs: Any) -> Any:
        return fn(*rewrite(meter, args), **kwargs)

    return call


class _MeteredType:
    """
    Stand-in for a builtin type whose constructor consumes iterables.

    Calls are metered; `isinstance`, `issubclass`, subclassing, subscription
    and attribute access behave as on the real type.
    """

    def __init__(self, base: type, meter: _Meter, rewrite: ArgRewrite) -> None:
        self._base = base
        self._meter = meter
        self._rewrite = rewrite

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self._base(*self._rewrite(self._meter, args), **kwargs)

    def __instancecheck__(self, obj: Any) -> bool:
        return isinstance(obj, self._base)

    def __subclasscheck__(self, cls: type) -> bool:
        return issubclass(cls, self._base)

    def __mro_entries__(self, bases: tuple) -> tuple:
        return (self._base,)

    def __getitem__(self, item: Any) -> Any:
        return self._base[item]  # type: ignore[index]

    def __getattr__(self, name: str) -> Any:
        return getattr(self._base, name)

    def __repr__(self) -> str:
        return repr(self._base)


class _MeteredModule:
    def __init__(self, module: Any, sources: frozenset[str], meter: _Meter) -> None:
        self._module = module
        self._sources = sources
        self._meter = meter

    def __getattr__(self, name: str) -> Any:
        value = getattr(self._module, name)
        if name not in self._sources:
            return value
        meter = self._meter

        @functools.wraps(value, updated=())
        def source(*args: Any, **kwargs: Any) -> Iterator[Any]:
            return meter.iterate(value(*args, **kwargs))

        return source

    def __repr__(self) -> str:
        return repr(self._module)


class _OutputBuffer:
    def __init__(self, max_bytes: int) -> None:
        self.max_bytes = max_bytes
        self._parts: list[str] = []
        self._size = 0
        self.truncated = False

    def write(self, text: str) -> None:
        data = text.encode("utf-8")
        remaining = self.max_bytes - self._size
        if len(data) > remaining:
            self._parts.append(data[:remaining].decode("utf-8", errors="ignore"))
            self._size = self.max_bytes
            self.truncated = True
            raise _LimitSignal(
                "output_limit_exceeded",
                f"Printed output exceeded {self.max_bytes} bytes. Print less, or summarize results.",
            )
        self._parts.append(text)
        self._size += len(data)

    def getvalue(self) -> str:
        text = "".join(self._parts)
        if self.truncated:
            text += TRUNCATION_MARKER
        return text


def _make_importer(authorized: frozenset[str], meter: _Meter) -> Callable[..., Any]:
    def _import(name, globals=None, locals=None, fromlist=(), level=0):
        if level != 0 or name.split(".")[0] not in authorized:
            raise ImportError(f"Import of '{name}' is not allowed")
        module = builtins.__import__(name, globals, locals, fromlist, level)
        sources = METERED_MODULE_SOURCES.get(module.__name__)
        if sources is not None:
            return _MeteredModule(module, sources, meter)
        return module

    return _import


def _split_last_expression(tree: ast.Module) -> tuple[ast.Module, ast.Expression | None]:
    if tree.body and isinstance(tree.body[-1], ast.Expr):
        last = tree.body.pop()
        return tree, ast.fix_missing_locations(ast.Expression(body=last.value))
    return tree, None


def _final_answer(answer: Any = None) -> None:
    raise _FinalAnswerSignal(answer)


def _holds_future(value: Any) -> bool:
    if isinstance(value, ToolFuture):
        return True
    if isinstance(value, (list, tuple, set)):
        return any(_holds_future(v) for v in value)
    if isinstance(value, dict):
        return any(_holds_future(v) for v in value.values())
    return False


class SandboxExecutor:
    """
    Runs code fragments for one agent.

    The executor owns the persisted-variable store; everything else about an
    execution (namespace, tool futures, captured output) is discarded when
    `execute` returns.
    """

    def __init__(
        self,
        *,
        limits: ExecutionLimits | None = None,
        authorized_imports: Iterable[str] = DEFAULT_AUTHORIZED_IMPORTS,
    ) -> None:
        self.limits = limits or ExecutionLimits()
        self.authorized_imports = frozenset(authorized_imports)
        self._state = PersistedVariables()

    @property
    def variables(self) -> Dict[str, Any]:
        return self._state.snapshot()

    def reset(self) -> None:
        self._state.clear()

    def execute(
        self,
        code: str,
        bindings: Dict[str, Any] | None = None,
        limits: ExecutionLimits | None = None,
        *,
        tools: ToolInvocationLayer | None = None,
    ) -> ExecutionResult:
        """
        Execute `code` and report the outcome.

        Args:
            code: Python source produced by the model.
            bindings: Extra names injected for this execution only.
            limits: Overrides the executor's default limits.
            tools: Invocation layer whose tools are bound by name; pending
                futures are flushed before returning.
        """
        limits = limits or self.limits
        try:
            tree = ast.parse(code, filename=AGENT_FILENAME, mode="exec")
        except SyntaxError as e:
            return ExecutionResult(
                success=False,
                error=ExecutionError("syntax_error", f"SyntaxError: {e.msg} (line {e.lineno})"),
            )
        try:
            validate_code(tree, self.authorized_imports)
        except InterpreterError as e:
            return ExecutionResult(success=False, error=ExecutionError("forbidden_code", str(e)))

        body, last_expr = _split_last_expression(tree)
        buffer = _OutputBuffer(limits.max_output_bytes)
        meter = _Meter(limits)
        namespace = self._namespace(buffer, meter, bindings, tools)
        if tools is not None:
            tools.on_block = meter.suspended

        output: Any = None
        is_final = False
        error: ExecutionError | None = None

        previous_trace = sys.gettrace()
        sys.settrace(meter.trace)
        try:
            exec(compile(body, AGENT_FILENAME, "exec"), namespace)
            if last_expr is not None:
                output = eval(compile(last_expr, AGENT_FILENAME, "eval"), namespace)
        except _FinalAnswerSignal as signal:
            output = signal.value
            is_final = True
        except _LimitSignal as signal:
            error = ExecutionError(signal.kind, signal.message)  # type: ignore[arg-type]
        except ToolExecutionError as e:
            error = ExecutionError("tool_error", str(e))
        except Exception as e:
            error = ExecutionError("runtime_error", f"{type(e).__name__}: {e}")
        finally:
            sys.settrace(previous_trace)
            meter.closed = True

        if error is None and tools is not None:
            try:
                tools.flush()
                output = tools.materialize(output)
                self._state.settle(lambda _name, value: (True, tools.materialize(value)))
            except ToolExecutionError as e:
                error = ExecutionError("tool_error", str(e))
                is_final = False

        if error is not None:
            # Deferred values never outlive the execution that created them.
            self._state.settle(lambda _name, value: (not _holds_future(value), value))
            LOGGER.debug("agent code failed (%s): %s", error.kind, error.message)
            return ExecutionResult(
                success=False,
                logs=buffer.getvalue(),
                error=error,
                operations=meter.operations,
            )

        return ExecutionResult(
            success=True,
            output=output,
            logs=buffer.getvalue(),
            is_final_answer=is_final,
            operations=meter.operations,
        )

    def _namespace(
        self,
        buffer: _OutputBuffer,
        meter: _Meter,
        bindings: Dict[str, Any] | None,
        tools: ToolInvocationLayer | None,
    ) -> Dict[str, Any]:
        def _print(*args: Any, sep: str | None = " ", end: str | None = "\n", **_: Any) -> None:
            sep = " " if sep is None else sep
            end = "\n" if end is None else end
            buffer.write(sep.join(str(a) for a in args) + end)

        def _remember(name: str, value: Any) -> Any:
            self._state[name] = value
            return value

        safe_builtins: Dict[str, Any] = {
            name: getattr(builtins, name) for name in SAFE_BUILTIN_NAMES
        }
        for name, rewrite in METERED_FUNCTIONS.items():
            safe_builtins[name] = _metered_function(getattr(builtins, name), meter, rewrite)
        for name, rewrite in METERED_TYPES.items():
            safe_builtins[name] = _MeteredType(getattr(builtins, name), meter, rewrite)
        safe_builtins["print"] = _print
        safe_builtins["__import__"] = _make_importer(self.authorized_imports, meter)

        namespace: Dict[str, Any] = {"__builtins__": safe_builtins, "__name__": "__agent__"}
        namespace.update(self._state.snapshot())
        if tools is not None:
            namespace.update(tools.bindings())
        namespace.update(bindings or {})
        namespace["state"] = self._state
        namespace["remember"] = _remember
        namespace["final_answer"] = _final_answer
        return namespace
