from __future__ import annotations

import ast
import time

import pytest
from pydantic import BaseModel

from relay.sandbox import (
    TRUNCATION_MARKER,
    ExecutionLimits,
    ExecutionTimeout,
    InterpreterError,
    OperationLimitExceeded,
    SandboxExecutor,
    validate_code,
)
from relay.tools import ToolExecutionError, ToolInvocationLayer, ToolRegistry, tool


class _AddArgs(BaseModel):
    a: int
    b: int


class _NoArgs(BaseModel):
    pass


@tool(args_model=_AddArgs, name="add")
def add(args: _AddArgs) -> int:
    return args.a + args.b


@tool(args_model=_NoArgs, name="broken")
def broken(args: _NoArgs) -> int:
    raise RuntimeError("disk on fire")


def _layer() -> ToolInvocationLayer:
    registry = ToolRegistry()
    registry.register_many([add, broken])
    return ToolInvocationLayer(registry)


def test_trailing_expression_is_the_output_and_prints_are_logs():
    executor = SandboxExecutor()

    result = executor.execute("print('hello', 'there')\nx = 3\nx * 2")

    assert result.success
    assert result.output == 6
    assert result.logs == "hello there\n"
    assert not result.is_final_answer


def test_local_bindings_do_not_survive_between_executions():
    executor = SandboxExecutor()

    assert executor.execute("scratch = 41").success
    result = executor.execute("scratch + 1")

    assert not result.success
    assert result.error.kind == "runtime_error"
    assert "NameError" in result.error.message


def test_persisted_variables_survive_unchanged():
    executor = SandboxExecutor()

    executor.execute("state['total'] = [1, 2]\nstate.label = 'sum'\nremember('count', 2)")
    result = executor.execute("(total, state.label, state['count'])")

    assert result.output == ([1, 2], "sum", 2)
    assert executor.variables == {"total": [1, 2], "label": "sum", "count": 2}


def test_reset_clears_persisted_variables():
    executor = SandboxExecutor()
    executor.execute("state['keep'] = 1")

    executor.reset()

    assert executor.variables == {}
    assert not executor.execute("keep").success


def test_final_answer_stops_execution():
    executor = SandboxExecutor()

    result = executor.execute("print('before')\nfinal_answer({'value': 3})\nprint('after')")

    assert result.success
    assert result.is_final_answer
    assert result.output == {"value": 3}
    assert result.logs == "before\n"


def test_operation_limit_is_enforced():
    executor = SandboxExecutor(limits=ExecutionLimits(max_operations=500))

    result = executor.execute("n = 0\nwhile True:\n    n += 1")

    assert result.error.kind == "operation_limit_exceeded"
    assert "Reached the max number of operations (500)" in result.error.message
    with pytest.raises(OperationLimitExceeded):
        result.raise_for_error()


def test_limits_cannot_be_swallowed_by_agent_exception_handlers():
    executor = SandboxExecutor(limits=ExecutionLimits(max_operations=200))

    code = "while True:\n    try:\n        x = 1\n    except Exception:\n        pass"
    result = executor.execute(code)

    assert result.error.kind == "operation_limit_exceeded"


def test_output_limit_truncates_logs():
    executor = SandboxExecutor(limits=ExecutionLimits(max_output_bytes=16))

    result = executor.execute("print('a' * 10)\nprint('b' * 50)")

    assert result.error.kind == "output_limit_exceeded"
    assert result.logs.startswith("a" * 10)
    assert result.logs.endswith(TRUNCATION_MARKER)


def test_wall_clock_timeout_is_enforced():
    executor = SandboxExecutor(
        limits=ExecutionLimits(max_operations=10**9, timeout_s=0.05)
    )

    result = executor.execute("while True:\n    pass")

    assert result.error.kind == "timeout"
    with pytest.raises(ExecutionTimeout):
        result.raise_for_error()


def test_timeout_covers_work_inside_a_single_builtin_call():
    executor = SandboxExecutor(
        limits=ExecutionLimits(max_operations=10**9, timeout_s=0.2)
    )

    started = time.monotonic()
    result = executor.execute("x = sum(range(10**8))")

    assert result.error.kind == "timeout"
    assert time.monotonic() - started < 2.0


@pytest.mark.parametrize(
    "code",
    [
        "import itertools\nsum(itertools.count())",
        "import itertools\nlist(itertools.count())",
        "from itertools import repeat\n''.join(repeat('a'))",
        "import itertools\nmax(map(abs, itertools.count()))",
    ],
)
def test_unbounded_iterators_cannot_stall_the_executor(code):
    executor = SandboxExecutor(
        limits=ExecutionLimits(max_operations=10**9, timeout_s=0.2)
    )

    result = executor.execute(code)

    assert result.error.kind == "timeout"


def test_elements_consumed_by_builtins_count_as_operations():
    executor = SandboxExecutor(limits=ExecutionLimits(max_operations=500))

    assert executor.execute("total = sum(range(100))\ntotal").output == 4950
    result = executor.execute("sorted(range(1000))")

    assert result.error.kind == "operation_limit_exceeded"
    assert result.operations > 500


def test_metered_builtins_behave_like_the_originals():
    executor = SandboxExecutor()

    code = (
        "class Bag(dict):\n"
        "    pass\n"
        "bag = Bag(a=1)\n"
        "pairs = dict([('x', 1)])\n"
        "copied = dict({'y': 2})\n"
        "checks = [\n"
        "    isinstance([1], list),\n"
        "    isinstance(bag, dict),\n"
        "    issubclass(bool, int),\n"
        "    isinstance((1,), (list, tuple)),\n"
        "]\n"
        "[checks, pairs, copied, list(zip('ab', [1, 2])), sorted({3, 1, 2}), min(4, 2), dict.fromkeys('a')]"
    )
    result = executor.execute(code)

    assert result.success, result.error
    checks, pairs, copied, zipped, ordered, smallest, keys = result.output
    assert checks == [True, True, True, True]
    assert pairs == {"x": 1} and copied == {"y": 2}
    assert zipped == [("a", 1), ("b", 2)]
    assert ordered == [1, 2, 3]
    assert smallest == 2
    assert keys == {"a": None}


def test_syntax_errors_are_reported_with_line_numbers():
    result = SandboxExecutor().execute("x = 1\ny = (")

    assert result.error.kind == "syntax_error"
    assert result.error.message.startswith("SyntaxError:")
    assert "line" in result.error.message


def test_forbidden_constructs_are_rejected_before_running():
    executor = SandboxExecutor()

    for code in ("import os", "open('/etc/passwd')", "x = ().__class__", "try:\n    pass\nexcept:\n    pass"):
        result = executor.execute(code)
        assert result.error.kind == "forbidden_code", code
        with pytest.raises(InterpreterError):
            result.raise_for_error()


def test_authorized_imports_are_usable():
    executor = SandboxExecutor()
    assert executor.execute("import math\nmath.sqrt(16)").output == 4.0

    extended = SandboxExecutor(authorized_imports=("math", "fnmatch"))
    assert extended.execute("from fnmatch import fnmatch\nfnmatch('a.py', '*.py')").output is True


def test_validate_code_lists_every_problem():
    with pytest.raises(InterpreterError) as exc_info:
        validate_code(ast.parse("import socket\neval('1')"))

    message = str(exc_info.value)
    assert "socket" in message
    assert "eval" in message


def test_tool_calls_in_code_resolve_as_one_batch():
    executor = SandboxExecutor()
    layer = _layer()

    result = executor.execute("a = add(a=1, b=2)\nb = add(a=3, b=4)\na + b", tools=layer)

    assert result.output == 10
    assert layer.batches == [2]
    assert [c.tool_name for c in layer.history] == ["add", "add"]


def test_unread_futures_are_flushed_and_materialized():
    executor = SandboxExecutor()
    layer = _layer()

    result = executor.execute("state['pair'] = [add(a=1, b=1), add(a=2, b=2)]\nadd(a=5, b=5)", tools=layer)

    assert result.output == 10
    assert executor.variables == {"pair": [2, 4]}
    assert layer.batches == [3]


def test_failed_tool_read_becomes_tool_error():
    executor = SandboxExecutor()
    layer = _layer()

    result = executor.execute("value = broken()\nprint(value)", tools=layer)

    assert result.error.kind == "tool_error"
    assert "disk on fire" in result.error.message
    with pytest.raises(ToolExecutionError):
        result.raise_for_error()


def test_agent_code_can_handle_tool_failures():
    executor = SandboxExecutor()
    layer = _layer()

    code = "try:\n    str(broken())\n    ok = True\nexcept Exception:\n    ok = False\nok"
    result = executor.execute(code, tools=layer)

    assert result.success
    assert result.output is False


def test_bindings_are_visible_for_one_execution_only():
    executor = SandboxExecutor()

    assert executor.execute("limit * 2", bindings={"limit": 21}).output == 42
    assert not executor.execute("limit").success


def test_limits_validate_their_values():
    with pytest.raises(ValueError):
        ExecutionLimits(max_operations=0)
    with pytest.raises(ValueError):
        ExecutionLimits(timeout_s=0)


def test_limits_from_env(monkeypatch):
    monkeypatch.setenv("RELAY_SANDBOX_MAX_OPERATIONS", "77")
    monkeypatch.setenv("RELAY_SANDBOX_TIMEOUT_S", "1.5")

    limits = ExecutionLimits.from_env()

    assert limits.max_operations == 77
    assert limits.timeout_s == 1.5
