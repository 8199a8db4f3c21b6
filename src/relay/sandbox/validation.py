"""
Static checks run on agent code before it executes.
"""

from __future__ import annotations

import ast
from typing import Iterable

from .errors import InterpreterError

DEFAULT_AUTHORIZED_IMPORTS: tuple[str, ...] = (
    "collections",
    "datetime",
    "decimal",
    "fractions",
    "functools",
    "itertools",
    "json",
    "math",
    "random",
    "re",
    "statistics",
    "string",
    "unicodedata",
)

BLOCKED_CALLS = frozenset(
    {
        "breakpoint",
        "compile",
        "delattr",
        "eval",
        "exec",
        "exit",
        "getattr",
        "globals",
        "help",
        "input",
        "locals",
        "memoryview",
        "open",
        "quit",
        "setattr",
        "vars",
    }
)


class _Validator(ast.NodeVisitor):
    def __init__(self, authorized_imports: Iterable[str]) -> None:
        self.authorized = frozenset(authorized_imports)
        self.problems: list[str] = []

    def _flag(self, node: ast.AST, message: str) -> None:
        self.problems.append(f"line {getattr(node, 'lineno', '?')}: {message}")

    def _check_module(self, node: ast.AST, module: str | None, level: int) -> None:
        if level:
            self._flag(node, "relative imports are not allowed")
            return
        root = (module or "").split(".")[0]
        if root not in self.authorized:
            self._flag(
                node,
                f"import of '{module}' is not allowed; authorized modules: {sorted(self.authorized)}",
            )

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            self._check_module(node, alias.name, 0)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        self._check_module(node, node.module, node.level)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if node.attr.startswith("_"):
            self._flag(node, f"access to private attribute '{node.attr}' is not allowed")
        self.generic_visit(node)

    def visit_Name(self, node: ast.Name) -> None:
        if node.id.startswith("__"):
            self._flag(node, f"name '{node.id}' is not allowed")
        elif node.id == "BaseException":
            self._flag(node, "catching BaseException is not allowed")

    def visit_Call(self, node: ast.Call) -> None:
        if isinstance(node.func, ast.Name) and node.func.id in BLOCKED_CALLS:
            self._flag(node, f"call to '{node.func.id}' is not allowed")
        self.generic_visit(node)

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.type is None:
            self._flag(node, "bare 'except:' is not allowed; catch Exception instead")
        self.generic_visit(node)

    def visit_Global(self, node: ast.Global) -> None:
        self._flag(node, "'global' is not allowed; store values in `state` instead")

    def visit_Nonlocal(self, node: ast.Nonlocal) -> None:
        self._flag(node, "'nonlocal' is not allowed")

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._flag(node, "async code is not supported")

    def visit_Await(self, node: ast.Await) -> None:
        self._flag(node, "async code is not supported")


def validate_code(tree: ast.AST, authorized_imports: Iterable[str] = DEFAULT_AUTHORIZED_IMPORTS) -> None:
    """
    Raise `InterpreterError` listing every forbidden construct in `tree`.
    """
    validator = _Validator(authorized_imports)
    validator.visit(tree)
    if validator.problems:
        raise InterpreterError("Forbidden code: " + "; ".join(validator.problems))
