"""
Persisted-variable store shared by successive executions of one executor.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterator


class PersistedVariables:
    """
    Name-keyed store exposed to agent code as `state`.

    Agent code writes `state["total"] = 3` or `state.total = 3` (or calls
    `remember("total", 3)`); those values, and only those, are visible in the
    next execution. Locals of one execution never reach this store.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Dict[str, Any] | None = None) -> None:
        object.__setattr__(self, "_values", dict(values or {}))

    def __getitem__(self, name: str) -> Any:
        return self._values[name]

    def __setitem__(self, name: str, value: Any) -> None:
        if not isinstance(name, str) or not name.isidentifier():
            raise KeyError(f"persisted variable names must be identifiers, got {name!r}")
        self._values[name] = value

    def __delitem__(self, name: str) -> None:
        del self._values[name]

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._values))

    def __len__(self) -> int:
        return len(self._values)

    def __getattr__(self, name: str) -> Any:
        try:
            return self._values[name]
        except KeyError:
            raise AttributeError(f"no persisted variable named '{name}'") from None

    def __setattr__(self, name: str, value: Any) -> None:
        self[name] = value

    def __delattr__(self, name: str) -> None:
        try:
            del self._values[name]
        except KeyError:
            raise AttributeError(f"no persisted variable named '{name}'") from None

    def __repr__(self) -> str:
        return f"state({', '.join(sorted(self._values))})"

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def keys(self) -> list[str]:
        return list(self._values)

    def items(self) -> list[tuple[str, Any]]:
        return list(self._values.items())

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._values)

    def clear(self) -> None:
        self._values.clear()

    def settle(self, fn: Callable[[str, Any], tuple[bool, Any]]) -> None:
        """
        Rewrite every entry through `fn(name, value) -> (keep, new_value)`.
        """
        for name, value in list(self._values.items()):
            keep, new_value = fn(name, value)
            if keep:
                self._values[name] = new_value
            else:
                del self._values[name]
