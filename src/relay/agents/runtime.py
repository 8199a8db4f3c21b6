"""
Runtime helpers used by the core runner.
"""

from __future__ import annotations

import hashlib
import json
import time
import uuid
from typing import Any

from ..llms.types import JSONValue
from .errors import InvalidTransitionError
from .types import LoopState

_ALLOWED_TRANSITIONS: dict[LoopState, set[LoopState]] = {
    "idle": {"planning", "acting", "done"},
    "planning": {"acting", "done"},
    "acting": {"evaluating", "done"},
    "evaluating": {"acting", "replanning", "done"},
    "replanning": {"acting", "done"},
    "done": set(),
}


def validate_loop_transition(current: LoopState, target: LoopState) -> LoopState:
    """Validate and return a legal loop transition target."""
    if current == target:
        return target
    allowed = _ALLOWED_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise InvalidTransitionError(f"Invalid loop transition: {current} -> {target}")
    return target


def json_hash(payload: Any) -> str:
    """Build a stable hash for JSON-like payloads."""
    encoded = json.dumps(payload, ensure_ascii=True, sort_keys=True, default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def new_run_id() -> str:
    return f"run_{uuid.uuid4().hex[:16]}"


def state_snapshot(
    *,
    state: LoopState,
    step: int,
    llm_calls: int,
    tool_calls: int,
    started_at_s: float,
) -> dict[str, JSONValue]:
    """Return the loop's progress as plain data for events."""
    return {
        "state": state,
        "step": step,
        "llm_calls": llm_calls,
        "tool_calls": tool_calls,
        "elapsed_s": time.monotonic() - started_at_s,
    }
