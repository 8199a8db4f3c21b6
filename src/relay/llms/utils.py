from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Utility functions for model interactions: argument decoding and sync bridging.
"""
import asyncio
import json
from typing import Any, Dict, Optional


def safe_json_loads(s: str) -> Optional[Dict[str, Any]]:
    """Decode a JSON object; anything else (bad JSON, lists, scalars) gives `None`."""
    try:
        obj = json.loads(s)
    except (TypeError, ValueError):
        return None
    return obj if isinstance(obj, dict) else None


def run_sync(coro):
    """
    Run an async coroutine from sync context.
    If already inside a running event loop, raise a clear error.
    """
    try:
        # If this succeeds, we're inside a running event loop context.
        asyncio.get_running_loop()
    except RuntimeError:
        # No running loop in this thread => safe to use asyncio.run
        return asyncio.run(coro)

    # Can't nest asyncio.run; close the coroutine so it isn't reported as never awaited.
    coro.close()
    raise RuntimeError(
        "Cannot use *_sync methods inside a running event loop. Use async methods instead."
    )
