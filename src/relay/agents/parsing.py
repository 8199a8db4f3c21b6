"""
Extract code actions from model replies.
"""

from __future__ import annotations

import re

_FENCED = re.compile(r"```(?:python|py)?[ \t]*\n(.*?)\n?```", re.DOTALL)
_OPEN_FENCE = re.compile(r"```(?:python|py)[ \t]*\n(.*)$", re.DOTALL)


def extract_code(text: str | None) -> str | None:
    """
    Return the code of every fenced block in `text`, joined, or `None`.

    A trailing block whose closing fence was cut by a stop sequence is
    accepted too.
    """
    if not text:
        return None
    blocks = [b.strip() for b in _FENCED.findall(text) if b.strip()]
    if blocks:
        return "\n\n".join(blocks)
    match = _OPEN_FENCE.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return None


def missing_code_message(text: str | None) -> str:
    snippet = (text or "").strip()
    if len(snippet) > 400:
        snippet = snippet[:400] + "..."
    return (
        "Your reply did not contain a code block. Reply with reasoning, then a "
        "code block in the form:\n```python\n# your code\n```\n"
        f"Reply received:\n{snippet}"
    )
