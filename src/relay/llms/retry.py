from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Retry policy injected into model clients.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from .config import LLMConfig
from .errors import LLMError, LLMRetryableError


LOGGER = logging.getLogger(__name__)

ReturnT = TypeVar("ReturnT")


def backoff_delay(attempt: int, base_s: float, jitter_s: float) -> float:
    """
    Exponential backoff with jitter.
    attempt=0 => base, attempt=1 => 2*base, etc.
    """
    exp = base_s * (2 ** attempt)
    jitter = random.uniform(0.0, jitter_s)
    return exp + jitter


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """
    Retry-on-transient-error policy.

    Only `LLMRetryableError` is retried; every other `LLMError` surfaces on
    the first attempt. `classify` maps foreign exceptions into the LLM error
    taxonomy before the decision is made.
    """

    max_retries: int = 3
    backoff_base_s: float = 0.5
    backoff_jitter_s: float = 0.15

    @staticmethod
    def from_config(config: LLMConfig) -> "RetryPolicy":
        return RetryPolicy(
            max_retries=config.max_retries,
            backoff_base_s=config.backoff_base_s,
            backoff_jitter_s=config.backoff_jitter_s,
        )

    def delay(self, attempt: int) -> float:
        return backoff_delay(attempt, self.backoff_base_s, self.backoff_jitter_s)

    async def run(
        self,
        fn: Callable[[], Awaitable[ReturnT]],
        *,
        classify: Callable[[Exception], LLMError],
    ) -> ReturnT:
        last: LLMError | None = None
        for attempt in range(self.max_retries + 1):
            try:
                return await fn()
            except Exception as e:
                classified = e if isinstance(e, LLMError) else classify(e)
                last = classified
                if isinstance(classified, LLMRetryableError) and attempt < self.max_retries:
                    wait_s = self.delay(attempt)
                    LOGGER.warning(
                        "model call failed (attempt %d/%d), retrying in %.2fs: %s",
                        attempt + 1,
                        self.max_retries + 1,
                        wait_s,
                        classified,
                    )
                    await asyncio.sleep(wait_s)
                    continue
                if classified is e:
                    raise
                raise classified from e

        raise LLMError(f"model call failed after {self.max_retries} retries") from last
