"""
Advisory progress heuristics evaluated after each action step.

Both detectors only report; the loop decides what to do with a signal.
"""

from __future__ import annotations

import difflib
import re
from dataclasses import dataclass
from typing import Literal, Sequence

from ..memory.steps import ActionStep
from .runtime import json_hash

DriftLevel = Literal["mild", "moderate", "severe"]

_WORD = re.compile(r"[a-z0-9]+")
_STOPWORDS = frozenset(
    "a an and are as at be by for from in is it of on or that the this to was with".split()
)


@dataclass(frozen=True, slots=True)
class RepetitionSignal:
    reason: Literal["identical_code", "identical_tool_calls", "similar_observations"]
    steps: list[int]
    similarity: float = 1.0


@dataclass(frozen=True, slots=True)
class DriftSignal:
    level: DriftLevel
    alignment: float
    consecutive: int


class RepetitionDetector:
    """
    Flags the latest `window` action steps when they repeat one another.

    Repetition means identical code, identical tool-call sets, or
    observations whose `difflib` ratio reaches `similarity`.
    """

    def __init__(self, window: int = 3, similarity: float = 0.9) -> None:
        self.window = window
        self.similarity = similarity

    def check(self, steps: Sequence[ActionStep]) -> RepetitionSignal | None:
        recent = list(steps)[-self.window :]
        if len(recent) < self.window:
            return None
        numbers = [s.step_number for s in recent]

        codes = [s.code_action for s in recent]
        if all(codes) and len(set(codes)) == 1:
            return RepetitionSignal("identical_code", numbers)

        calls = [
            json_hash([(tc.tool_name, tc.arguments) for tc in s.tool_calls]) if s.tool_calls else None
            for s in recent
        ]
        if all(calls) and len(set(calls)) == 1:
            return RepetitionSignal("identical_tool_calls", numbers)

        observations = [s.observations or (s.error.message if s.error else "") for s in recent]
        if all(observations):
            lowest = min(
                difflib.SequenceMatcher(None, a, b).ratio()
                for a, b in zip(observations, observations[1:])
            )
            if lowest >= self.similarity:
                return RepetitionSignal("similar_observations", numbers, similarity=lowest)
        return None


def _tokens(text: str) -> set[str]:
    return {w for w in _WORD.findall(text.lower()) if w not in _STOPWORDS and len(w) > 2}


class GoalDriftDetector:
    """
    Tracks how well recent observations overlap the task (and plan) vocabulary.

    Each step whose alignment falls below `threshold` extends a streak; the
    streak length maps to a drift level: 1-2 mild, 3-4 moderate, 5+ severe.
    """

    def __init__(self, threshold: float = 0.5, lookback: int = 2) -> None:
        self.threshold = threshold
        self.lookback = lookback
        self._streak = 0

    def reset(self) -> None:
        self._streak = 0

    def alignment(self, goal: str, observations: Sequence[str]) -> float:
        goal_words = _tokens(goal)
        if not goal_words:
            return 1.0
        seen: set[str] = set()
        for text in observations:
            seen |= _tokens(text)
        if not seen:
            return 1.0
        return len(goal_words & seen) / len(goal_words)

    def check(self, goal: str, steps: Sequence[ActionStep]) -> DriftSignal | None:
        recent = [s.observations or "" for s in list(steps)[-self.lookback :]]
        score = self.alignment(goal, recent)
        if score >= self.threshold:
            self._streak = 0
            return None
        self._streak += 1
        if self._streak >= 5:
            level: DriftLevel = "severe"
        elif self._streak >= 3:
            level = "moderate"
        else:
            level = "mild"
        return DriftSignal(level=level, alignment=score, consecutive=self._streak)
