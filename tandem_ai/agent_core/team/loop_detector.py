from __future__ import annotations

"""Detection of unproductive team collaboration.

``LoopDetector`` is a pure function over the agent-only steps of a
``TeamTrace``. It flags two patterns:

- self loops: one agent keeps producing (almost) the same output;
- sequence loops: a hand-off cycle of two or three agents repeats with the
  same outputs (A-B-A-B, A-B-C-A-B-C).

The thresholds are tunable defaults, not derived constants.
"""

import logging
import re
from typing import List, Sequence

from ...core.config import settings
from ..schemas.trace import TeamStep, TeamTrace

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

MIN_QUALIFYING_STEPS = 4
SEQUENCE_CYCLE_LENGTHS = (2, 3)


def levenshtein(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def _normalize(text: str) -> str:
    return _WHITESPACE.sub("", text).lower()


def similarity(a: str, b: str) -> float:
    """
    Normalized edit-distance similarity in ``[0, 1]``.

    Whitespace and case are ignored. Two empty strings compare as ``0.0``; an
    empty reply is never evidence of repetition.
    """
    a = _normalize(a or "")
    b = _normalize(b or "")
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 0.0
    if a == b:
        return 1.0
    return 1.0 - levenshtein(a, b) / max_len


class LoopDetector:
    def __init__(
        self,
        *,
        min_content_length: int = 10,
        similarity_threshold: float = 0.95,
        scan_window_size: int = 10,
        max_repeat_allowed: int = 0,
    ) -> None:
        self.min_content_length = min_content_length
        self.similarity_threshold = similarity_threshold
        self.scan_window_size = scan_window_size
        self.max_repeat_allowed = max_repeat_allowed

    @classmethod
    def from_settings(cls) -> LoopDetector:
        cfg = settings.loop_detection
        return cls(
            min_content_length=cfg.min_content_length,
            similarity_threshold=cfg.similarity_threshold,
            scan_window_size=cfg.scan_window_size,
            max_repeat_allowed=cfg.max_repeat_allowed,
        )

    def is_looping(self, trace: TeamTrace) -> bool:
        steps = trace.agent_steps()
        if len(steps) < MIN_QUALIFYING_STEPS:
            return False
        # a short latest reply ("OK", "Done") is too weak a signal
        if len(steps[-1].content.strip()) < self.min_content_length:
            return False

        if self._has_self_loop(steps):
            logger.warning("Team [%s]: agent [%s] repeats itself", trace.team_name, steps[-1].agent_name)
            return True
        if self._has_sequence_loop(steps):
            logger.warning("Team [%s]: hand-off cycle detected", trace.team_name)
            return True
        return False

    def _has_self_loop(self, steps: Sequence[TeamStep]) -> bool:
        n = len(steps)
        last = steps[-1]
        repeats = 0
        stop = max(0, n - 1 - self.scan_window_size)
        for i in range(n - 2, stop - 1, -1):
            step = steps[i]
            if step.agent_name != last.agent_name:
                continue
            if similarity(last.content, step.content) >= self.similarity_threshold:
                repeats += 1
                if repeats > self.max_repeat_allowed:
                    return True
            else:
                break
        return False

    def _has_sequence_loop(self, steps: List[TeamStep]) -> bool:
        n = len(steps)
        for length in SEQUENCE_CYCLE_LENGTHS:
            if n < 2 * length:
                continue
            matched = True
            for i in range(length):
                current = steps[n - 1 - i]
                previous = steps[n - 1 - i - length]
                if current.agent_name != previous.agent_name:
                    matched = False
                    break
                if similarity(current.content, previous.content) < self.similarity_threshold:
                    matched = False
                    break
            if matched:
                return True
        return False
