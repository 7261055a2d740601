"""Text cleanup applied to model output."""

from __future__ import annotations

import re

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_REACT_LABEL = re.compile(r"^\s*(Thought|Action|Observation|Final Answer)\s*:\s*", re.IGNORECASE | re.MULTILINE)


def clean_final_answer(text: str, finish_marker: str = "") -> str:
    """Strip hidden reasoning, ReAct labels and the finish marker from an answer."""
    cleaned = _THINK_BLOCK.sub("", text or "")
    if finish_marker:
        cleaned = cleaned.replace(f"[{finish_marker}]", "")
    cleaned = _REACT_LABEL.sub("", cleaned)
    return cleaned.strip()
