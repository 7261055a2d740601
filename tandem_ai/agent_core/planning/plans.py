from __future__ import annotations

"""Planning mode for the ReAct loop.

Responsibilities
----------------

- Ask the model, once per top-level prompt, whether the task needs a
  multi-step plan (``Planner``).
- Keep the plan on the ``ExecutionTrace``: ``plans`` plus a 0-based
  ``plan_index`` pointing at the step in progress.
- Expose two built-in actions the model can call while a plan is active:

  - ``update_plan_progress(next_plan_index)``: move the cursor (1-based).
  - ``revise_plan(new_steps, from_index)``: replace the plan from a 1-based
    index onwards in one assignment, never appending to stale steps.

A plan with one step or fewer is not worth tracking: it is dropped and the
loop reasons directly.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from ..reasoning.base import Reasoner
from ..reasoning.retry import RetryPolicy
from ..schemas.domain import ChatMessage, ChatRole
from ..schemas.trace import ExecutionTrace

logger = logging.getLogger(__name__)

REVISE_PLAN_TOOL = "revise_plan"
UPDATE_PLAN_PROGRESS_TOOL = "update_plan_progress"
PLAN_TOOL_NAMES = frozenset({REVISE_PLAN_TOOL, UPDATE_PLAN_PROGRESS_TOOL})

_LINE_PREFIX = re.compile(r"^[\d.\-\s*)]+")
_TRAILING_PUNCT = (".", "。", ",", "，", ";")

PLANNING_INSTRUCTION = (
    "Decide whether the task below needs several distinct actions. "
    "If it does, reply with the steps only, one per line, numbered from 1. "
    "If it is simple (a factual question, a single calculation or one tool call), "
    "reply with a single line restating the task."
)


def clean_plans(raw_steps: Optional[Iterable[str]]) -> List[str]:
    """Strip numbering, markdown emphasis, backticks and trailing punctuation."""
    cleaned: List[str] = []
    if raw_steps is None:
        return cleaned
    if isinstance(raw_steps, str):
        raw_steps = raw_steps.splitlines()
    for step in raw_steps:
        c = _LINE_PREFIX.sub("", str(step)).replace("**", "").replace("`", "").strip()
        if c.endswith(_TRAILING_PUNCT):
            c = c[:-1].rstrip()
        if c:
            cleaned.append(c)
    return cleaned


def parse_plan_text(text: str) -> List[str]:
    return clean_plans(text.splitlines())


class Planner:
    """Turns a prompt into a plan by asking the loop's reasoner."""

    def __init__(self, reasoner: Reasoner, *, retry_policy: Optional[RetryPolicy] = None) -> None:
        self._reasoner = reasoner
        self._retry = retry_policy or RetryPolicy(max_attempts=1, delay_ms=0)

    async def plan(self, prompt: str, *, context: str = "") -> List[str]:
        messages = [ChatMessage(role=ChatRole.system, content=PLANNING_INSTRUCTION)]
        if context:
            messages.append(ChatMessage(role=ChatRole.system, content=context))
        messages.append(ChatMessage(role=ChatRole.user, content=prompt))

        reasoning = await self._retry.call(self._reasoner.reason, messages, [])
        steps = parse_plan_text(reasoning.content)
        if len(steps) <= 1:
            logger.debug("Task judged simple; planning skipped")
            return []
        return steps


def apply_plan(trace: ExecutionTrace, steps: List[str]) -> None:
    trace.plans = list(steps) if len(steps) > 1 else []
    trace.plan_index = 0


def update_plan_progress(trace: ExecutionTrace, next_plan_index: int) -> str:
    if not trace.plans:
        return "Error: no plan is active. Continue with the task directly."

    total = len(trace.plans)
    safe_idx = max(1, min(int(next_plan_index), total + 1))
    trace.plan_index = safe_idx - 1
    if safe_idx <= total:
        return f"Plan progress updated. Next is step {safe_idx}: {trace.plans[safe_idx - 1]}"
    return "Plan progress updated. All plan steps are complete."


def revise_plan(trace: ExecutionTrace, new_steps: Optional[Iterable[str]], from_index: int) -> str:
    """
    Replace the plan from ``from_index`` (1-based, clamped) with ``new_steps``.

    Steps before ``from_index`` are kept. The cursor moves back to the revision
    point only when the revision starts at or before the step in progress.
    A single string is read as one step per line.
    """
    if not trace.plans:
        return "Error: no plan is active, nothing to revise."

    next_steps = clean_plans(new_steps)
    if not next_steps:
        return "No valid revised steps were given; the plan is unchanged."

    start = max(1, min(int(from_index), len(trace.plans) + 1))
    split_at = start - 1
    trace.plans = trace.plans[:split_at] + next_steps
    if split_at <= trace.plan_index:
        trace.plan_index = split_at
    logger.debug("Plan revised from step %s: %s", start, trace.plans)
    return f"Plan revised from step {start}. Continue with the new plan."


def run_plan_action(trace: ExecutionTrace, tool_name: str, args: Dict[str, Any]) -> str:
    try:
        if tool_name == REVISE_PLAN_TOOL:
            return revise_plan(trace, args.get("new_steps"), args.get("from_index", trace.plan_index + 1))
        return update_plan_progress(trace, args.get("next_plan_index", trace.plan_index + 2))
    except (TypeError, ValueError) as exc:
        return f"Invalid arguments for [{tool_name}]: {exc}"


def plan_context(trace: ExecutionTrace) -> Optional[str]:
    """System message describing the active plan, or ``None``."""
    if not trace.plans:
        return None
    lines = ["#### Current plan (1-based)"]
    for i, step in enumerate(trace.plans):
        marker = "->" if i == trace.plan_index else ("done" if i < trace.plan_index else "  ")
        lines.append(f"{marker} {i + 1}. {step}")
    lines.append(
        f"Call `{UPDATE_PLAN_PROGRESS_TOOL}` after finishing a step and `{REVISE_PLAN_TOOL}` "
        "when an observation invalidates the remaining steps."
    )
    return "\n".join(lines)


def plan_tool_schemas() -> List[Dict[str, Any]]:
    return [
        {
            "name": UPDATE_PLAN_PROGRESS_TOOL,
            "description": "Move the plan cursor after finishing a step.",
            "parameters": {
                "type": "object",
                "properties": {"next_plan_index": {"type": "integer"}},
                "required": ["next_plan_index"],
            },
        },
        {
            "name": REVISE_PLAN_TOOL,
            "description": "Replace the remaining plan steps when the current plan no longer fits.",
            "parameters": {
                "type": "object",
                "properties": {
                    "new_steps": {"type": "array", "items": {"type": "string"}},
                    "from_index": {"type": "integer"},
                },
                "required": ["new_steps", "from_index"],
            },
        },
    ]
