from __future__ import annotations

"""Pydantic AI backed ``Reasoner``.

The model is asked for a structured ``ReasoningDecision`` instead of free text,
which keeps vendor specific tool-call payloads out of the core. Any failure of
the underlying agent is reported as ``ModelCallError`` so ``RetryPolicy`` can
retry it.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import Field
from pydantic_ai import Agent

from ..errors import ModelCallError
from ..schemas.base import BaseSchema
from ..schemas.domain import ChatMessage, ChatRole
from .base import Reasoning

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a ReAct agent. At each turn either call exactly one of the available tools "
    "or give the final answer. Never invent tool names."
)


class ReasoningDecision(BaseSchema):
    thought: str = Field(default="", description="Short reasoning for this turn.")
    tool_name: Optional[str] = Field(default=None, description="Tool to call, or null to answer.")
    tool_args: Dict[str, Any] = Field(default_factory=dict, description="Arguments of the tool call.")
    final_answer: Optional[str] = Field(default=None, description="Final answer when no tool is called.")


def render_transcript(messages: List[ChatMessage], tools: List[Dict[str, Any]]) -> str:
    lines = []
    for m in messages:
        if m.role == ChatRole.system:
            continue
        label = m.role.value
        if m.name:
            label = f"{label}:{m.name}"
        if m.tool_name and m.role == ChatRole.assistant:
            lines.append(f"[{label}] {m.content}\n-> call {m.tool_name} {json.dumps(m.tool_args or {}, default=str)}")
        elif m.tool_name:
            lines.append(f"[{label}:{m.tool_name}] {m.content}")
        else:
            lines.append(f"[{label}] {m.content}")
    if tools:
        lines.append("Available tools:")
        for t in tools:
            lines.append(f"- {t['name']}: {t.get('description', '')} params={json.dumps(t.get('parameters', {}))}")
    return "\n".join(lines)


class PydanticAIReasoner:
    """Reasoner that delegates to a ``pydantic_ai.Agent``."""

    def __init__(self, model: Any, *, system_prompt: Optional[str] = None) -> None:
        """
        Args:
            model: Any model accepted by ``pydantic_ai.Agent`` (instance or ``"provider:name"`` string).
            system_prompt: Base instructions; system messages of the run are appended to it.
        """
        self._model = model
        self._system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT

    async def reason(self, messages: List[ChatMessage], tools: List[Dict[str, Any]]) -> Reasoning:
        system_parts = [self._system_prompt] + [m.content for m in messages if m.role == ChatRole.system]
        agent: Agent = Agent(
            self._model,
            output_type=ReasoningDecision,
            system_prompt="\n\n".join(p for p in system_parts if p),
        )
        try:
            result = await agent.run(render_transcript(messages, tools))
        except Exception as exc:
            raise ModelCallError(f"pydantic-ai agent run failed: {exc}") from exc

        decision: ReasoningDecision = result.output
        if decision.tool_name:
            logger.debug("Model requested tool [%s]", decision.tool_name)
            return Reasoning.call(decision.tool_name, decision.tool_args, thought=decision.thought)
        return Reasoning.finish(decision.final_answer if decision.final_answer is not None else decision.thought)
