from __future__ import annotations

"""Supervisor decisions for router driven teams.

A router looks at the team log and names the member that should act next, or
answers with the finish marker. The raw decision text is resolved by
``parse_route``:

1. the cleaned text equals a member name;
2. the finish marker appears as a word;
3. the longest member name appearing as a word wins.

Text that matches none of these ends the run.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from pydantic import Field
from pydantic_ai import Agent

from ..errors import ModelCallError
from ..reasoning.base import Reasoner
from ..reasoning.retry import RetryPolicy
from ..schemas.base import BaseSchema
from ..schemas.domain import ChatMessage, ChatRole
from ..schemas.trace import TeamTrace

logger = logging.getLogger(__name__)

_DECORATION = re.compile(r"[*`\"'\[\]]")
# __name__ or _name_ emphasis; underscores inside a name are kept
_UNDERSCORE_EMPHASIS = re.compile(r"(?<!\w)_{1,2}(\w+?)_{1,2}(?!\w)")


@dataclass(frozen=True)
class MemberInfo:
    """What a router knows about one team member."""

    name: str
    description: str = ""


@dataclass(frozen=True)
class RouteDecision:
    """Resolved router output: the next member, or ``None`` to finish."""

    member: Optional[str]
    raw: str = ""

    @property
    def is_finish(self) -> bool:
        return self.member is None


def parse_route(text: str, member_names: Sequence[str], finish_marker: str = "FINISH") -> RouteDecision:
    raw = text or ""
    cleaned = _UNDERSCORE_EMPHASIS.sub(r"\1", _DECORATION.sub("", raw)).strip()

    for name in member_names:
        if cleaned.lower() == name.lower():
            return RouteDecision(member=name, raw=raw)

    if finish_marker and re.search(rf"\b{re.escape(finish_marker)}\b", cleaned, re.IGNORECASE):
        return RouteDecision(member=None, raw=raw)

    best: Optional[str] = None
    for name in member_names:
        if re.search(rf"(?<!\w){re.escape(name)}(?!\w)", cleaned, re.IGNORECASE):
            if best is None or len(name) > len(best):
                best = name
    if best is None:
        logger.warning("Router reply matched no member, finishing: %r", raw)
    return RouteDecision(member=best, raw=raw)


def build_routing_prompt(trace: TeamTrace, members: Sequence[MemberInfo], finish_marker: str, window: int) -> str:
    roster = "\n".join(f"- {m.name}: {m.description}" if m.description else f"- {m.name}" for m in members)
    history = trace.formatted_history(window) or "(no member has acted yet)"
    return (
        f"Task:\n{trace.prompt or ''}\n\n"
        f"Team members:\n{roster}\n\n"
        f"Progress so far:\n{history}\n\n"
        f"Reply with the name of the member who should act next, "
        f"or {finish_marker} when the task is complete."
    )


class Router(ABC):
    finish_marker: str = "FINISH"
    history_window: int = 5

    @abstractmethod
    async def decide_text(self, trace: TeamTrace, members: Sequence[MemberInfo]) -> str: ...

    async def decide(self, trace: TeamTrace, members: Sequence[MemberInfo]) -> RouteDecision:
        text = await self.decide_text(trace, members)
        decision = parse_route(text, [m.name for m in members], self.finish_marker)
        logger.debug("Team [%s] router chose %s", trace.team_name, decision.member or self.finish_marker)
        return decision


class ReasonerRouter(Router):
    """Router backed by any ``Reasoner``; the finish text is the decision."""

    SYSTEM_PROMPT = "You are the supervisor of a team of experts. You only decide who acts next."

    def __init__(
        self,
        reasoner: Reasoner,
        *,
        finish_marker: str = "FINISH",
        history_window: int = 5,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._reasoner = reasoner
        self.finish_marker = finish_marker
        self.history_window = history_window
        self._retry = retry_policy or RetryPolicy.from_settings()

    async def decide_text(self, trace: TeamTrace, members: Sequence[MemberInfo]) -> str:
        messages: List[ChatMessage] = [
            ChatMessage(role=ChatRole.system, content=self.SYSTEM_PROMPT),
            ChatMessage(
                role=ChatRole.user,
                content=build_routing_prompt(trace, members, self.finish_marker, self.history_window),
            ),
        ]
        reasoning = await self._retry.call(self._reasoner.reason, messages, [])
        return reasoning.content


class RoutingChoice(BaseSchema):
    next_member: str = Field(description="Exact member name, or the finish marker.")
    reason: str = Field(default="", description="One sentence justification.")


class PydanticAIRouter(Router):
    """Router asking a ``pydantic_ai.Agent`` for a structured ``RoutingChoice``."""

    def __init__(self, model: Any, *, finish_marker: str = "FINISH", history_window: int = 5) -> None:
        self._model = model
        self.finish_marker = finish_marker
        self.history_window = history_window

    async def decide_text(self, trace: TeamTrace, members: Sequence[MemberInfo]) -> str:
        agent: Agent = Agent(
            self._model,
            output_type=RoutingChoice,
            system_prompt=ReasonerRouter.SYSTEM_PROMPT,
        )
        try:
            result = await agent.run(build_routing_prompt(trace, members, self.finish_marker, self.history_window))
        except Exception as exc:
            raise ModelCallError(f"pydantic-ai router failed: {exc}") from exc
        return result.output.next_member
